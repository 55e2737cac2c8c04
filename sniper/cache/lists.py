"""File-backed address lists (snipe list, update-authority blacklist)."""

import asyncio
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


class AddressListCache:
    """A set of addresses loaded from a text file, one per line.

    Blank lines and ``#`` comments are ignored. The file is re-read every
    ``refresh_interval`` seconds while ``run`` is active; a missing file
    yields an empty list.
    """

    def __init__(self, path: str, refresh_interval: float = 30.0, name: str = "list"):
        self.path = Path(path)
        self.refresh_interval = refresh_interval
        self.name = name
        self._entries: frozenset[str] = frozenset()

    def load(self) -> int:
        """Read the file now and return the entry count."""
        if not self.path.exists():
            logger.warning("Address list file missing", list=self.name, path=str(self.path))
            self._entries = frozenset()
            return 0

        text = self.path.read_text(encoding="utf-8")
        entries = set()
        for line in text.splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                entries.add(line)

        if entries != self._entries:
            logger.info("Address list updated", list=self.name, count=len(entries))
        self._entries = frozenset(entries)
        return len(entries)

    def contains(self, address: str) -> bool:
        return address in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def run(self) -> None:
        """Reload the file periodically until cancelled."""
        while True:
            try:
                self.load()
            except OSError as e:
                logger.error("Failed to read address list", list=self.name, error=str(e))
            await asyncio.sleep(self.refresh_interval)
