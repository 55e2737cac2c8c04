"""Trade journal stored in SQLite."""

import json
from datetime import datetime
from typing import Any

import aiosqlite
import structlog

from ..core.types import ExecutionResult, Position, Side

logger = structlog.get_logger(__name__)


class SQLiteStorage:
    """SQLite-based journal of position transitions and execution attempts.

    ``positions`` holds the latest row per token; ``transitions`` and
    ``executions`` are append-only.
    """

    def __init__(self, db_path: str = "sniper.sqlite") -> None:
        """Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        logger.info("SQLite storage initialized", db_path=db_path)

    async def initialize(self) -> None:
        """Initialize database tables."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS positions (
                    token_mint TEXT PRIMARY KEY,
                    pool_id TEXT NOT NULL,
                    state TEXT NOT NULL,
                    entry_price REAL,
                    entry_ts REAL,
                    quote_spent REAL NOT NULL DEFAULT 0.0,
                    exit_price REAL,
                    exit_reason TEXT,
                    failure_reason TEXT,
                    updated_ts REAL NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS transitions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    token_mint TEXT NOT NULL,
                    state TEXT NOT NULL,
                    reason TEXT NOT NULL DEFAULT '',
                    snapshot TEXT NOT NULL,
                    ts REAL NOT NULL
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS executions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    token_mint TEXT NOT NULL,
                    side TEXT NOT NULL,
                    attempt INTEGER NOT NULL,
                    confirmed INTEGER NOT NULL,
                    signature TEXT,
                    error TEXT,
                    retryable INTEGER NOT NULL,
                    ts REAL NOT NULL
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_transitions_token_mint
                ON transitions(token_mint)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_executions_token_mint
                ON executions(token_mint)
            """)

            await db.commit()

        logger.info("Database tables initialized")

    async def record_transition(self, position: Position, reason: str = "") -> None:
        """Upsert the position row and append a transition record."""
        ts = datetime.now().timestamp()
        snapshot = position.model_dump_json()

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO positions (
                    token_mint, pool_id, state, entry_price, entry_ts, quote_spent,
                    exit_price, exit_reason, failure_reason, updated_ts
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(token_mint) DO UPDATE SET
                    pool_id = excluded.pool_id,
                    state = excluded.state,
                    entry_price = excluded.entry_price,
                    entry_ts = excluded.entry_ts,
                    quote_spent = excluded.quote_spent,
                    exit_price = excluded.exit_price,
                    exit_reason = excluded.exit_reason,
                    failure_reason = excluded.failure_reason,
                    updated_ts = excluded.updated_ts
            """,
                (
                    position.token,
                    position.pool.pool_id,
                    position.state.value,
                    position.entry_price,
                    position.entry_timestamp,
                    position.quote_amount_spent,
                    position.exit_price,
                    position.exit_reason,
                    position.failure_reason,
                    ts,
                ),
            )
            await db.execute(
                """
                INSERT INTO transitions (token_mint, state, reason, snapshot, ts)
                VALUES (?, ?, ?, ?, ?)
            """,
                (position.token, position.state.value, reason, snapshot, ts),
            )
            await db.commit()

        logger.debug(
            "Transition recorded",
            token_mint=position.token,
            state=position.state.value,
            reason=reason,
        )

    async def record_execution(
        self,
        token: str,
        side: Side,
        attempt: int,
        result: ExecutionResult,
    ) -> int:
        """Record one execution attempt.

        Returns:
            Row id of the attempt
        """
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO executions (
                    token_mint, side, attempt, confirmed, signature, error, retryable, ts
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    token,
                    side.value,
                    attempt,
                    int(result.confirmed),
                    result.signature,
                    result.error,
                    int(result.retryable),
                    datetime.now().timestamp(),
                ),
            )
            row_id = cursor.lastrowid
            await db.commit()

        logger.debug(
            "Execution recorded",
            token_mint=token,
            side=side.value,
            attempt=attempt,
            confirmed=result.confirmed,
        )
        return row_id

    async def load_positions(self) -> list[dict[str, Any]]:
        """Latest row of every journaled position, newest first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute("""
                SELECT * FROM positions ORDER BY updated_ts DESC
            """) as cursor:
                rows = await cursor.fetchall()

        return [dict(row) for row in rows]

    async def load_transitions(self, token: str) -> list[dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT state, reason, snapshot, ts FROM transitions
                WHERE token_mint = ? ORDER BY id
            """,
                (token,),
            ) as cursor:
                rows = await cursor.fetchall()

        transitions = []
        for row in rows:
            entry = dict(row)
            entry["snapshot"] = json.loads(entry["snapshot"])
            transitions.append(entry)
        return transitions

    async def load_executions(self, token: str) -> list[dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT side, attempt, confirmed, signature, error, retryable, ts
                FROM executions WHERE token_mint = ? ORDER BY id
            """,
                (token,),
            ) as cursor:
                rows = await cursor.fetchall()

        return [dict(row) for row in rows]

    async def close(self) -> None:
        """Connections are opened per call; nothing to release."""
        logger.debug("SQLite storage closed", db_path=self.db_path)
