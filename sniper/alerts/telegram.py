"""Telegram alert sink for position notifications."""

import httpx
import structlog

from ..core.errors import SniperError

logger = structlog.get_logger(__name__)

# Telegram rejects messages longer than 4096 characters.
MAX_MESSAGE_LENGTH = 4096


class TelegramError(SniperError):
    """Telegram Bot API reported a failure."""


class TelegramAlertSink:
    """Posts alerts to one chat, optionally inside a forum thread."""

    def __init__(
        self,
        bot_token: str,
        chat_id: int,
        thread_id: int | None = None,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Telegram alert sink.

        Args:
            bot_token: Telegram bot token
            chat_id: Chat (user, group or channel) receiving alerts
            thread_id: Optional forum topic id inside the chat
            session: Optional HTTP session for requests
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.thread_id = thread_id
        self.session = session or httpx.AsyncClient(timeout=10.0)
        self.base_url = f"https://api.telegram.org/bot{bot_token}"

        logger.info("Telegram alert sink initialized", chat_id=chat_id, thread_id=thread_id)

    async def push(self, message: str) -> None:
        """Push alert message; delivery failures are logged, never raised.

        Args:
            message: Alert message (HTML parse mode)
        """
        try:
            await self._send_message(message)
            logger.debug("Alert sent", chat_id=self.chat_id)
        except (httpx.HTTPError, TelegramError) as e:
            logger.error("Failed to send alert", chat_id=self.chat_id, error=str(e))

    async def _send_message(self, text: str) -> None:
        url = f"{self.base_url}/sendMessage"
        data = {
            "chat_id": self.chat_id,
            "text": text[:MAX_MESSAGE_LENGTH],
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        if self.thread_id is not None:
            data["message_thread_id"] = self.thread_id

        response = await self.session.post(url, json=data)
        response.raise_for_status()

        result = response.json()
        if not result.get("ok"):
            raise TelegramError(
                f"Telegram API error: {result.get('description', 'Unknown error')}"
            )

    async def close(self) -> None:
        """Close the alert sink and cleanup resources."""
        await self.session.aclose()
        logger.info("Telegram alert sink closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class NoopAlertSink:
    """No-operation alert sink for when Telegram is not configured."""

    async def push(self, message: str) -> None:
        logger.info("Alert (noop)", message=message)

    async def close(self) -> None:
        return None
