"""Best-effort audit messages to the Telegram log channel."""

import asyncio

import httpx

from app.core.config import Settings
from app.core.logging import get_logger

log = get_logger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class Notifier:
    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.bot_token = settings.telegram_bot_token
        self.channel_id = settings.telegram_channel_id
        self.timeout = settings.notify_timeout_seconds
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.channel_id)

    async def log_event(self, text: str) -> bool:
        """Send `text` to the channel. Never raises; returns whether it was delivered."""
        if not self.enabled:
            log.debug("notify_skipped", reason="telegram not configured")
            return False
        try:
            async with httpx.AsyncClient(base_url=TELEGRAM_API, transport=self._transport) as client:
                response = await asyncio.wait_for(
                    client.post(
                        f"/bot{self.bot_token}/sendMessage",
                        json={"chat_id": self.channel_id, "text": text, "parse_mode": "Markdown"},
                    ),
                    timeout=self.timeout,
                )
            response.raise_for_status()
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            log.warning("notify_failed", error=type(e).__name__)
            return False
        return True
