"""Rate-limited operator alerts over the Telegram Bot API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import httpx

from market_sync.adapters.exchange.base import Exchange
from market_sync.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def format_fetch_failure(exchange: Exchange, reason: str) -> str:
    return f"⚠️ {exchange.value} Fetch Failed: {reason}"


class TelegramAlertChannel:
    """One outbound notifier shared by every exchange.

    A delivered alert opens a cooldown window; failures inside it are
    dropped. Missing credentials and delivery errors are logged only and
    leave the window closed, so the next failure tries again. Sends are
    serialized so concurrent failures see the window their predecessor opened.
    """

    def __init__(
        self,
        bot_token: str | None,
        chat_id: str | None,
        *,
        api_base_url: str = "https://api.telegram.org",
        cooldown: timedelta = timedelta(minutes=15),
        timeout: float = 10.0,
        clock: Callable[[], datetime] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._bot_token = bot_token or None
        self._chat_id = chat_id or None
        self._api_base_url = api_base_url.rstrip("/")
        self._cooldown = cooldown
        self._timeout = timeout
        self._clock = clock or (lambda: datetime.now(UTC))
        self._transport = transport
        self.last_sent_at: datetime | None = None
        self.sent_count = 0
        self.suppressed_count = 0
        self._send_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> TelegramAlertChannel:
        settings = settings or get_settings()
        return cls(
            settings.telegram_bot_token,
            settings.telegram_chat_id,
            api_base_url=settings.telegram_api_base_url,
            cooldown=timedelta(seconds=settings.alert_cooldown_seconds),
            timeout=settings.telegram_timeout_seconds,
            **kwargs,
        )

    @property
    def configured(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    def in_cooldown(self, now: datetime | None = None) -> bool:
        if self.last_sent_at is None:
            return False
        now = now or self._clock()
        return now - self.last_sent_at < self._cooldown

    async def send_alert(self, message: str) -> bool:
        """Deliver *message* unless suppressed; True only when Telegram accepted it."""
        async with self._send_lock:
            return await self._send(message)

    async def _send(self, message: str) -> bool:
        now = self._clock()
        if self.in_cooldown(now):
            self.suppressed_count += 1
            logger.debug("Alert suppressed by cooldown", extra={"alert_message": message})
            return False

        if not self.configured:
            logger.warning("Telegram credentials missing; alert logged only", extra={"alert_message": message})
            return False

        # The bot token is part of the path, so never log the URL or the raw exception.
        url = f"{self._api_base_url}/bot{self._bot_token}/sendMessage"
        payload = {"chat_id": self._chat_id, "text": message, "parse_mode": "Markdown"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Telegram alert delivery failed", extra={"error_type": type(exc).__name__})
            return False

        if not response.is_success:
            logger.error(
                "Telegram alert rejected",
                extra={"status": response.status_code, "body_snippet": response.text[:200]},
            )
            return False

        self.last_sent_at = now
        self.sent_count += 1
        logger.info("Telegram alert sent", extra={"alert_message": message})
        return True
