import asyncio
import json
from datetime import UTC, datetime, timedelta

import httpx

from market_sync.adapters.exchange.base import Exchange
from market_sync.services.telegram_alerts import TelegramAlertChannel, format_fetch_failure

T0 = datetime(2026, 10, 19, 7, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _recording_transport(requests: list, status_code: int = 200) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json={"ok": status_code == 200})

    return httpx.MockTransport(handler)


async def test_cooldown_suppresses_failures_inside_the_window() -> None:
    requests: list[httpx.Request] = []
    clock = FakeClock(T0)
    channel = TelegramAlertChannel(
        "123:abc",
        "-100200",
        cooldown=timedelta(minutes=15),
        clock=clock,
        transport=_recording_transport(requests),
    )

    results = []
    for offset_minutes in (0, 5, 20):
        clock.now = T0 + timedelta(minutes=offset_minutes)
        results.append(await channel.send_alert(format_fetch_failure(Exchange.ADX, "boom")))

    assert results == [True, False, True]
    assert len(requests) == 2
    assert channel.sent_count == 2
    assert channel.suppressed_count == 1
    assert channel.last_sent_at == T0 + timedelta(minutes=20)


async def test_concurrent_alerts_share_one_window() -> None:
    requests: list[httpx.Request] = []

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"ok": True})

    channel = TelegramAlertChannel("123:abc", "-100200", clock=FakeClock(T0), transport=httpx.MockTransport(slow_handler))

    results = await asyncio.gather(
        channel.send_alert(format_fetch_failure(Exchange.DFM, "HTTP 401")),
        channel.send_alert(format_fetch_failure(Exchange.ADX, "No data intercepted")),
    )

    assert sorted(results) == [False, True]
    assert len(requests) == 1
    assert channel.suppressed_count == 1


async def test_send_message_payload() -> None:
    requests: list[httpx.Request] = []
    channel = TelegramAlertChannel(
        "123:abc",
        "-100200",
        api_base_url="https://telegram.test/",
        transport=_recording_transport(requests),
    )

    await channel.send_alert(format_fetch_failure(Exchange.DFM, "HTTP 503: upstream"))

    [request] = requests
    assert request.method == "POST"
    assert request.url.host == "telegram.test"
    assert request.url.path == "/bot123:abc/sendMessage"
    assert json.loads(request.content) == {
        "chat_id": "-100200",
        "text": "⚠️ DFM Fetch Failed: HTTP 503: upstream",
        "parse_mode": "Markdown",
    }


async def test_missing_credentials_log_only() -> None:
    channel = TelegramAlertChannel("", None)

    assert channel.configured is False
    assert await channel.send_alert("⚠️ ADX Fetch Failed: boom") is False
    assert channel.last_sent_at is None
    assert channel.in_cooldown() is False


async def test_rejected_delivery_does_not_start_the_window() -> None:
    requests: list[httpx.Request] = []
    clock = FakeClock(T0)
    channel = TelegramAlertChannel(
        "123:abc",
        "-100200",
        clock=clock,
        transport=_recording_transport(requests, status_code=500),
    )

    assert await channel.send_alert("first") is False
    clock.now = T0 + timedelta(minutes=1)
    assert await channel.send_alert("second") is False

    assert len(requests) == 2
    assert channel.last_sent_at is None


async def test_transport_error_is_swallowed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network down", request=request)

    channel = TelegramAlertChannel("123:abc", "-100200", transport=httpx.MockTransport(handler))

    assert await channel.send_alert("boom") is False
    assert channel.sent_count == 0


def test_from_settings_reads_cooldown_and_credentials() -> None:
    from market_sync.core.config import Settings

    settings = Settings(
        _env_file=None,
        telegram_bot_token="123:abc",
        telegram_chat_id="42",
        alert_cooldown_seconds=60,
    )
    channel = TelegramAlertChannel.from_settings(settings, clock=FakeClock(T0))
    channel.last_sent_at = T0 - timedelta(seconds=59)

    assert channel.configured is True
    assert channel.in_cooldown() is True
    channel.last_sent_at = T0 - timedelta(seconds=60)
    assert channel.in_cooldown() is False
