import asyncio
from datetime import UTC, datetime, timedelta

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from market_sync.adapters.exchange.base import Exchange
from market_sync.adapters.exchange.errors import FetchError
from market_sync.services.market_sync import MarketSyncService
from market_sync.services.quote_cache import QuoteCache
from market_sync.services.quote_store import QuoteRepository
from market_sync.services.telegram_alerts import TelegramAlertChannel

T0 = datetime(2026, 10, 19, 6, 30, tzinfo=UTC)


class ScriptedFetcher:
    """Replays one outcome per call: a record list, an exception, or a delay in seconds."""

    def __init__(self, exchange: Exchange, *outcomes) -> None:
        self.exchange = exchange
        self.outcomes = list(outcomes)
        self.calls = 0

    async def fetch_quotes(self):
        self.calls += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, (int, float)):
            await asyncio.sleep(outcome)
            return []
        return outcome


class BrokenRepository:
    async def upsert_many(self, records):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    async def load_all(self):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


@pytest.fixture
def alert_requests() -> list:
    return []


@pytest.fixture
def alerts(alert_requests) -> TelegramAlertChannel:
    def handler(request: httpx.Request) -> httpx.Response:
        alert_requests.append(request)
        return httpx.Response(200, json={"ok": True})

    return TelegramAlertChannel("123:abc", "-100200", transport=httpx.MockTransport(handler))


def _service(cache, repository, alerts, *fetchers, fetch_timeout: float = 5.0) -> MarketSyncService:
    return MarketSyncService(
        cache,
        repository,
        {fetcher.exchange: fetcher for fetcher in fetchers},
        alerts,
        fetch_timeout=fetch_timeout,
    )


async def test_failed_exchange_does_not_disturb_the_other(session_factory, make_quote, alerts, alert_requests) -> None:
    cache = QuoteCache()
    dfm_before = make_quote("EMAAR.AE", price=14.6, last_updated=T0)
    adx_before = make_quote("FAB.AD", exchange=Exchange.ADX, price=17.9, last_updated=T0)
    cache.upsert_many([dfm_before, adx_before])

    adx_after = make_quote("FAB.AD", exchange=Exchange.ADX, price=18.1, last_updated=T0 + timedelta(minutes=1))
    service = _service(
        cache,
        QuoteRepository(session_factory),
        alerts,
        ScriptedFetcher(Exchange.DFM, FetchError(Exchange.DFM, "HTTP 503: unavailable")),
        ScriptedFetcher(Exchange.ADX, [adx_after]),
    )

    cycle = await service.run_cycle()

    assert cache.get_by_symbol("EMAAR.AE") == dfm_before
    assert cache.get_by_symbol("FAB.AD") == adx_after
    assert cycle.exchanges[Exchange.DFM].ok is False
    assert cycle.exchanges[Exchange.DFM].error == "HTTP 503: unavailable"
    assert cycle.exchanges[Exchange.DFM].alert_sent is True
    assert cycle.exchanges[Exchange.ADX].applied == 1
    assert len(alert_requests) == 1
    assert "DFM Fetch Failed: HTTP 503: unavailable" in alert_requests[0].content.decode()

    # Only the successful exchange reached the durable store.
    persisted = await QuoteRepository(session_factory).load_all()
    assert persisted == [adx_after]


async def test_simultaneous_failures_send_a_single_alert(session_factory) -> None:
    requests: list[httpx.Request] = []

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        await asyncio.sleep(0.01)
        return httpx.Response(200, json={"ok": True})

    alerts = TelegramAlertChannel("123:abc", "-100200", transport=httpx.MockTransport(slow_handler))
    service = _service(
        QuoteCache(),
        QuoteRepository(session_factory),
        alerts,
        ScriptedFetcher(Exchange.DFM, FetchError(Exchange.DFM, "HTTP 401: Unauthorized")),
        ScriptedFetcher(Exchange.ADX, FetchError(Exchange.ADX, "No data intercepted")),
    )

    cycle = await service.run_cycle()

    assert len(requests) == 1
    assert sorted(result.alert_sent for result in cycle.exchanges.values()) == [False, True]
    assert alerts.sent_count == 1
    assert alerts.suppressed_count == 1

async def test_stale_value_survives_a_failed_cycle(session_factory, make_quote, alerts) -> None:
    cache = QuoteCache()
    first = make_quote("ABC.AE", price=10.0, last_updated=T0)
    third = make_quote("ABC.AE", price=10.5, last_updated=T0 + timedelta(minutes=2))
    service = _service(
        cache,
        QuoteRepository(session_factory),
        alerts,
        ScriptedFetcher(Exchange.DFM, [first], FetchError(Exchange.DFM, "Timeout after 20.0s"), [third]),
    )

    await service.run_cycle()
    assert cache.get_by_symbol("ABC.AE").price == 10.0

    await service.run_cycle()
    assert cache.get_by_symbol("ABC.AE").price == 10.0
    assert cache.get_by_symbol("ABC.AE").last_updated == T0

    await service.run_cycle()
    latest = cache.get_by_symbol("ABC.AE")
    assert latest.price == 10.5
    assert latest.last_updated > T0
    assert service.cycles_completed == 3


async def test_fetch_deadline_is_a_failure_for_that_exchange_only(session_factory, make_quote, alerts) -> None:
    cache = QuoteCache()
    slow = ScriptedFetcher(Exchange.ADX, 1.0)
    fast = ScriptedFetcher(Exchange.DFM, [make_quote("DIB.AE", price=6.1)])
    service = _service(cache, QuoteRepository(session_factory), alerts, fast, slow, fetch_timeout=0.05)

    cycle = await service.run_cycle()

    assert cycle.exchanges[Exchange.ADX].ok is False
    assert cycle.exchanges[Exchange.ADX].error == "Timeout after 0.05s"
    assert cycle.exchanges[Exchange.DFM].ok is True
    assert cache.get_by_symbol("DIB.AE").price == 6.1


async def test_unexpected_fetcher_error_is_contained(session_factory, alerts) -> None:
    service = _service(
        QuoteCache(),
        QuoteRepository(session_factory),
        alerts,
        ScriptedFetcher(Exchange.ADX, RuntimeError("selector vanished")),
    )

    cycle = await service.run_cycle()

    assert cycle.ok is False
    assert cycle.exchanges[Exchange.ADX].error == "selector vanished"


async def test_durable_write_failure_keeps_the_cache_update(make_quote, alerts) -> None:
    cache = QuoteCache()
    record = make_quote("EMAAR.AE", price=14.6)
    service = _service(cache, BrokenRepository(), alerts, ScriptedFetcher(Exchange.DFM, [record]))

    cycle = await service.run_cycle()

    assert cycle.ok is True
    assert cache.get_by_symbol("EMAAR.AE") == record


async def test_records_for_the_other_exchange_are_dropped(session_factory, make_quote, alerts) -> None:
    cache = QuoteCache()
    service = _service(
        cache,
        QuoteRepository(session_factory),
        alerts,
        ScriptedFetcher(
            Exchange.DFM,
            [make_quote("EMAAR.AE"), make_quote("FAB.AD", exchange=Exchange.ADX)],
        ),
    )

    cycle = await service.run_cycle()

    assert cycle.exchanges[Exchange.DFM].applied == 1
    assert "FAB.AD" not in cache


async def test_hydration_failure_leaves_service_not_ready(alerts) -> None:
    service = _service(QuoteCache(), BrokenRepository(), alerts)

    assert await service.hydrate() == 0
    assert service.hydrated is False


async def test_cycle_summary_is_serializable(session_factory, make_quote, alerts) -> None:
    service = _service(
        QuoteCache(),
        QuoteRepository(session_factory),
        alerts,
        ScriptedFetcher(Exchange.DFM, [make_quote("EMAAR.AE")]),
    )

    summary = (await service.run_cycle(forced=True)).to_dict()

    assert summary["forced"] is True
    assert summary["ok"] is True
    assert summary["exchanges"]["DFM"]["records"] == 1
    assert summary["finished_at"] is not None
