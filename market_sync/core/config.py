import os
from datetime import time
from functools import lru_cache
from typing import Mapping
from urllib.parse import quote_plus

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DATABASE_URL_PLACEHOLDER = "REPLACE_WITH_STRONG_DB_PASSWORD"

# Yahoo Finance tickers for the tracked Dubai Financial Market listings.
DFM_MASTER_LIST: tuple[str, ...] = (
    "EMAAR.AE", "DIB.AE", "DEWA.AE", "EMIRATESNBD.AE", "EMAARDEV.AE", "MASQ.AE",
    "SALIK.AE", "DU.AE", "CBD.AE", "AIRARABIA.AE", "TALABAT.AE", "PARKIN.AE",
    "TECOM.AE", "EMPOWER.AE", "DIC.AE", "DFM.AE", "ALEC.AE", "TABREED.AE",
    "NIND.AE", "GFH.AE", "ALANSARI.AE", "DTC.AE", "SALAM_BAH.AE", "SPINNEYS.AE",
    "DEYAAR.AE", "MKHZN.AE", "TAALEEM.AE", "UNIONCOOP.AE", "AJMANBANK.AE",
    "ARMX.AE", "AMANAT.AE", "IFA.AE", "AMLAK.AE", "UPP.AE", "SUKOON.AE",
    "GULFNAV.AE", "DRC.AE", "NCC.AE", "DIN.AE", "NGI.AE", "SHUAA.AE", "ERC.AE",
    "DSI.AE", "ALRAMZ.AE", "SALAMA.AE", "EIBANK.AE", "MAZAYA.AE", "BHMCAPITAL.AE",
    "UFC.AE", "ITHMR.AE", "DNIR.AE", "NIH.AE", "UNIKAI.AE", "ALFIRDOUS.AE",
    "WATANIA.AE", "EKTTITAB.AE", "ALALSAMSUDAN.AE", "AMAN.AE",
)


def resolve_database_url(
    *,
    database_url: str | None,
    postgres_user: str | None,
    postgres_password: str | None,
    postgres_host: str | None = "db",
    postgres_port: int | str | None = "5432",
    postgres_db: str | None = "market_sync",
) -> tuple[str, str]:
    raw_database_url = (database_url or "").strip()
    if raw_database_url and DATABASE_URL_PLACEHOLDER not in raw_database_url:
        return raw_database_url, "env"

    user = quote_plus((postgres_user or "market").strip())
    password = quote_plus((postgres_password or "market").strip())
    host = (postgres_host or "db").strip() or "db"
    port = str(postgres_port or "5432").strip() or "5432"
    db_name = (postgres_db or "market_sync").strip() or "market_sync"
    constructed = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db_name}"
    return constructed, "postgres_fallback"


def resolve_database_url_from_env(
    env: Mapping[str, str] | None = None,
    *,
    default_database_url: str | None = None,
) -> tuple[str, str]:
    source_env = os.environ if env is None else env
    database_url = source_env.get("DATABASE_URL", default_database_url or "")
    return resolve_database_url(
        database_url=database_url,
        postgres_user=source_env.get("POSTGRES_USER"),
        postgres_password=source_env.get("POSTGRES_PASSWORD"),
        postgres_host=source_env.get("POSTGRES_HOST", "db"),
        postgres_port=source_env.get("POSTGRES_PORT", "5432"),
        postgres_db=source_env.get("POSTGRES_DB", "market_sync"),
    )


def _parse_clock_time(value: str) -> time:
    return time.fromisoformat(value.strip())


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @model_validator(mode="after")
    def _check_market_window(self) -> "Settings":
        if _parse_clock_time(self.market_open_time) >= _parse_clock_time(self.market_close_time):
            raise ValueError("MARKET_OPEN_TIME must be earlier than MARKET_CLOSE_TIME.")
        days = self.market_trading_days_list
        if any(day < 1 or day > 7 for day in days):
            raise ValueError("MARKET_TRADING_DAYS must contain ISO weekdays between 1 and 7.")
        return self

    app_env: str = "development"
    app_name: str = "Market Sync API"
    log_level: str = "INFO"

    cors_origins: str = "http://localhost:3000"
    gzip_minimum_size: int = 1000

    database_url: str = ""
    database_auto_create: bool = False
    postgres_user: str = "market"
    postgres_password: str = "market"
    postgres_host: str = "db"
    postgres_port: int = 5432
    postgres_db: str = "market_sync"
    redis_url: str = "redis://redis:6379/0"

    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = 0.1

    # ── Synchronization cadence ────────────────────────────────────
    sync_enabled: bool = True
    sync_interval_seconds: int = 60
    fetch_timeout_seconds: float = 40.0

    # ── Market hours (exchange-local fixed offset) ─────────────────
    market_trading_days: str = "1,2,3,4,5"
    market_open_time: str = "10:00"
    market_close_time: str = "15:00"
    market_utc_offset_hours: float = 4.0

    # ── Alert channel ──────────────────────────────────────────────
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    telegram_api_base_url: str = "https://api.telegram.org"
    telegram_timeout_seconds: float = 10.0
    alert_cooldown_seconds: int = 900

    # ── DFM: structured quote provider ─────────────────────────────
    dfm_symbols: str = ",".join(DFM_MASTER_LIST)
    dfm_timeout_seconds: float = 20.0

    # ── ADX: portal interception ───────────────────────────────────
    adx_portal_url: str = "https://www.adx.ae/en/main-market/equities/all-equities"
    adx_payload_url_marker: str = "scrollingTicker"
    adx_grace_wait_seconds: float = 3.0
    adx_headless: bool = True

    @property
    def cors_origins_list(self) -> list[str]:
        return [v.strip() for v in self.cors_origins.split(",") if v.strip()]

    @property
    def dfm_symbols_list(self) -> list[str]:
        return [v.strip().upper() for v in self.dfm_symbols.split(",") if v.strip()]

    @property
    def market_trading_days_list(self) -> list[int]:
        return [int(v.strip()) for v in self.market_trading_days.split(",") if v.strip()]

    @property
    def market_open(self) -> time:
        return _parse_clock_time(self.market_open_time)

    @property
    def market_close(self) -> time:
        return _parse_clock_time(self.market_close_time)

    @property
    def alerts_configured(self) -> bool:
        return bool(self.telegram_bot_token.strip() and self.telegram_chat_id.strip())

    @property
    def resolved_database_url(self) -> str:
        url, _source = resolve_database_url(
            database_url=self.database_url,
            postgres_user=self.postgres_user,
            postgres_password=self.postgres_password,
            postgres_host=self.postgres_host,
            postgres_port=self.postgres_port,
            postgres_db=self.postgres_db,
        )
        return url

    @property
    def resolved_database_url_source(self) -> str:
        _url, source = resolve_database_url(
            database_url=self.database_url,
            postgres_user=self.postgres_user,
            postgres_password=self.postgres_password,
            postgres_host=self.postgres_host,
            postgres_port=self.postgres_port,
            postgres_db=self.postgres_db,
        )
        return source


@lru_cache
def get_settings() -> Settings:
    return Settings()
