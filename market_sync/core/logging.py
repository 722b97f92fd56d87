import logging
import sys

from pythonjsonlogger import jsonlogger

from market_sync.core.config import get_settings

# Bot tokens appear in httpx request URLs; yfinance reports every missing
# ticker at ERROR, which the DFM fetcher already summarizes.
_QUIETED_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "yfinance": logging.CRITICAL,
}


def setup_logging(level: str | None = None) -> None:
    """Attach a single JSON stdout handler to the root logger.

    Later calls are no-ops, so the API, the scheduler entry point and the CLI
    can all call this unconditionally.
    """
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "ts", "levelname": "level", "name": "logger"},
            static_fields={"service": "market-sync"},
        )
    )
    root_logger.addHandler(handler)
    root_logger.setLevel((level or get_settings().log_level).upper())

    for name, quiet_level in _QUIETED_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
