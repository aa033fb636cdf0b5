"""Logging setup: console, rotating file and Better Stack."""
import logging
import sys
from logging.handlers import RotatingFileHandler
from logtail import LogtailHandler

from syncqueue import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
NOISY_LOGGERS = ("urllib3", "requests", "asyncio")


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def setup_logging():
    level = _level(settings.LOG_LEVEL)
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.LOG_TO_FILE:
        file_handler = RotatingFileHandler(
            settings.LOGS_DIR / "syncqueue.log", maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if settings.BETTERSTACK_SOURCE_TOKEN:
        try:
            handler_kwargs = {"source_token": settings.BETTERSTACK_SOURCE_TOKEN}
            if settings.BETTERSTACK_INGEST_HOST:
                handler_kwargs["host"] = settings.BETTERSTACK_INGEST_HOST
            betterstack_handler = LogtailHandler(**handler_kwargs)
            betterstack_handler.setLevel(logging.DEBUG)
            betterstack_handler.setFormatter(formatter)
            root_logger.addHandler(betterstack_handler)
            host_info = settings.BETTERSTACK_INGEST_HOST or "default (in.logs.betterstack.com)"
            root_logger.info(f"BetterStack logging enabled (host: {host_info})")
        except Exception as e:
            root_logger.warning(f"Failed to initialize BetterStack logging: {e}")

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("syncqueue")


logger = setup_logging()
