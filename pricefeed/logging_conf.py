"""Logging setup shared by the CLI and the API."""
import logging
import sys
from typing import Optional

from pricefeed.config import config

_CONFIGURED = False

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "hishel", "postgrest", "storage3")


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once (console handler)."""
    global _CONFIGURED
    if _CONFIGURED:
        if level:
            logging.getLogger().setLevel(level.upper())
        return
    _CONFIGURED = True

    root = logging.getLogger()
    root.setLevel((level or config.LOG_LEVEL).upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
