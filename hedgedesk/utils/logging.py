"""Process-wide logging setup."""

import logging
import sys

from hedgedesk.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default")


def setup_logging(level: str | None = None):
    """Configure the root logger once; later calls only adjust the level."""
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    if not any(getattr(h, "_hedgedesk", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._hedgedesk = True
        root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_key(value: str | None) -> str:
    """Show only the first 8 characters of an API key."""
    if not value:
        return ""
    return f"{value[:8]}..."
