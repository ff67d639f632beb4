"""Logging setup for the API process and the seed scripts."""

import logging

from core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Idempotent: attach one stream handler to the root logger."""
    global _configured
    lvl = (level or settings.log_level or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(lvl)
    if _configured:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    # SQL echo is controlled by DATABASE_ECHO, keep the engine logger quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
