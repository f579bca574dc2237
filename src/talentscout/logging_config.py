from __future__ import annotations

import logging

from talentscout.config import get_settings

# pdfplumber/pypdf log every malformed object at INFO/WARNING
QUIET_LOGGERS = ("urllib3", "httpx", "openai", "pdfminer", "pypdf")

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Root logging for the API, CLI and stage worker; the thread name tells worker lines apart."""
    global _configured
    if _configured:
        return

    resolved = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s",
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.ERROR)
    _configured = True
