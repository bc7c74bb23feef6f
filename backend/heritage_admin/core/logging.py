# backend/heritage_admin/core/logging.py
from __future__ import annotations

import logging

from heritage_admin.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Install one stream handler on the root logger.
    Safe to call more than once (tests build several apps).
    """
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    root = logging.getLogger()
    if not any(getattr(h, "_heritage_admin", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._heritage_admin = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(resolved)
