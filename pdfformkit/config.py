"""Runtime settings, read once from the environment (and an optional ``.env``)."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


LOG_LEVEL = os.getenv("PDFFORMKIT_LOG", "INFO").upper()
LOG_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

# Upload pre-check applied by the session layer, never by the extractor itself
MAX_UPLOAD_BYTES = _int_env("PDFFORMKIT_MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
PDF_CONTENT_TYPE = "application/pdf"

# 0-100, rapidfuzz score needed to reuse a saved value for a differently named field
FUZZY_THRESHOLD = _int_env("PDFFORMKIT_FUZZY_THRESHOLD", 70)

STORAGE_DIR = Path(os.getenv("PDFFORMKIT_STORAGE_DIR", str(Path.home() / ".pdfformkit"))).expanduser()

# Placeholder used when a field's first widget has no readable /Rect
DEFAULT_RECT = (0.0, 0.0, 200.0, 30.0)

# Case-insensitive fill values that check a checkbox; anything else unchecks it
CHECKED_VALUES = frozenset({"true", "1", "yes"})

# The header may be preceded by junk; readers only look this far
HEADER_SEARCH_BYTES = 1024


__all__ = [
    "CHECKED_VALUES",
    "DEFAULT_RECT",
    "FUZZY_THRESHOLD",
    "HEADER_SEARCH_BYTES",
    "LOG_FORMAT",
    "LOG_LEVEL",
    "MAX_UPLOAD_BYTES",
    "PDF_CONTENT_TYPE",
    "STORAGE_DIR",
]
