"""Utility helpers for pdfformkit."""

from __future__ import annotations

import logging
import re
from typing import Optional

from . import config

_REQUIRED_NAME_PATTERN = re.compile(r"(\*|required|mandatory)", re.IGNORECASE)


def configure_logger(name: str) -> logging.Logger:
    """Return the named logger, attaching a stream handler on first use."""

    logger = logging.getLogger(name)
    level = getattr(logging, config.LOG_LEVEL, logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(config.LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def name_looks_required(name: str) -> bool:
    return bool(_REQUIRED_NAME_PATTERN.search(name))


def strip_pdf_suffix(filename: Optional[str]) -> Optional[str]:
    """Drop one trailing ``.pdf``. Only the lowercase suffix is removed."""

    if filename is None:
        return None
    if filename.endswith(".pdf"):
        return filename[: -len(".pdf")]
    return filename


def is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


__all__ = ["configure_logger", "is_blank", "name_looks_required", "strip_pdf_suffix"]
