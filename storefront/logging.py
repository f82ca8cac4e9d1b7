"""
Logging setup shared by every storefront module.

Usage:
    from storefront.logging import get_logger
    logger = get_logger(__name__)

Customer data must go through mask_email() / sanitize_*() before it is
logged: order and webhook payloads carry emails, names and free text.
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

# Libraries that log full request URLs (billing credentials travel in the body,
# but client-area URLs carry affiliate ids) at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_INJECTION_CHARS = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": None})


def configure_logging(level: str | None = None) -> None:
    """
    Install the stdout handler on the root logger.

    Runs once at import with LOG_LEVEL; a handler installed by the host
    (uvicorn, pytest) is left in place.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    numeric = logging.getLevelName(level_name)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))


configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _clean(value: object) -> str:
    # CWE-117: no forged log lines
    return str(value).translate(_INJECTION_CHARS)


def sanitize_id_for_logging(id_value: str | int | None) -> str:
    """Identifier as logged: escaped, first 12 characters, "N/A" when empty."""
    if id_value is None or id_value == "":
        return "N/A"
    return _clean(id_value)[:12]


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    if not value:
        return "N/A"
    safe = _clean(value)
    return safe if len(safe) <= max_length else safe[:max_length] + "..."


def mask_email(email: str | None) -> str:
    """
    Keep the first character and the domain only.

    Example:
        mask_email("jan@example.com") -> "j***@example.com"
    """
    if not email or "@" not in email:
        return "N/A"
    local, _, domain = email.partition("@")
    return _clean(f"{local[:1]}***@{domain}")


__all__ = [
    "LOG_FORMAT",
    "configure_logging",
    "get_logger",
    "mask_email",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
