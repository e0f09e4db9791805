"""Logging utilities for sync runs.

Provides sanitization of upstream values before they reach log output and a
timing helper used around imports and exports.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)


def sanitize_for_log(value: Any, max_length: int = 1000) -> Any:
    """Sanitize a value for safe logging.

    Prevents log injection by removing CR/LF and control characters.
    Recursively sanitizes dicts, lists, tuples, and sets.
    Truncates strings longer than max_length.

    Args:
        value: The value to sanitize.
        max_length: Maximum string length before truncation.

    Returns:
        Sanitized value safe for logging.
    """

    def clean_string(text: str) -> str:
        cleaned = text.replace("\r\n", " ").replace("\r", " ").replace("\n", " ")
        cleaned = "".join(ch for ch in cleaned if ch >= " " and ch != "\x7f")
        if len(cleaned) > max_length:
            return cleaned[:max_length] + "...[truncated]"
        return cleaned

    if value is None:
        return ""

    if isinstance(value, str):
        return clean_string(value)

    if isinstance(value, dict):
        return {
            clean_string(str(k)): sanitize_for_log(v, max_length)
            for k, v in value.items()
        }

    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(elem, max_length) for elem in value]

    return clean_string(str(value))


@contextmanager
def log_duration(name: str, log: Optional[logging.Logger] = None) -> Iterator[None]:
    """Log how long the wrapped block took, even when it raises."""
    start = time.monotonic()
    try:
        yield
    finally:
        (log or logger).info("%s took %.3fs", name, time.monotonic() - start)
