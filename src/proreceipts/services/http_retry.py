"""Backoff for idempotent store reads.

Writes (insert, update, delete, audit append) are sent exactly once: a
dropped connection can arrive after the server committed the row, so
re-sending could duplicate it.  Only GETs go through ``retry_read``.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import requests.exceptions

T = TypeVar("T")

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 502, 503, 504})


class RetryableHTTPError(requests.exceptions.HTTPError):
    """A read came back with a status in RETRYABLE_STATUS_CODES."""

    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    RetryableHTTPError,
)


@dataclass(frozen=True)
class ReadBackoff:
    attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 15.0
    jitter: float = 0.25


READ_BACKOFF = ReadBackoff()


def backoff_delay(attempt: int, backoff: ReadBackoff = READ_BACKOFF) -> float:
    """Delay after failed attempt *attempt* (0-indexed): doubling, capped, jittered."""
    base = min(backoff.base_delay * 2**attempt, backoff.max_delay)
    spread = base * backoff.jitter
    return max(0.0, base + random.uniform(-spread, spread))


def retry_read(
    func: Callable[[], T],
    *,
    action: str = "read",
    backoff: ReadBackoff = READ_BACKOFF,
    sleep_func: Callable[[float], object] = time.sleep,
) -> T:
    """Call *func()* until it succeeds or *backoff.attempts* is used up.

    Only RETRYABLE_ERRORS are retried; the last attempt's error propagates.
    """
    for attempt in range(1, backoff.attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            delay = backoff_delay(attempt - 1, backoff)
            logger.warning(
                "%s failed with %s, attempt %d/%d, next in %.1fs",
                action,
                type(exc).__name__,
                attempt,
                backoff.attempts,
                delay,
            )
            sleep_func(delay)
    return func()
