"""
HTTP retry policy shared by page fetches and mailbox API calls.

- 429: wait for ``Retry-After`` seconds (default 30)
- 500/502/503/504 and connection errors: wait ``2 ** attempt`` seconds
- any other non-2xx: no retry
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

RETRYABLE_STATUSES = frozenset({500, 502, 503, 504})
TOO_MANY_REQUESTS = 429


def parse_retry_after(value: Optional[str], default: float) -> float:
    """Seconds from a ``Retry-After`` header; HTTP-date values fall back to the default."""
    if not value:
        return default
    try:
        seconds = float(value.strip())
    except ValueError:
        return default
    return seconds if seconds >= 0 else default


@dataclass
class RetryPolicy:
    """
    Bounded retry schedule.

    Attributes:
        max_attempts: Total attempts including the first one.
        default_retry_after: Wait on 429 when the header is missing.
    """
    max_attempts: int = 3
    default_retry_after: float = 30.0

    def is_retryable(self, status: int) -> bool:
        return status == TOO_MANY_REQUESTS or status in RETRYABLE_STATUSES

    def delay_for_status(self, status: int, attempt: int, retry_after: Optional[str] = None) -> float:
        """
        Wait before retrying a retryable status.

        Args:
            status: HTTP status of the failed attempt.
            attempt: Zero-based index of the failed attempt.
            retry_after: Raw ``Retry-After`` header, if any.
        """
        if status == TOO_MANY_REQUESTS:
            return parse_retry_after(retry_after, self.default_retry_after)
        return float(2 ** attempt)

    def delay_for_error(self, attempt: int) -> float:
        """Wait before retrying after a timeout or connection error."""
        return float(2 ** attempt)

    def has_attempts_left(self, attempt: int) -> bool:
        return attempt + 1 < self.max_attempts
