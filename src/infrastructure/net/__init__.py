"""Shared HTTP helpers."""

from src.infrastructure.net.retry import RETRYABLE_STATUSES, RetryPolicy, parse_retry_after

__all__ = ["RETRYABLE_STATUSES", "RetryPolicy", "parse_retry_after"]
