"""Shared utilities: errors, retries, HTTP helpers and formatting."""

from anitorrent.utils.errors import AnitorrentError
from anitorrent.utils.formatting import format_bytes, format_duration
from anitorrent.utils.retry import RetryConfig, retrying

__all__ = [
    "AnitorrentError",
    "RetryConfig",
    "format_bytes",
    "format_duration",
    "retrying",
]
