"""Utility modules for NullAudit.

This package contains shared utilities:
- helpers: ids, clamping, language detection
- retry: Retry logic and retryable error types for reviewer calls
"""

from nullaudit.utils.helpers import (
    clamp01,
    detect_language,
    generate_session_id,
    now_ms,
)
from nullaudit.utils.retry import (
    ProviderRateLimitError,
    RetryableError,
    RetryConfig,
    ServiceUnavailableError,
    retry_async,
)

__all__ = [
    # helpers
    "clamp01",
    "detect_language",
    "generate_session_id",
    "now_ms",
    # retry
    "ProviderRateLimitError",
    "RetryableError",
    "RetryConfig",
    "ServiceUnavailableError",
    "retry_async",
]
