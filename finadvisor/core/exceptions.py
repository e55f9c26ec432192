"""
Exception hierarchy for the Finance Advisor AI service.

Upstream errors carry a stable ``code`` and the HTTP status the API answers
with, so rate-limit and quota conditions stay distinguishable from generic
failures all the way to the client.
"""
from typing import Optional


class FinAdvisorError(Exception):
    """Base exception for all service errors."""


# =============================================================================
# Upstream generation backend
# =============================================================================

class UpstreamError(FinAdvisorError):
    """Base class for failures of the language-model gateway."""

    code = "upstream_error"
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.upstream_status = upstream_status


class UpstreamRateLimited(UpstreamError):
    """Upstream answered 429 - the caller should retry later."""

    code = "rate_limited"
    status_code = 429


class UpstreamQuotaExhausted(UpstreamError):
    """Upstream answered 402 - credits or quota are used up."""

    code = "quota_exhausted"
    status_code = 402


class UpstreamGenericFailure(UpstreamError):
    """Any other non-success status, transport error or timeout."""


# =============================================================================
# Cache store
# =============================================================================

class CacheStoreError(FinAdvisorError):
    """Raised by the cache repository when the store cannot be reached."""
