"""
Custom exceptions for the application.
"""

import math
from typing import Any, Mapping, Optional


class ChatStreamError(Exception):
    """Base exception for chatstream."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(ChatStreamError):
    """Resource not found."""

    pass


class ValidationError(ChatStreamError):
    """Validation error. `missing` lists the absent request fields."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message, details={"missing": list(missing or [])})
        self.missing = list(missing or [])


class AuthenticationError(ChatStreamError):
    """Authentication failed."""

    pass


class AuthorizationError(ChatStreamError):
    """Authorization failed (caller does not own the resource)."""

    pass


class RateLimitedError(ChatStreamError):
    """Upstream request budget exhausted; retry after `wait_seconds`."""

    def __init__(self, wait_seconds: float):
        wait = max(1, math.ceil(wait_seconds))
        super().__init__(f"Rate limited, retry in {wait}s", details={"wait_seconds": wait})
        self.wait_seconds = wait


class LLMError(ChatStreamError):
    """LLM-related error."""

    pass


class UpstreamError(LLMError):
    """Upstream provider call failed."""

    pass


class UpstreamRateLimitError(UpstreamError):
    """Upstream provider rejected the call with a rate-limit response."""

    def __init__(self, message: str, headers: Optional[Mapping[str, str]] = None):
        super().__init__(message, details={"headers": dict(headers or {})})
        self.headers = dict(headers or {})


class InfrastructureError(ChatStreamError):
    """Infrastructure-related error (DB, external services, etc.)."""

    pass


class ChannelClosedError(ChatStreamError):
    """Write attempted on a closed or saturated push channel."""

    pass
