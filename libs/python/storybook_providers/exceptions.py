"""Custom exceptions used by generator adapters."""

from __future__ import annotations

_RATE_LIMIT_MARKERS = ("429", "resource_exhausted", "rate limit", "rate_limit")


class ProviderError(RuntimeError):
    """Base error raised for generator failures."""


class ProviderConfigError(ProviderError):
    """Raised when configuration is missing or invalid."""


class ProviderResponseError(ProviderError):
    """Raised when a generator returns an unusable response."""


class ProviderTransientError(ProviderError):
    """Raised for network failures and 5xx-class vendor errors."""


class ProviderRateLimitError(ProviderTransientError):
    """Raised when the vendor signals a rate limit or exhausted quota."""

    def __init__(self, message: str, *, status_code: int | None = 429) -> None:
        super().__init__(message)
        self.status_code = status_code


def is_rate_limited(error: BaseException) -> bool:
    """Return whether ``error`` signals a rate-limit condition.

    Adapters raise :class:`ProviderRateLimitError`, but errors from vendor SDKs or
    storage clients that slip through are also recognised by status code or message.
    """

    if isinstance(error, ProviderRateLimitError):
        return True
    for attr in ("status_code", "status", "code"):
        if getattr(error, attr, None) == 429:
            return True
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)
