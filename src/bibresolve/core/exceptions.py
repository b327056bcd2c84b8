"""Custom exception hierarchy for bibresolve."""

from typing import Any


class BibResolveError(Exception):
    """Base exception for all bibresolve errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RegistrationError(BibResolveError):
    """Provider registration or capability dispatch misuse."""

    pass


class ProviderError(BibResolveError):
    """A provider call did not produce a usable answer."""

    def __init__(
        self,
        message: str,
        source: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.source = source
        self.status_code = status_code


class ProviderUnavailableError(ProviderError):
    """External provider API is unreachable or answered with a server error."""

    pass


class ProviderResponseError(ProviderError):
    """External provider returned a payload of unexpected shape."""

    pass


class RateLimitError(ProviderError):
    """Provider kept answering 429 after all retries."""

    def __init__(
        self,
        message: str,
        source: str,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, source, status_code=429, details=details)
        self.retry_after = retry_after


class QuotaExceededError(ProviderError):
    """Metered provider's daily quota would be exceeded."""

    def __init__(
        self,
        message: str,
        source: str,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, source, details=details)
        self.reason = reason


class StoreError(BibResolveError):
    """Shared key-value store operation failed."""

    pass


class PersistenceError(BibResolveError):
    """Persisting an enriched record failed."""

    pass
