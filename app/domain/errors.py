from typing import Optional


class ProviderError(Exception):
    """Base class for failures reported by a catalog provider."""

    def __init__(self, message: str = "", provider: Optional[str] = None,
                 status: Optional[int] = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status = status


class Unauthorized(ProviderError):
    """Credential is invalid, expired or lacks ownership of the resource."""


AuthError = Unauthorized


class RateLimited(ProviderError):
    """Operation was rate limited by provider. Includes suggested wait time in milliseconds."""

    def __init__(self, retry_after_ms: int, message: str = "Rate limited",
                 provider: Optional[str] = None, status: Optional[int] = 429) -> None:
        super().__init__(message, provider=provider, status=status)
        self.retry_after_ms = retry_after_ms


class NotFound(ProviderError):
    """Requested resource was not found."""


class ValidationError(ProviderError):
    """Provider rejected the request as invalid."""


class UnknownProviderError(ProviderError):
    """Transient or unclassified provider or network failure."""


class WriteError(ProviderError):
    """Provider rejected a mutation (create, add or delete)."""

    def __init__(self, message: str = "", provider: Optional[str] = None,
                 status: Optional[int] = None, cause: Optional[Exception] = None) -> None:
        super().__init__(message, provider=provider, status=status)
        self.cause = cause


class JobError(Exception):
    """Job-level failure: the whole migration cannot proceed."""


def classify_status(status: Optional[int], provider: str, message: str,
                    retry_after: Optional[float] = None) -> ProviderError:
    """Map an HTTP status from a provider to the error taxonomy."""
    text = f"{provider}: HTTP {status}: {message}" if status else f"{provider}: {message}"
    if status in (401, 403):
        return Unauthorized(text, provider=provider, status=status)
    if status == 429:
        retry_after_ms = int(float(retry_after) * 1000) if retry_after else 1000
        return RateLimited(retry_after_ms=retry_after_ms, message=text, provider=provider)
    if status == 404:
        return NotFound(text, provider=provider, status=status)
    if status in (400, 409, 422):
        return ValidationError(text, provider=provider, status=status)
    return UnknownProviderError(text, provider=provider, status=status)
