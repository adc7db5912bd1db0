"""Application-wide exception hierarchy for Fediverse Reader.

All custom exceptions subclass ``FediverseReaderError``, enabling
consistent error handling and structured logging across the application.

Hierarchy::

    FediverseReaderError
    ├── FetchError                 (url, status_code)
    │   └── FetchTimeoutError
    ├── ResolutionError            (classified: ClassifiedError)
    │   └── ObjectUnavailableError
    ├── InvalidHandleError
    └── SearchError
        ├── SearchConfigurationError
        └── SearchProviderError
            ├── SearchAuthError
            └── SearchRateLimitError   (retry_after: float)
"""

from __future__ import annotations

from fediverse_reader.core.schemas.resolution import ClassifiedError, ErrorKind


class FediverseReaderError(Exception):
    """Base class for all Fediverse Reader exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Fetcher boundary exceptions
# ---------------------------------------------------------------------------


class FetchError(FediverseReaderError):
    """Raised by an object fetcher when a remote request fails.

    The message keeps the wording of the underlying failure (``"HTTP 403
    Forbidden from ..."``, ``"fetch failed: [Errno 111] Connection refused"``)
    because the failure classifier inspects it.

    Args:
        message: Human-readable description of the failure.
        url: URL that was being fetched.
        status_code: HTTP status code when the server answered, else ``None``.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class FetchTimeoutError(FetchError):
    """Raised when a remote request exceeds its per-fetch timeout."""


# ---------------------------------------------------------------------------
# Resolution exceptions
# ---------------------------------------------------------------------------


class ResolutionError(FediverseReaderError):
    """Raised when an identifier cannot be resolved.

    Always carries the :class:`ClassifiedError` that explains why, so callers
    never need to inspect the original transport exception (which is kept as
    ``__cause__`` for logging).

    Args:
        classified: Classified failure.
    """

    def __init__(self, classified: ClassifiedError) -> None:
        super().__init__(f"{classified.kind.value}: {classified.detail}")
        self.classified = classified

    @property
    def kind(self) -> ErrorKind:
        return self.classified.kind


class ObjectUnavailableError(ResolutionError):
    """Raised when the fetch succeeded but produced no usable object.

    Covers a missing object, an object of the wrong shape (e.g. an actor where
    a post was expected) and a post whose author cannot be resolved.  Always
    classified as ``not_found``.

    Args:
        hostname: Host the identifier points at.
        detail: What was missing.
    """

    def __init__(self, hostname: str, detail: str) -> None:
        super().__init__(
            ClassifiedError(kind=ErrorKind.NOT_FOUND, hostname=hostname, detail=detail)
        )


class InvalidHandleError(FediverseReaderError):
    """Raised when a string expected to be ``@user@domain`` is not.

    Args:
        value: The offending input.
    """

    def __init__(self, value: str) -> None:
        super().__init__(
            f"Invalid handle format '{value}'. Expected: @username@server.com"
        )
        self.value = value


# ---------------------------------------------------------------------------
# Keyword search exceptions
# ---------------------------------------------------------------------------


class SearchError(FediverseReaderError):
    """Base class for keyword search provider errors."""


class SearchConfigurationError(SearchError):
    """Raised when the search provider is not configured (no bearer token).

    This is a deployment problem, not a resolution failure, and is reported
    as such by the API.
    """


class SearchProviderError(SearchError):
    """Raised when the search provider answers with an error.

    Args:
        message: Human-readable description of the failure.
        status_code: HTTP status code from the provider, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SearchAuthError(SearchProviderError):
    """Raised when the provider rejects the bearer token (HTTP 401)."""


class SearchRateLimitError(SearchProviderError):
    """Raised when the provider rate-limits the search request.

    Args:
        message: Human-readable description of the rate limit.
        retry_after: Seconds to wait before retrying. Defaults to 60.
    """

    def __init__(self, message: str, retry_after: float = 60.0) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after
