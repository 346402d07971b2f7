"""Error taxonomy for remote document retrieval."""

from __future__ import annotations

from typing import ClassVar


class ConfigurationError(Exception):
    """Raised when fetchers cannot be built from the supplied settings."""


class FetchError(Exception):
    """Base class for every failure surfaced by a fetcher."""

    kind: ClassVar[str] = "error"
    status_code: ClassVar[int | None] = None

    def __init__(self, message: str | None = None, *, url: str | None = None) -> None:
        self.url = url
        super().__init__(message or self._default_message())

    def _default_message(self) -> str:
        label = self.kind.replace("_", " ").capitalize()
        if self.url:
            return f"{label}: {self.url}"
        return label


class BadRequestError(FetchError):
    """Malformed URL, malformed request, or transport-level failure."""

    kind = "bad_request"
    status_code = 400


class MalformedFormDataError(BadRequestError):
    """Form data contains a pair without a key/value separator."""

    kind = "malformed_form_data"


class UnauthorizedError(FetchError):
    kind = "unauthorized"
    status_code = 401


class ForbiddenError(FetchError):
    kind = "forbidden"
    status_code = 403


class NotFoundError(FetchError):
    kind = "not_found"
    status_code = 404


class ProxyAuthenticationRequiredError(FetchError):
    kind = "proxy_authentication_required"
    status_code = 407


class InternalServerError(FetchError):
    kind = "internal_server_error"
    status_code = 500


class BadGatewayError(FetchError):
    kind = "bad_gateway"
    status_code = 502


class GatewayTimeoutError(FetchError):
    kind = "gateway_timeout"
    status_code = 504


class UnknownFetchError(FetchError):
    """Response status outside the mapped set."""

    kind = "unknown"

    def __init__(
        self,
        message: str | None = None,
        *,
        url: str | None = None,
        status: int | None = None,
    ) -> None:
        self.status = status
        if message is None and status is not None:
            message = f"Unknown error (HTTP {status})" + (f": {url}" if url else "")
        super().__init__(message, url=url)


class BrowserError(FetchError):
    """Failures raised only by the browser-driven fetcher."""

    kind = "browser_error"


class DiscoveryError(BrowserError):
    """No debuggable page target could be found or connected to."""

    kind = "discovery_failed"


class CapabilityActivationError(BrowserError):
    kind = "capability_activation_failed"


class NavigationTimeoutError(BrowserError):
    """DOM content loaded was not observed within the navigation window."""

    kind = "navigation_timeout"


class NavigationError(BrowserError):
    kind = "navigation_failed"


class ScriptError(BrowserError):
    kind = "script_failed"


class ProtocolError(BrowserError):
    kind = "protocol_error"


class FetchAbortedError(BrowserError):
    """The call's fetch scope was aborted by a background listener."""

    kind = "aborted"


_STATUS_ERRORS: dict[int, type[FetchError]] = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: ForbiddenError,
    404: NotFoundError,
    407: ProxyAuthenticationRequiredError,
    500: InternalServerError,
    502: BadGatewayError,
    504: GatewayTimeoutError,
}


def error_for_status(status: int, url: str | None = None) -> FetchError:
    """Map a non-success HTTP status code to its error instance."""

    error_cls = _STATUS_ERRORS.get(status)
    if error_cls is None:
        return UnknownFetchError(url=url, status=status)
    return error_cls(f"HTTP {status}" + (f" for {url}" if url else ""), url=url)


__all__ = [
    "BadGatewayError",
    "BadRequestError",
    "BrowserError",
    "CapabilityActivationError",
    "ConfigurationError",
    "DiscoveryError",
    "FetchAbortedError",
    "FetchError",
    "ForbiddenError",
    "GatewayTimeoutError",
    "InternalServerError",
    "MalformedFormDataError",
    "NavigationError",
    "NavigationTimeoutError",
    "NotFoundError",
    "ProtocolError",
    "ProxyAuthenticationRequiredError",
    "ScriptError",
    "UnauthorizedError",
    "UnknownFetchError",
    "error_for_status",
]
