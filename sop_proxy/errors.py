"""Errors raised by the proxy pipeline."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

USAGE = (
    "Usage of proxy:\n"
    "It is assumed that the URL to the proxy follows the pattern\n"
    "==> /<context-path>/<mount-path>/<destination-name>/<relative-path-below-destination-target>"
)


class ProxyError(Exception):
    """
    Base class for failures of a single proxied request.
    Rendered to the caller as a JSON error body with a 5xx status code.
    """

    status_code: int = 500
    error_type: str = "proxy_error"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code
        self.headers = headers or {}

    @classmethod
    def register(cls, app: FastAPI) -> None:
        """Register exception handler with FastAPI app."""
        app.add_exception_handler(cls, cls._handler)

    @staticmethod
    async def _handler(request: Request, exc: "ProxyError") -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            headers=exc.headers,
            content={
                "error": {
                    "message": exc.message,
                    "type": exc.error_type,
                    "code": exc.code,
                }
            },
        )


def usage_message(message: str) -> str:
    return f"Invalid usage: {message}\n\n{USAGE}"


class ConfigurationError(ProxyError):
    """No destination name could be read from the mount path."""

    error_type = "configuration_error"

    def __init__(self, message: str, **kwargs):
        super().__init__(usage_message(message), **kwargs)


class DestinationNotFound(ProxyError):
    """The destination name could not be resolved to a usable base URL."""

    error_type = "destination_not_found"

    def __init__(self, destination_name: str, reason: str | None = None, **kwargs):
        message = f"Unable to resolve destination {destination_name}"
        if reason:
            message += f" ({reason})"
        super().__init__(usage_message(message), **kwargs)
        self.destination_name = destination_name


class BackendUnavailable(ProxyError):
    status_code = 502
    error_type = "backend_unavailable"


class UnsupportedEncodingError(ProxyError):
    error_type = "unsupported_encoding"

    def __init__(self, encoding: str, **kwargs):
        super().__init__(f"Unsupported Content-Encoding: {encoding}", **kwargs)
        self.encoding = encoding


class UnsupportedMethodError(ProxyError):
    status_code = 501
    error_type = "unsupported_method"

    def __init__(self, method: str, **kwargs):
        super().__init__(f"HTTP method {method} is not supported by the proxy", **kwargs)
        self.method = method


class IOFailure(ProxyError):
    """Reading the inbound body or the backend body failed."""

    error_type = "io_failure"
