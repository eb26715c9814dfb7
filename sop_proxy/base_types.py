"""Base types used in SOP-Proxy."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from starlette.datastructures import Headers
from starlette.requests import ClientDisconnect, Request

from .errors import IOFailure
from .paths import path_info as extract_path_info

log = logging.getLogger(__name__)

BODY_METHODS = ("POST", "PUT")


class ProxyState(str, Enum):
    RECEIVING_REQUEST = "receiving_request"
    RESOLVING_DESTINATION = "resolving_destination"
    BUILDING_BACKEND_REQUEST = "building_backend_request"
    EXECUTING_BACKEND_CALL = "executing_backend_call"
    PROCESSING_RESPONSE = "processing_response"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class InboundRequest:  # pylint: disable=too-many-instance-attributes
    """
    Snapshot of the request received by the proxy.
    Headers keep their order and duplicates; name lookups are case-insensitive.
    """

    method: str
    path_info: str
    query_string: str = ""
    headers: Headers = field(default_factory=Headers)
    body: Optional[bytes] = None
    scheme: str = "http"
    authority: str = ""
    context_path: str = ""
    servlet_path: str = ""

    @property
    def proxy_url(self) -> str:
        """External URL of the proxy for the used destination."""
        return f"{self.scheme}://{self.authority}{self.context_path}{self.servlet_path}".rstrip("/")

    @classmethod
    async def from_request(
        cls, request: Request, mount_path: str, destination_name: str
    ) -> "InboundRequest":
        scope = request.scope
        root_path = scope.get("root_path", "")
        raw_path = scope.get("raw_path")
        request_path = raw_path.decode("latin-1") if raw_path else scope.get("path", "")
        if root_path and request_path.startswith(root_path):
            request_path = request_path[len(root_path) :]

        body = None
        if request.method in BODY_METHODS:
            try:
                body = await request.body()
            except ClientDisconnect as e:
                raise IOFailure(f"Client disconnected while sending the request body: {e}") from e

        return cls(
            method=request.method,
            path_info=extract_path_info(request_path, mount_path, destination_name),
            query_string=scope.get("query_string", b"").decode("latin-1"),
            headers=Headers(raw=list(scope.get("headers", []))),
            body=body,
            scheme=request.url.scheme or "http",
            authority=request.url.netloc,
            context_path=root_path.rstrip("/"),
            servlet_path=f"{mount_path}/{destination_name}",
        )


@dataclass
class OutboundRequest:
    """Request to the backend service, built once and executed once."""

    method: str
    url: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: Optional[bytes] = None
    content_type: Optional[str] = None

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))

    def header_names(self) -> set[str]:
        return {name.lower() for name, _ in self.headers}

    def raw_headers(self) -> list[tuple[bytes, bytes]]:
        """Headers as sent on the wire; inbound values were decoded as ISO-8859-1."""
        return [(name.encode("latin-1"), value.encode("latin-1")) for name, value in self.headers]


@dataclass(frozen=True)
class RewriteContext:
    """
    rewrite_url: base URL of the destination, without trailing slash.
    proxy_url: URL of the proxy for this destination, replacing rewrite_url in response bodies.
    """

    rewrite_url: str
    proxy_url: str


@dataclass
class RequestContext:  # pylint: disable=too-many-instance-attributes
    """
    Stores information about a single proxied request/response cycle.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: ProxyState = ProxyState.RECEIVING_REQUEST
    destination_name: Optional[str] = field(default=None)
    inbound: Optional[InboundRequest] = field(default=None)
    outbound: Optional[OutboundRequest] = field(default=None)
    status_code: Optional[int] = field(default=None)
    error: Optional[Exception] = field(default=None)
    created_at: datetime = field(default_factory=datetime.now)
    duration: Optional[float] = field(default=None)

    def transition(self, state: ProxyState) -> None:
        log.debug("[%s] %s -> %s", self.id, self.state.value, state.value)
        self.state = state

    def fail(self, error: Exception) -> None:
        self.error = error
        self.transition(ProxyState.FAILED)

    def to_dict(self) -> dict:
        """Export as dictionary."""
        return {
            "id": self.id,
            "state": self.state.value,
            "destination_name": self.destination_name,
            "method": self.inbound.method if self.inbound else None,
            "url": self.outbound.url if self.outbound else None,
            "status_code": self.status_code,
            "error": str(self.error) if self.error else None,
            "created_at": self.created_at.isoformat(),
            "duration": self.duration,
        }
