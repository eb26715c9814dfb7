"""
Destinations: named backend targets the proxy forwards requests to.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Union

import httpx

from .errors import DestinationNotFound
from .utils import resolve_instance_or_callable

log = logging.getLogger(__name__)

# Content codings the response processor is able to decode.
# Used only when the inbound request carries no Accept-Encoding of its own.
SUPPORTED_ACCEPT_ENCODING = "gzip, deflate"


@dataclass(frozen=True)
class Destination:
    """
    Backend target resolved from a destination name.

    client_options are passed to httpx.AsyncClient (timeout, verify, auth, transport, ...).
    """

    name: str
    url: str
    client_options: dict[str, Any] = field(default_factory=dict)

    @property
    def base_url(self) -> str:
        """Destination URL without trailing slash, the URL rewritten in response bodies."""
        return self.url[:-1] if self.url.endswith("/") else self.url

    def create_http_client(self) -> httpx.AsyncClient:
        """Returns a new client for calls to this destination; the caller closes it."""
        options = dict(self.client_options)
        headers = {"accept-encoding": SUPPORTED_ACCEPT_ENCODING, **options.pop("headers", {})}
        return httpx.AsyncClient(headers=headers, **options)


class DestinationResolver(ABC):
    """Resolves destination names to backend targets."""

    @abstractmethod
    def get_destination(self, name: str) -> Union[Destination, str]:
        """Returns the destination (or just its URL); raises on unknown names."""


class StaticDestinationResolver(DestinationResolver):
    """
    Destinations defined in the configuration, e.g.:

        destinations:
          northwind: https://services.odata.org/V2/Northwind/Northwind.svc/
          erp:
            url: http://erp.internal:8000/sap/opu/odata
            timeout: 30
    """

    def __init__(self, destinations: dict[str, Union[str, dict[str, Any]]] | None = None):
        self.destinations = dict(destinations or {})

    def get_destination(self, name: str) -> Destination:
        if name not in self.destinations:
            raise KeyError(f"destination {name!r} is not configured")
        entry = self.destinations[name]
        if isinstance(entry, str):
            return Destination(name=name, url=entry)
        options = dict(entry)
        url = options.pop("url", None)
        if not url:
            raise ValueError(f"destination {name!r} has no url")
        return Destination(name=name, url=url, client_options=options)


TResolver = Union[DestinationResolver, Callable[[str], Union[Destination, str]]]


def create_resolver(resolver: Any, destinations: dict | None = None) -> TResolver:
    """
    Create the resolver from its configuration value;
    without one, destinations from the configuration are used.
    """
    if resolver is None:
        return StaticDestinationResolver(destinations)
    resolved = resolve_instance_or_callable(
        resolver, allow_types=[DestinationResolver], debug_name="destination resolver"
    )
    if isinstance(resolved, type):
        resolved = resolved()
    return resolved


def validate_base_url(url: Any) -> str:
    if not isinstance(url, str) or not url:
        raise ValueError("destination URL is empty")
    parsed = httpx.URL(url)
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValueError(f"destination URL {url!r} is not an absolute http(s) URL")
    return url


def resolve_destination(resolver: TResolver, name: str) -> Destination:
    """
    Resolve the destination name; any failure raises DestinationNotFound.
    The returned destination always carries an absolute http(s) URL.
    """
    try:
        if isinstance(resolver, DestinationResolver) or hasattr(resolver, "get_destination"):
            destination = resolver.get_destination(name)
        else:
            destination = resolver(name)
        if isinstance(destination, str):
            destination = Destination(name=name, url=destination)
        if not isinstance(destination, Destination):
            raise TypeError(f"resolver returned {type(destination).__name__} instead of Destination")
        validate_base_url(destination.url)
    except DestinationNotFound:
        raise
    except Exception as e:  # pylint: disable=broad-exception-caught
        log.error("Unable to resolve destination %s: %s", name, e)
        raise DestinationNotFound(name, str(e)) from e
    log.debug("destination %s resolved to %s", name, destination.url)
    return destination
