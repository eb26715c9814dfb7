"""
Builds the backend request from the request received by the proxy.
"""

import logging

from starlette.datastructures import Headers

from .base_types import BODY_METHODS, InboundRequest, OutboundRequest
from .errors import UnsupportedMethodError
from .security import HeaderBlockSet

log = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST", "PUT", "DELETE")


def remove_jsessionid(cookie_header: str) -> str:
    """
    Removes the "JSESSIONID=<value>;" segment from a Cookie header value.
    A trailing JSESSIONID without terminating ";" is cut off up to the end of the value.
    """
    begin = cookie_header.find("JSESSIONID")
    if begin == -1:
        return cookie_header
    end = cookie_header.find(";", begin + 12)
    if end == -1:
        return cookie_header[:begin]
    return cookie_header.replace(cookie_header[begin:end] + ";", "")


def copy_request_headers(headers: Headers, block_set: HeaderBlockSet) -> list[tuple[str, str]]:
    """
    Copies request headers, keeping order and repeated headers, while
    filtering the blocked ones.
    """
    copied = []
    for name, value in headers.items():
        # NOTE: JSESSIONID is stripped only from cookie values listed in the block set
        if name.lower() == "cookie" and value.lower() in block_set:
            log.debug("Cookie header => %s", value)
            copied.append((name, remove_jsessionid(value)))
            continue
        if name in block_set:
            log.debug("    => %s: blocked request header", name)
            continue
        copied.append((name, value))
        log.debug("    => %s: %s", name, value)
    return copied


def build_backend_request(
    inbound: InboundRequest, target_url: str, block_set: HeaderBlockSet
) -> OutboundRequest:
    """
    Returns the request that points to the backend service at target_url.
    Headers of the origin request are copied, except the blocked ones.
    """
    method = inbound.method.upper()
    log.debug("HTTP method: %s", method)
    if method not in SUPPORTED_METHODS:
        raise UnsupportedMethodError(method)

    backend_request = OutboundRequest(method=method, url=target_url)
    if method in BODY_METHODS:
        backend_request.body = inbound.body or b""
        backend_request.content_type = inbound.headers.get("content-type")

    log.debug("backend request headers:")
    backend_request.headers.extend(copy_request_headers(inbound.headers, block_set))
    if backend_request.content_type and "content-type" not in backend_request.header_names():
        backend_request.add_header("Content-Type", backend_request.content_type)
    return backend_request
