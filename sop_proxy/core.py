"""
Per-request proxy pipeline:
resolve destination -> build backend request -> execute -> process response.
"""

import logging
import time

import httpx
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response

from .base_types import InboundRequest, OutboundRequest, ProxyState, RequestContext, RewriteContext
from .bootstrap import env
from .destinations import Destination, resolve_destination
from .errors import BackendUnavailable, ConfigurationError, DestinationNotFound, ProxyError
from .paths import join_url, relative_path, split_destination
from .request_builder import build_backend_request
from .response_processor import process_backend_response
from .security import merged_block_set

log = logging.getLogger(__name__)


def get_destination(destination_name: str) -> Destination:
    try:
        resolver = env.resolver
    except Exception as e:  # pylint: disable=broad-exception-caught
        log.error("Destination resolver cannot be initialized: %s", e)
        raise DestinationNotFound(destination_name, f"resolver initialization failed: {e}") from e
    return resolve_destination(resolver, destination_name)


async def execute(client: httpx.AsyncClient, backend_request: OutboundRequest) -> httpx.Response:
    """Sends the backend request; the returned response is streamed and must be closed."""
    try:
        request = client.build_request(
            backend_request.method,
            backend_request.url,
            headers=backend_request.raw_headers(),
            content=backend_request.body,
        )
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"Invalid backend URL {backend_request.url}: {e}") from e
    try:
        return await client.send(request, stream=True)
    except httpx.TransportError as e:
        raise BackendUnavailable(
            f"Backend request {backend_request.method} {backend_request.url} failed: {e!r}"
        ) from e


def finish(ctx: RequestContext) -> None:
    ctx.duration = time.time() - ctx.created_at.timestamp()
    ctx.transition(ProxyState.DONE)
    log.debug(">>>>>>>>>>>> end request %s (%.3fs)", ctx.id, ctx.duration)


async def process_request(ctx: RequestContext, request: Request) -> Response:
    config = env.config
    if not config.enabled:
        raise ProxyError("Proxy is disabled", status_code=503, code="disabled")

    # read destination and relative service path from URL
    destination_name = split_destination(
        f"{config.mount_path}/{request.path_params.get('destination', '')}"
    )
    ctx.destination_name = destination_name
    ctx.inbound = inbound = await InboundRequest.from_request(
        request, config.mount_path, destination_name
    )
    url_to_service = relative_path(inbound.path_info, inbound.query_string)

    ctx.transition(ProxyState.RESOLVING_DESTINATION)
    destination = get_destination(destination_name)

    ctx.transition(ProxyState.BUILDING_BACKEND_REQUEST)
    block_set = merged_block_set(env.security_policy)
    ctx.outbound = backend_request = build_backend_request(
        inbound, join_url(destination.url, url_to_service), block_set
    )
    rewrite = RewriteContext(rewrite_url=destination.base_url, proxy_url=inbound.proxy_url)

    async with destination.create_http_client() as client:
        ctx.transition(ProxyState.EXECUTING_BACKEND_CALL)
        backend_response = await execute(client, backend_request)
        try:
            ctx.transition(ProxyState.PROCESSING_RESPONSE)
            response = await process_backend_response(
                inbound,
                backend_response,
                rewrite,
                buffer_size=config.buffer_size,
                default_charset=config.default_charset,
            )
        finally:
            await backend_response.aclose()

    ctx.status_code = response.status_code
    response.background = BackgroundTask(finish, ctx)
    return response


async def proxy_request(request: Request) -> Response:
    """Proxies the request to the backend service of the destination given in the URL."""
    ctx = RequestContext()
    log.debug(">>>>>>>>>>>> start request %s: %s %s", ctx.id, request.method, request.url.path)
    try:
        return await process_request(ctx, request)
    except ProxyError as e:
        ctx.fail(e)
        log.error("Request %s to destination %s failed: %s", ctx.id, ctx.destination_name, e.message)
        raise
    except Exception as e:
        ctx.fail(e)
        log.exception("Request %s to destination %s failed", ctx.id, ctx.destination_name)
        raise
