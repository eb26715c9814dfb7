"""
FastAPI application of SOP-Proxy.
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .bootstrap import env
from .core import proxy_request
from .errors import ProxyError

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def health() -> JSONResponse:
    return JSONResponse({"status": "healthy"})


def create_app() -> FastAPI:
    """Create the web application; the environment must be bootstrapped before."""
    mount_path = env.config.mount_path
    app = FastAPI(
        title="SOP-Proxy",
        description="Same-origin-policy preserving reverse proxy for configured destinations",
    )
    ProxyError.register(app)
    app.add_api_route("/health", health, methods=["GET"], include_in_schema=False)
    for path in (
        mount_path,
        mount_path + "/",
        mount_path + "/{destination}",
        mount_path + "/{destination}/{path:path}",
    ):
        app.add_api_route(path, proxy_request, methods=PROXY_METHODS, include_in_schema=False)
    return app
