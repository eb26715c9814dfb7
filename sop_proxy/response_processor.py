"""
Processing of backend responses: status and header filtering, content decoding
and rewriting of backend URLs in the body.
"""

import codecs
import logging
import zlib
from typing import AsyncIterator, Optional, Protocol

import httpx
from starlette.datastructures import Headers
from starlette.responses import Response, StreamingResponse

from .base_types import InboundRequest, RewriteContext
from .config import DEFAULT_BUFFER_SIZE, ISO_8859_1
from .errors import IOFailure, UnsupportedEncodingError
from .security import HeaderBlockSet

log = logging.getLogger(__name__)

# The body is rewritten and re-measured, so these are never copied on the normal path
REWRITE_BLOCKED_HEADERS = ("content-length", "transfer-encoding", "content-encoding")
# Used to suppress the browser authentication dialog
SUPPRESSED_AUTH_BLOCKED_HEADERS = ("www-authenticate",)


class Decoder(Protocol):
    def decompress(self, data: bytes) -> bytes: ...

    def flush(self) -> bytes: ...


class DeflateDecoder:
    """
    Decodes "deflate" content. Servers send either zlib-wrapped or raw deflate
    streams for this coding; the format is detected on the first chunk.
    """

    def __init__(self):
        self._detected = False
        self._obj = zlib.decompressobj()

    def decompress(self, data: bytes) -> bytes:
        if self._detected or not data:
            return self._obj.decompress(data)
        self._detected = True
        try:
            return self._obj.decompress(data)
        except zlib.error:
            self._obj = zlib.decompressobj(-zlib.MAX_WBITS)
            return self._obj.decompress(data)

    def flush(self) -> bytes:
        return self._obj.flush()


def gzip_decoder() -> Decoder:
    return zlib.decompressobj(16 + zlib.MAX_WBITS)


def select_response_blacklist(status_code: int, inbound_headers: Headers) -> HeaderBlockSet:
    """
    Filter the headers to suppress the authentication dialog (only for 401 - unauthorized),
    otherwise drop the headers describing the original body.
    """
    if (
        status_code == 401
        and "authorization" in inbound_headers
        and "suppress-www-authenticate" in inbound_headers
    ):
        return HeaderBlockSet(SUPPRESSED_AUTH_BLOCKED_HEADERS)
    return HeaderBlockSet(REWRITE_BLOCKED_HEADERS)


def content_codings(headers: httpx.Headers) -> list[str]:
    """Content-Encoding header elements in declared order, lower-cased."""
    result = []
    for value in headers.get_list("content-encoding"):
        for element in value.split(","):
            coding = element.split(";", 1)[0].strip().lower()
            if coding:
                result.append(coding)
    return result


def decoder_for_content_encoding(codings: list[str]) -> Optional[Decoder]:
    """
    Returns the decoder for the first declared content coding;
    None means the content is passed as is.
    """
    if codings:
        log.debug("Content-Encoding in response:")
    for coding in codings:
        log.debug("    => codec: %s", coding)
        if coding in ("gzip", "x-gzip"):
            return gzip_decoder()
        if coding == "deflate":
            return DeflateDecoder()
        if coding == "identity":
            return None
        raise UnsupportedEncodingError(coding)
    return None


def has_entity(status_code: int) -> bool:
    return not (100 <= status_code < 200 or status_code in (204, 304))


def response_charset(backend_response: httpx.Response, default_charset: str = ISO_8859_1) -> str:
    """Charset declared by the backend, or the default when none (or an unknown one) is declared."""
    charset = backend_response.charset_encoding
    if not charset:
        return default_charset
    try:
        codecs.lookup(charset)
    except LookupError:
        log.warning("Unknown charset %r in backend response, using %s", charset, default_charset)
        return default_charset
    return charset


def rewrite_urls(content: str, rewrite_url: str, proxy_url: str) -> str:
    """Replaces every literal occurrence of rewrite_url by proxy_url."""
    if not rewrite_url:
        return content
    return content.replace(rewrite_url, proxy_url)


async def read_entity(backend_response: httpx.Response, decoder: Optional[Decoder]) -> bytes:
    chunks = []
    try:
        async for chunk in backend_response.aiter_raw():
            chunks.append(decoder.decompress(chunk) if decoder else chunk)
        if decoder:
            chunks.append(decoder.flush())
    except httpx.TransportError as e:
        raise IOFailure(f"Failed reading backend response body: {e}") from e
    except zlib.error as e:
        raise IOFailure(f"Failed decoding backend response body: {e}") from e
    return b"".join(chunks)


async def iter_chunks(content: bytes, size: int) -> AsyncIterator[bytes]:
    for offset in range(0, len(content), size):
        yield content[offset : offset + size]


async def process_backend_response(
    inbound: InboundRequest,
    backend_response: httpx.Response,
    rewrite: RewriteContext,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    default_charset: str = ISO_8859_1,
) -> Response:
    """
    Builds the response to the client from the (streamed) backend response.
    URLs of the destination are rewritten in the content so that
    internal URLs point to the proxy as well.
    """
    status_code = backend_response.status_code
    log.debug("backend response status code: %s", status_code)

    blocked_headers = select_response_blacklist(status_code, inbound.headers)
    entity = has_entity(status_code)
    # Fails before anything is written to the client
    decoder = decoder_for_content_encoding(content_codings(backend_response.headers)) if entity else None

    if entity:
        charset = response_charset(backend_response, default_charset)
        content = (await read_entity(backend_response, decoder)).decode(charset, errors="replace")
        log.debug("URL rewriting:")
        log.debug("    => rewriteUrl: %s", rewrite.rewrite_url)
        log.debug("    => proxyUrl: %s", rewrite.proxy_url)
        content_bytes = rewrite_urls(content, rewrite.rewrite_url, rewrite.proxy_url).encode(
            charset, errors="replace"
        )
        response = StreamingResponse(iter_chunks(content_bytes, buffer_size), status_code=status_code)
    else:
        response = Response(status_code=status_code)

    log.debug("backend response headers: ")
    for raw_name, raw_value in backend_response.headers.raw:
        name = raw_name.decode("latin-1").lower()
        if name in blocked_headers:
            log.debug("    => %s: blocked response header", name)
            continue
        # raw bytes, values are not re-encoded
        response.raw_headers.append((name.encode("latin-1"), raw_value))
        log.debug("    => %s: %s", name, raw_value.decode("latin-1"))

    if entity:
        # the body was decoded and re-measured
        del response.headers["content-encoding"]
        del response.headers["transfer-encoding"]
        response.headers["content-length"] = str(len(content_bytes))
    else:
        del response.headers["content-length"]
    return response
