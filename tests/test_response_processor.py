import gzip
import zlib

import httpx
import pytest
from starlette.datastructures import Headers

from sop_proxy.base_types import InboundRequest, RewriteContext
from sop_proxy.errors import IOFailure, UnsupportedEncodingError
from sop_proxy.response_processor import (
    content_codings,
    process_backend_response,
    rewrite_urls,
    select_response_blacklist,
)

REWRITE = RewriteContext(rewrite_url="http://backend/api", proxy_url="http://proxy.local/proxy/d1")


def inbound(*header_items: tuple[str, str]) -> InboundRequest:
    return InboundRequest(
        method="GET",
        path_info="d1/x",
        headers=Headers(raw=[(k.encode(), v.encode()) for k, v in header_items]),
    )


def backend(status_code=200, headers=None, body=b"") -> httpx.Response:
    return httpx.Response(status_code, headers=headers or [], stream=httpx.ByteStream(body))


async def read_body(response) -> bytes:
    return b"".join([chunk async for chunk in response.body_iterator])


def test_rewrite_urls_is_literal():
    assert rewrite_urls("no urls here", "http://backend/api", "http://p") == "no urls here"
    assert rewrite_urls("<a href='http://backend/api/x'>", "http://backend/api", "http://p") == (
        "<a href='http://p/x'>"
    )
    # pattern metacharacters are not interpreted
    assert rewrite_urls("http://h/aXb(c)", "http://h/a.b(c)", "P") == "http://h/aXb(c)"
    assert rewrite_urls("http://h/a.b(c)/1 http://h/a.b(c)/2", "http://h/a.b(c)", "P") == "P/1 P/2"


def test_select_response_blacklist():
    auth = ("authorization", "Basic x")
    suppress = ("suppress-www-authenticate", "true")
    assert set(select_response_blacklist(401, inbound(auth, suppress).headers)) == {"www-authenticate"}
    assert "content-length" in select_response_blacklist(401, inbound(auth).headers)
    assert "transfer-encoding" in select_response_blacklist(200, inbound(auth, suppress).headers)


def test_content_codings():
    headers = httpx.Headers([("Content-Encoding", "GZIP, identity"), ("content-encoding", "br;q=1")])
    assert content_codings(headers) == ["gzip", "identity", "br"]
    assert content_codings(httpx.Headers()) == []


@pytest.mark.parametrize("coding", ["gzip", "x-gzip"])
async def test_gzip_content_is_decoded_and_rewritten(coding):
    payload = b"<a href='http://backend/api/orders?id=1'>orders</a>"
    response = await process_backend_response(
        inbound(),
        backend(
            headers=[
                ("content-type", "text/html; charset=utf-8"),
                ("content-encoding", coding),
                ("transfer-encoding", "chunked"),
                ("x-backend", "1"),
            ],
            body=gzip.compress(payload),
        ),
        REWRITE,
    )
    expected = b"<a href='http://proxy.local/proxy/d1/orders?id=1'>orders</a>"
    assert response.status_code == 200
    assert await read_body(response) == expected
    assert "content-encoding" not in response.headers
    assert "transfer-encoding" not in response.headers
    assert response.headers["content-length"] == str(len(expected))
    assert response.headers["x-backend"] == "1"
    assert response.headers["content-type"] == "text/html; charset=utf-8"


@pytest.mark.parametrize("compress", [zlib.compress, lambda data: zlib.compress(data)[2:-4]])
async def test_deflate_content(compress):
    response = await process_backend_response(
        inbound(),
        backend(headers=[("content-encoding", "deflate")], body=compress(b"see http://backend/api")),
        REWRITE,
    )
    assert await read_body(response) == b"see http://proxy.local/proxy/d1"


async def test_body_without_rewrite_url_is_unchanged():
    payload = bytes(range(256))
    response = await process_backend_response(
        inbound(),
        backend(headers=[("content-encoding", "identity"), ("content-length", "256")], body=payload),
        REWRITE,
    )
    assert await read_body(response) == payload
    assert response.headers.getlist("content-length") == ["256"]


async def test_charset_used_for_content_length():
    response = await process_backend_response(
        inbound(),
        backend(
            headers=[("content-type", "text/plain; charset=UTF-8")],
            body="Grüße von http://backend/api".encode("utf-8"),
        ),
        REWRITE,
    )
    expected = "Grüße von http://proxy.local/proxy/d1".encode("utf-8")
    assert await read_body(response) == expected
    assert response.headers["content-length"] == str(len(expected))


async def test_unsupported_content_encoding():
    with pytest.raises(UnsupportedEncodingError, match="br"):
        await process_backend_response(
            inbound(), backend(headers=[("content-encoding", "br")], body=b"\x0b\x02\x80"), REWRITE
        )


async def test_www_authenticate_suppressed():
    response = await process_backend_response(
        inbound(("authorization", "Basic x"), ("suppress-www-authenticate", "1")),
        backend(
            401,
            headers=[
                ("www-authenticate", 'Basic realm="backend"'),
                ("x-request-id", "42"),
                ("content-type", "text/plain"),
            ],
            body=b"unauthorized",
        ),
        REWRITE,
    )
    assert response.status_code == 401
    assert "www-authenticate" not in response.headers
    assert response.headers["x-request-id"] == "42"
    assert response.headers["content-type"] == "text/plain"
    assert await read_body(response) == b"unauthorized"


async def test_www_authenticate_kept_without_suppress_header():
    response = await process_backend_response(
        inbound(("authorization", "Basic x")),
        backend(401, headers=[("www-authenticate", "Basic")], body=b"no"),
        REWRITE,
    )
    assert response.headers["www-authenticate"] == "Basic"


async def test_no_entity():
    response = await process_backend_response(
        inbound(),
        backend(204, headers=[("content-length", "0"), ("x-a", "1"), ("content-encoding", "br")]),
        REWRITE,
    )
    assert response.status_code == 204
    assert response.body == b""
    assert "content-length" not in response.headers
    assert response.headers["x-a"] == "1"


async def test_repeated_headers_and_chunks():
    payload = b"x" * 10
    response = await process_backend_response(
        inbound(),
        backend(headers=[("set-cookie", "a=1"), ("set-cookie", "b=2")], body=payload),
        REWRITE,
        buffer_size=4,
    )
    assert response.headers.getlist("set-cookie") == ["a=1", "b=2"]
    chunks = [chunk async for chunk in response.body_iterator]
    assert chunks == [b"xxxx", b"xxxx", b"xx"]


async def test_corrupt_gzip_body():
    with pytest.raises(IOFailure, match="decoding"):
        await process_backend_response(
            inbound(), backend(headers=[("content-encoding", "gzip")], body=b"not gzip"), REWRITE
        )
