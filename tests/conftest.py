import signal
import subprocess
import sys
from dataclasses import dataclass
from typing import Any

import pytest
import requests
from requests.adapters import HTTPAdapter
from starlette.requests import Request
from urllib3.util.retry import Retry

from sop_proxy.bootstrap import env


@dataclass
class ServerFixture:
    port: int
    process: Any


def wait_for_server(url, timeout=10):
    session = requests.Session()
    session.mount("http://", HTTPAdapter(max_retries=Retry(total=20, backoff_factor=0.05)))
    session.get(url, timeout=timeout)


def start_proxy(config_path: str, port: int):
    proc = subprocess.Popen([sys.executable, "-m", "sop_proxy", "--config", config_path])
    wait_for_server(f"http://127.0.0.1:{port}/health")
    return proc


def stop_proxy(proc):
    proc.send_signal(signal.SIGTERM)
    proc.wait()


def make_request(
    method: str = "GET",
    path: str = "/proxy/d1/a/b",
    query_string: bytes = b"",
    headers: list[tuple[str, str]] | None = None,
    body: bytes = b"",
    root_path: str = "",
    destination: str = "d1",
) -> Request:
    """Starlette request built from a raw ASGI scope."""

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(
        scope={
            "type": "http",
            "method": method,
            "scheme": "http",
            "server": ("proxy.local", 8080),
            "root_path": root_path,
            "path": path,
            "raw_path": (root_path + path).encode("latin-1"),
            "query_string": query_string,
            "path_params": {"destination": destination},
            "headers": [
                (name.lower().encode("latin-1"), value.encode("latin-1"))
                for name, value in (headers or [])
            ],
        },
        receive=receive,
    )


@pytest.fixture(autouse=True)
def reset_env():
    yield
    env.config = None
    env.security_policy = None
    env._resolver = None  # pylint: disable=protected-access
