"""
pytest configuration and fixtures.
"""

import json
import socket
import threading
import time
from typing import Generator, Optional
import pytest
import requests

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from espresense_proxy import HTTPServer, ServerConfig, ProxyConfig
from espresense_proxy.github import GitHubClient


API = "https://api.github.com/repos/ESPresense/ESPresense"
GITHUB = "https://github.com/ESPresense/ESPresense"
NIGHTLY = "https://nightly.link/ESPresense/ESPresense"


def make_response(
    status_code: int = 200,
    body=b"",
    content_type: Optional[str] = None,
) -> requests.Response:
    """Build a real requests.Response without touching the network."""
    if isinstance(body, (dict, list)):
        body = json.dumps(body).encode("utf-8")
        content_type = content_type or "application/json; charset=utf-8"

    response = requests.Response()
    response.status_code = status_code
    response._content = body
    if content_type:
        response.headers["Content-Type"] = content_type
    return response


def prepared_url(url: str, params: Optional[dict] = None) -> str:
    return requests.Request("GET", url, params=params).prepare().url


class FakeSession:
    """
    Stand-in for requests.Session serving canned upstream answers.

    Unknown URLs answer 404 like GitHub does.
    """

    def __init__(self):
        self.headers = {}
        self.routes = {}
        self.calls = []

    def add(self, url: str, status_code: int = 200, body=b"",
            content_type: Optional[str] = None, params: Optional[dict] = None):
        self.routes[prepared_url(url, params)] = (status_code, body, content_type)

    def get(self, url, params=None, headers=None, timeout=None, **kwargs):
        key = prepared_url(url, params)
        self.calls.append({"url": key, "headers": headers or {}, "timeout": timeout})

        if key not in self.routes:
            return make_response(404, {"message": "Not Found"})
        return make_response(*self.routes[key])

    def calls_to(self, url: str, params: Optional[dict] = None) -> int:
        key = prepared_url(url, params)
        return sum(1 for call in self.calls if call["url"] == key)

    def close(self):
        pass


@pytest.fixture
def sample_get_request() -> bytes:
    """Manifest request as ESP Web Tools sends it."""
    return (
        b"GET /releases/latest.json?flavor=cam&pretty HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Origin: https://espresense.com\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=4,
        timeout=5.0,
        log_level="WARNING",
    )


@pytest.fixture
def proxy_config() -> ProxyConfig:
    return ProxyConfig()


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(proxy_config: ProxyConfig, fake_session: FakeSession) -> GitHubClient:
    return GitHubClient(proxy_config, session=fake_session)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestServer:
    """Runs an HTTPServer in a background thread."""

    __test__ = False

    def __init__(self, server: HTTPServer, port: int):
        self.server = server
        self.port = port
        self._thread: threading.Thread = None

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    def start(self):
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"port": self.port},
            daemon=True
        )
        self._thread.start()

        for _ in range(50):  # 5 seconds max
            try:
                with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                    s.connect(('127.0.0.1', self.port))
                    return
            except ConnectionRefusedError:
                time.sleep(0.1)

        raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.stop()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def run_server(free_port: int) -> Generator:
    """Start a server app on a free port; stopped after the test."""
    started = []

    def start(server: HTTPServer) -> TestServer:
        test_srv = TestServer(server, free_port)
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield start

    for test_srv in started:
        test_srv.stop()
