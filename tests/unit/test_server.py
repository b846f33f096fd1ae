"""
Unit tests for HTTPServer request handling (no sockets) and the app
factories.
"""

import json

import pytest

from espresense_proxy import HTTPServer, create_app
from espresense_proxy.http.request import HTTPRequest
from espresense_proxy.http.response import ResponseBuilder, HTTPStatus
from espresense_proxy.config import ProxyConfig
from espresense_proxy.github import GitHubClient
from espresense_proxy.middleware import Middleware, ResponseCache


class HeaderMiddleware(Middleware):
    def __init__(self, header: str):
        self.header = header

    def __call__(self, request, next):
        response = next(request)
        response.headers[self.header] = "1"
        return response


class TestHTTPServerHandle:
    """Tests for HTTPServer.handle."""

    def test_routes_through_middleware(self, config):
        """Test that use() middleware wraps the router."""
        server = HTTPServer(config)

        @server.get("/hello")
        def hello(request):
            return ResponseBuilder().text("hi").build()

        server.use(HeaderMiddleware("X-Tag"))
        response = server.handle(HTTPRequest(method="GET", path="/hello"))

        assert response.body == b"hi"
        assert response.headers["X-Tag"] == "1"

    def test_handler_exception_is_500(self, config, caplog):
        """Test that crashes become a JSON 500 and are logged."""
        server = HTTPServer(config)

        @server.get("/boom")
        def boom(request):
            raise RuntimeError("kaboom")

        response = server.handle(HTTPRequest(method="GET", path="/boom"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert json.loads(response.body) == {"error": "Internal Server Error"}
        assert "kaboom" in caplog.text

    def test_middleware_added_late_is_used(self, config):
        """Test that use() after a request rebuilds the chain."""
        server = HTTPServer(config)
        server.get("/")(lambda request: ResponseBuilder().text("OK").build())
        server.handle(HTTPRequest(method="GET", path="/"))

        server.use(HeaderMiddleware("X-Late"))

        assert server.handle(HTTPRequest(method="GET", path="/")).headers["X-Late"] == "1"


class TestCreateApp:
    """Tests for the app factories."""

    def test_routes(self, config, client):
        """Test that both proxies are mounted."""
        paths = {route.path for route in create_app(config, client=client).router.routes()}

        assert "/" in paths
        assert "/releases/:tag.json" in paths
        assert "/artifacts/:run_id{[0-9]+}.json" in paths

    def test_single_proxy(self, config, client):
        """Test mounting one proxy."""
        app = create_app(config, client=client, proxies=("releases",))
        paths = {route.path for route in app.router.routes()}

        assert not any(path.startswith("/artifacts") for path in paths)
        assert not any(route.middleware for route in app.router.routes())

    def test_artifact_cache_counts_bytes(self, config, fake_session):
        """Test that the artifact routes share one byte-bounded cache."""
        proxy_config = ProxyConfig(cache_max_bytes=4096)
        client = GitHubClient(proxy_config, session=fake_session)
        app = create_app(config, proxy_config, client, proxies=("artifacts",))

        caches = {
            id(mw.cache): mw.cache
            for route in app.router.routes()
            for mw in route.middleware
        }

        assert len(caches) == 1
        cache = next(iter(caches.values()))
        assert isinstance(cache, ResponseCache)
        assert cache.maxsize == 4096

    def test_unknown_proxy(self, config, client):
        """Test that unknown proxy names are rejected."""
        with pytest.raises(ValueError):
            create_app(config, client=client, proxies=("mirror",))

    def test_health(self, config, client):
        """Test the root endpoint."""
        response = create_app(config, client=client).handle(HTTPRequest(method="GET", path="/"))

        assert response.body == b"OK"
        assert response.headers["Cache-Control"] == "no-store"
        assert response.headers["Access-Control-Allow-Origin"] == "*"
