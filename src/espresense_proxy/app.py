"""
=============================================================================
APPLICATION FACTORIES
=============================================================================

    create_release_app()   /  and /releases/...
    create_artifact_app()  /  and /artifacts/...
    create_app()           both proxies on one server

Each factory builds an HTTPServer with the same stack:

    LoggingMiddleware → CORSMiddleware → PrettyJSONMiddleware → router

The artifact proxy also gets a ResponseCache, bounded by body bytes, shared
by all of its routes. The release routes rely on Cache-Control alone.

The GitHub client can be injected, which is how the tests swap in a fake
upstream:

    app = create_artifact_app(client=GitHubClient(config, session=fake))
    response = app.handle(request)

=============================================================================
"""

import logging
from typing import Optional

from .config import ServerConfig, ProxyConfig
from .github import GitHubClient
from .handlers import health, ReleaseProxy, ArtifactProxy
from .middleware import (
    LoggingMiddleware,
    CORSMiddleware,
    PrettyJSONMiddleware,
    ResponseCache,
)
from .server import HTTPServer


logger = logging.getLogger(__name__)


PROXIES = ("releases", "artifacts")


def _base_app(
    server_config: Optional[ServerConfig],
    proxy_config: Optional[ProxyConfig],
    client: Optional[GitHubClient],
) -> tuple[HTTPServer, ProxyConfig, GitHubClient]:
    server_config = server_config or ServerConfig()
    proxy_config = proxy_config or ProxyConfig()
    proxy_config.validate()

    client = client or GitHubClient(proxy_config)

    app = HTTPServer(server_config)
    app.use(LoggingMiddleware(log_format=server_config.log_format))
    app.use(CORSMiddleware())
    app.use(PrettyJSONMiddleware())
    app.get("/", name="health")(health)

    return app, proxy_config, client


def create_app(
    server_config: Optional[ServerConfig] = None,
    proxy_config: Optional[ProxyConfig] = None,
    client: Optional[GitHubClient] = None,
    proxies: tuple = PROXIES,
) -> HTTPServer:
    """
    Build a server hosting the given proxies.

    Args:
        server_config: Listener settings.
        proxy_config: Upstream and TTL settings.
        client: GitHub client to use instead of a fresh one.
        proxies: Any of "releases", "artifacts".
    """
    unknown = set(proxies) - set(PROXIES)
    if unknown:
        raise ValueError(f"Unknown proxies: {', '.join(sorted(unknown))}")

    app, proxy_config, client = _base_app(server_config, proxy_config, client)

    if "releases" in proxies:
        app.include("/releases", ReleaseProxy(client, proxy_config).router)

    if "artifacts" in proxies:
        cache = ResponseCache(maxsize=proxy_config.cache_max_bytes)
        app.include(
            "/artifacts",
            ArtifactProxy(client, proxy_config, cache, mount_path="/artifacts").router,
        )

    logger.debug(f"Created app for {', '.join(proxies)} ({proxy_config.repository})")
    return app


def create_release_app(
    server_config: Optional[ServerConfig] = None,
    proxy_config: Optional[ProxyConfig] = None,
    client: Optional[GitHubClient] = None,
) -> HTTPServer:
    return create_app(server_config, proxy_config, client, proxies=("releases",))


def create_artifact_app(
    server_config: Optional[ServerConfig] = None,
    proxy_config: Optional[ProxyConfig] = None,
    client: Optional[GitHubClient] = None,
) -> HTTPServer:
    return create_app(server_config, proxy_config, client, proxies=("artifacts",))
