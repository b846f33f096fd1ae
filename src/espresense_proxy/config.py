"""
=============================================================================
PROXY CONFIGURATION
=============================================================================

Centralized configuration for the release and artifact proxies.

Two dataclasses split the concerns:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CONFIGURATION GROUPS                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ServerConfig   How we listen                                      │
    │                  host, port, workers, timeouts, logging             │
    │                                                                      │
    │   ProxyConfig    What we talk to                                    │
    │                  GitHub repository, API/download hosts, token,      │
    │                  upstream timeout, cache sizes and TTLs             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Both read the environment through from_env() and validate eagerly, so a
bad deployment fails at startup instead of on the first flash attempt.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    HTTP_HOST                 Bind address (default: 127.0.0.1)
    HTTP_PORT                 Listen port (default: 8080)
    HTTP_WORKERS              Max worker threads (default: 16)
    HTTP_TIMEOUT              Client socket timeout in seconds (default: 30)
    HTTP_LOG_LEVEL            DEBUG, INFO, WARNING, ERROR (default: INFO)
    HTTP_LOG_FORMAT           text or json (default: text)

    GITHUB_REPOSITORY         owner/name (default: ESPresense/ESPresense)
    GITHUB_API_URL            REST API root (default: https://api.github.com)
    GITHUB_URL                Web root for release downloads
    NIGHTLY_LINK_URL          Artifact zip mirror (default: https://nightly.link)
    GITHUB_WORKFLOW           Build workflow file (default: build.yml)
    GITHUB_TOKEN              Optional token, raises API rate limits
    PROXY_USER_AGENT          User-Agent sent upstream
    PROXY_UPSTREAM_TIMEOUT    Upstream request timeout in seconds
    PROXY_CACHE_MAX_ENTRIES   Upstream fetch cache capacity (entries)
    PROXY_CACHE_MAX_BYTES     Response cache capacity (body bytes, default 64 MiB)

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP server that hosts a proxy.

    Development:
        ServerConfig(host="127.0.0.1", port=8080, log_level="DEBUG")

    Production (container):
        ServerConfig(host="0.0.0.0", port=8080, max_workers=32)
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8080
    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket timeout for reading a request. None blocks forever."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0

    max_request_size: int = 1024 * 1024  # 1 MB
    """Proxy requests are bodiless GETs; anything larger is abuse."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"

    server_name: str = "espresense-proxy/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Create configuration from HTTP_* environment variables."""
        max_workers = int(os.getenv("HTTP_WORKERS", "16"))
        return cls(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            # HTTP_WORKERS is the ceiling; a small one lowers the floor too
            min_workers=min(cls.min_workers, max_workers),
            max_workers=max_workers,
            timeout=float(os.getenv("HTTP_TIMEOUT", "30")),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("HTTP_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """Fail fast on values that would only blow up under load."""
        # Port 0 lets the OS pick a free port (used by tests)
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")


@dataclass
class ProxyConfig:
    """
    Upstream and caching configuration shared by both proxies.

    The TTLs mirror how mutable each upstream object is:

        latest_ttl              300      "latest" tags, branch heads, prerelease lists
        release_ttl             86400    a tagged release or a finished run
        artifact_download_ttl   604800   an artifact zip, addressed by its id

    The upstream_ttl_* values control how long raw GitHub answers are reused
    before they reach the response cache. A 404 is kept for one second so a
    burst of requests for a missing tag costs a single API call; server
    errors are never reused.
    """

    # ─────────────────────────────────────────────────────────────────────
    # UPSTREAM
    # ─────────────────────────────────────────────────────────────────────

    repository: str = "ESPresense/ESPresense"
    api_url: str = "https://api.github.com"
    github_url: str = "https://github.com"
    nightly_link_url: str = "https://nightly.link"
    workflow: str = "build.yml"
    token: Optional[str] = None
    user_agent: str = "espresense-proxy"
    upstream_timeout: float = 30.0

    # ─────────────────────────────────────────────────────────────────────
    # RESPONSE CACHE
    # ─────────────────────────────────────────────────────────────────────

    # Upstream fetch cache counts entries (JSON answers only); the response
    # cache counts body bytes, since it holds firmware images
    cache_max_entries: int = 512
    cache_max_bytes: int = 64 * 1024 * 1024
    latest_ttl: int = 300
    release_ttl: int = 86400
    artifact_download_ttl: int = 604800

    # ─────────────────────────────────────────────────────────────────────
    # UPSTREAM FETCH CACHE (by status)
    # ─────────────────────────────────────────────────────────────────────

    upstream_ttl_not_found: int = 1
    upstream_ttl_server_error: int = 0

    @classmethod
    def from_env(cls) -> "ProxyConfig":
        """Create configuration from GITHUB_* and PROXY_* environment variables."""
        return cls(
            repository=os.getenv("GITHUB_REPOSITORY", "ESPresense/ESPresense"),
            api_url=os.getenv("GITHUB_API_URL", "https://api.github.com"),
            github_url=os.getenv("GITHUB_URL", "https://github.com"),
            nightly_link_url=os.getenv("NIGHTLY_LINK_URL", "https://nightly.link"),
            workflow=os.getenv("GITHUB_WORKFLOW", "build.yml"),
            token=os.getenv("GITHUB_TOKEN") or None,
            user_agent=os.getenv("PROXY_USER_AGENT", "espresense-proxy"),
            upstream_timeout=float(os.getenv("PROXY_UPSTREAM_TIMEOUT", "30")),
            cache_max_entries=int(os.getenv("PROXY_CACHE_MAX_ENTRIES", "512")),
            cache_max_bytes=int(os.getenv("PROXY_CACHE_MAX_BYTES", str(64 * 1024 * 1024))),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        owner, _, name = self.repository.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(f"repository must look like 'owner/name', got {self.repository!r}")

        for field_name in ("api_url", "github_url", "nightly_link_url"):
            url = getattr(self, field_name)
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"{field_name} must be an http(s) URL, got {url!r}")

        if self.upstream_timeout <= 0:
            raise ValueError("upstream_timeout must be > 0")

        if self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be >= 1")

        if self.cache_max_bytes < 1:
            raise ValueError("cache_max_bytes must be >= 1")

        for field_name in ("latest_ttl", "release_ttl", "artifact_download_ttl"):
            if getattr(self, field_name) < 0:
                raise ValueError(f"{field_name} must be >= 0")

    def ttl_for_tag(self, tag: str) -> int:
        """'latest' moves with every release; any other tag is immutable."""
        return self.latest_ttl if tag == "latest" else self.release_ttl
