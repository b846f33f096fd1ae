"""
=============================================================================
ESPRESENSE PROXY
=============================================================================

Two small HTTP proxies in front of the ESPresense/ESPresense GitHub
repository, turning its releases and Actions builds into ESP Web Tools
flashing manifests and firmware downloads:

    /releases/v3.2.1.json?flavor=cam            manifest for a release
    /releases/download/v3.2.1/esp32-cam.bin     release firmware
    /releases/latest-any/download/esp32.bin     302 to newest asset
    /artifacts/4242.json                        manifest for a CI run
    /artifacts/latest/download/main/esp32.bin   302 chain to newest CI build

Answers are cached in memory so flashers do not eat into GitHub's API
rate limit.

=============================================================================
LAYOUT
=============================================================================

    config.py     ServerConfig, ProxyConfig
    core/         sockets, connections, worker pool
    http/         request parsing, responses, routing
    middleware/   logging, CORS, pretty JSON, response cache
    github/       upstream client and payload models
    manifest.py   chip layouts, flavor matching, manifest shape
    handlers/     health, release proxy, artifact proxy
    app.py        application factories
    smoke.py      deployment smoke test

=============================================================================
"""

__version__ = "1.0.0"

from .server import HTTPServer
from .config import ServerConfig, ProxyConfig
from .app import create_app, create_release_app, create_artifact_app

__all__ = [
    "HTTPServer",
    "ServerConfig",
    "ProxyConfig",
    "create_app",
    "create_release_app",
    "create_artifact_app",
    "__version__",
]
