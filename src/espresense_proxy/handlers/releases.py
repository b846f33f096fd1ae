"""
=============================================================================
RELEASE PROXY
=============================================================================

Serves flashing manifests and firmware for tagged GitHub releases.

    ┌──────────────────────────────────────────┬────────────────────────────┐
    │ Route (under /releases)                  │ Answer                     │
    ├──────────────────────────────────────────┼────────────────────────────┤
    │ GET /:tag.json?flavor=cam                │ manifest for the release   │
    │ GET /download/:tag/:filename             │ the asset bytes, proxied   │
    │ GET /latest-any/download/:filename       │ 302 to the newest asset,   │
    │                                          │ prereleases included       │
    └──────────────────────────────────────────┴────────────────────────────┘

Manifest firmware paths are relative ("download/v3.2.1/esp32.bin"), so a
manifest fetched from /releases/v3.2.1.json points the flasher at
/releases/download/v3.2.1/esp32.bin on this same proxy. That keeps the
firmware on our origin, where CORS is under our control; GitHub's object
store sends no CORS headers.

Cache lifetimes follow the tag: "latest" moves with every release and is
cached 5 minutes, any other tag is immutable and cached a day.

=============================================================================
"""

import logging

from ..config import ProxyConfig
from ..github import GitHubClient, GitHubError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, error_response
from ..http.router import Router
from ..http.status_codes import HTTPStatus
from ..manifest import build_manifest, find_asset


logger = logging.getLogger(__name__)


class ReleaseProxy:
    """
    Route handlers for the release proxy.

        proxy = ReleaseProxy(client, config)
        app_router.include("/releases", proxy.router)
    """

    def __init__(self, client: GitHubClient, config: ProxyConfig):
        self.client = client
        self.config = config

        self.router = Router()
        self.router.get("/:tag.json", name="release_manifest")(self.manifest)
        self.router.get("/download/:tag/:filename", name="release_download")(self.download)
        self.router.get("/latest-any/download/:filename", name="latest_any_download")(self.latest_any)

    def manifest(self, request: HTTPRequest) -> HTTPResponse:
        tag = request.path_params["tag"]
        flavor = request.get_query("flavor")

        try:
            release = self.client.get_release(tag)
        except GitHubError as e:
            logger.info(f"Release {tag!r} unavailable: {e}")
            return error_response("Release not found", e.status_code)

        manifest = build_manifest(
            release.name,
            release.assets,
            lambda asset: f"download/{tag}/{asset.name}",
            flavor=flavor,
        )

        return (ResponseBuilder()
            .json(manifest)
            .cache(self.config.ttl_for_tag(tag))
            .build())

    def download(self, request: HTTPRequest) -> HTTPResponse:
        """
        Proxy a release asset.

        The upstream status is passed through, so a missing asset is a 404
        here too, with whatever body GitHub sent.
        """
        tag = request.path_params["tag"]
        filename = request.path_params["filename"]

        try:
            upstream = self.client.download_release_asset(tag, filename)
        except GitHubError as e:
            return error_response("Release download failed", e.status_code)

        return (ResponseBuilder()
            .status(upstream.status_code)
            .binary(upstream.content, upstream.content_type or "application/octet-stream")
            .header("Access-Control-Allow-Origin", "*")
            .cache(self.config.ttl_for_tag(tag))
            .build())

    def latest_any(self, request: HTTPRequest) -> HTTPResponse:
        filename = request.path_params["filename"]

        try:
            releases = self.client.list_releases()
        except GitHubError as e:
            return error_response("No releases found", e.status_code)

        # Drafts that are still uploading have no assets yet
        release = next((r for r in releases if r.assets), None)
        if release is None:
            return error_response("No release found", HTTPStatus.NOT_FOUND)

        asset = find_asset(release.assets, filename)
        if asset is None:
            return error_response("No asset found", HTTPStatus.NOT_FOUND)

        logger.debug(f"latest-any {filename} -> {release.tag_name}")
        return (ResponseBuilder()
            .redirect(asset.browser_download_url)
            .cache(self.config.latest_ttl)
            .build())
