"""
=============================================================================
ARTIFACT PROXY
=============================================================================

Serves development builds straight from GitHub Actions.

A flasher asking for "the newest esp32.bin on main" is walked through a
chain of redirects, each step narrower and cacheable for longer:

    /artifacts/latest/download/main/esp32.bin               cached 5 min
        │ newest successful run of build.yml on "main"
        ▼ 302
    /artifacts/download/runs/4242/1a2b3c4/esp32.bin         cached 1 day
        │ the artifact of run 4242 named "esp32.bin"
        ▼ 302
    /artifacts/download/98765/esp32.bin                     cached 7 days
        │ nightly.link zip, first entry unpacked
        ▼
    200 application/octet-stream

The short sha in the middle URL is only there to make it unique per
commit for browser caches; it is not checked.

Manifests for a run (/artifacts/4242.json) list artifacts the same way
the release proxy lists release assets.

Every route is wrapped in the response cache, which also sets
Cache-Control on successful answers.

=============================================================================
"""

import io
import logging
import zipfile
from typing import Optional

from ..config import ProxyConfig
from ..github import GitHubClient, GitHubError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, error_response, not_found, redirect
from ..http.router import Router
from ..http.status_codes import HTTPStatus
from ..manifest import build_manifest, find_asset
from ..middleware.cache import CacheMiddleware, ResponseCache


logger = logging.getLogger(__name__)


def first_zip_entry(data: bytes) -> Optional[bytes]:
    """
    Contents of the first file in a zip archive, or None if it holds no
    files.

    Raises:
        zipfile.BadZipFile: data is not a zip archive.
    """
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            return archive.read(info)
    return None


class ArtifactProxy:
    """
    Route handlers for the artifact proxy.

        proxy = ArtifactProxy(client, config, ResponseCache())
        app_router.include("/artifacts", proxy.router)

    Args:
        client: GitHub client.
        config: TTLs.
        cache: Response cache shared with the rest of the app.
        mount_path: Where the router is mounted; redirects are built on it.
    """

    CACHE_NAME = "artifacts"

    def __init__(
        self,
        client: GitHubClient,
        config: ProxyConfig,
        cache: ResponseCache,
        mount_path: str = "/artifacts",
    ):
        self.client = client
        self.config = config
        self.cache = cache
        self.mount_path = mount_path.rstrip("/")

        self.router = Router()

        # download/runs must be registered before the download/:artifact_id
        # catch-all
        self.router.route(
            "/latest/download/:branch/:bin",
            name="latest_artifact",
            middleware=[self._cached(config.latest_ttl)],
        )(self.latest)
        self.router.route(
            "/download/runs/:run_id{[0-9]+}/:sha/:bin",
            name="run_artifact",
            middleware=[self._cached(config.release_ttl)],
        )(self.run_artifact)
        self.router.get(
            "/download/:artifact_id{[0-9]+}/*filename",
            name="artifact_download",
            middleware=[self._cached(config.artifact_download_ttl)],
        )(self.download)
        self.router.get(
            "/:run_id{[0-9]+}.json",
            name="run_manifest",
            middleware=[self._cached(config.release_ttl)],
        )(self.manifest)

    def _cached(self, max_age: int) -> CacheMiddleware:
        return CacheMiddleware(self.cache, max_age, self.CACHE_NAME)

    # =========================================================================
    # REDIRECT STEPS
    # =========================================================================

    def latest(self, request: HTTPRequest) -> HTTPResponse:
        branch = request.path_params["branch"]
        binary = request.path_params["bin"]

        try:
            runs = self.client.list_workflow_runs(branch)
        except GitHubError as e:
            return error_response("Failed to fetch workflow runs", e.status_code)

        if not runs:
            return not_found(f"No successful runs on {branch}")

        run = runs[0]
        return redirect(f"{self.mount_path}/download/runs/{run.id}/{run.short_sha}/{binary}")

    def run_artifact(self, request: HTTPRequest) -> HTTPResponse:
        run_id = int(request.path_params["run_id"])
        binary = request.path_params["bin"]

        try:
            artifacts = self.client.list_run_artifacts(run_id)
        except GitHubError as e:
            return error_response("Failed to fetch artifacts", e.status_code)

        artifact = find_asset(artifacts, binary)
        if artifact is None:
            return not_found(f"No artifact named {binary}")

        return redirect(f"{self.mount_path}/download/{artifact.id}/{binary}")

    # =========================================================================
    # CONTENT
    # =========================================================================

    def download(self, request: HTTPRequest) -> HTTPResponse:
        """Unzip an artifact and return its only file."""
        artifact_id = int(request.path_params["artifact_id"])

        try:
            upstream = self.client.download_artifact_zip(artifact_id)
        except GitHubError as e:
            return error_response(f"Artifact not found: {e.status_code}", e.status_code)

        if upstream.status_code != 200:
            return error_response(f"Artifact not found: {upstream.status_code}", upstream.status_code)

        try:
            content = first_zip_entry(upstream.content)
        except zipfile.BadZipFile:
            logger.warning(f"Artifact {artifact_id} is not a zip archive")
            return error_response("Invalid artifact archive", HTTPStatus.BAD_GATEWAY)

        if content is None:
            return not_found(f"Artifact {artifact_id} is empty")

        return ResponseBuilder().binary(content).build()

    def manifest(self, request: HTTPRequest) -> HTTPResponse:
        run_id = int(request.path_params["run_id"])
        flavor = request.get_query("flavor")

        try:
            artifacts = self.client.list_run_artifacts(run_id)
        except GitHubError as e:
            return error_response("Failed to fetch artifacts", e.status_code)

        if not artifacts:
            return not_found(f"No artifacts for run {run_id}")

        run = artifacts[0].workflow_run
        if run is None:
            return error_response("No workflow run found", HTTPStatus.NOT_FOUND)

        manifest = build_manifest(
            f"{run.head_branch} branch",
            artifacts,
            lambda artifact: f"download/{artifact.id}/{artifact.name}",
            flavor=flavor,
        )
        return ResponseBuilder().json(manifest).build()
