"""
=============================================================================
GITHUB UPSTREAM CLIENT
=============================================================================

Every outbound call the proxies make goes through GitHubClient:

    ┌──────────────────────────────┬──────────────────────────────────────────┐
    │ Method                       │ Upstream                                 │
    ├──────────────────────────────┼──────────────────────────────────────────┤
    │ get_release(tag)             │ GET {api}/repos/{repo}/releases/tags/... │
    │ list_releases()              │ GET {api}/repos/{repo}/releases          │
    │ list_workflow_runs(branch)   │ GET {api}/.../workflows/{wf}/runs        │
    │ list_run_artifacts(run_id)   │ GET {api}/.../actions/runs/{id}/artifacts│
    │ download_release_asset(...)  │ GET {github}/{repo}/releases/download/...│
    │ download_artifact_zip(id)    │ GET {nightly}/{repo}/actions/artifacts/..│
    └──────────────────────────────┴──────────────────────────────────────────┘

JSON methods return models and raise GitHubError carrying the upstream
status, so a handler can answer with the same status GitHub gave it.
Download methods return an UpstreamFile whatever the status.

=============================================================================
UPSTREAM FETCH CACHE
=============================================================================

Raw upstream answers are kept in a TTLCache for a time chosen by status:

    2xx   the caller's TTL (300s for moving targets, 86400s for finished runs)
    404   1 second, so a burst of requests for a missing tag is one API call
    5xx   never kept

Only JSON answers are kept with their 2xx TTL; downloads pass ok_ttl=0
and are only held for a second when they 404. This sits under the
per-route response cache and mostly matters for the release routes,
which have no response cache of their own.

=============================================================================
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import json
import logging

import requests

from ..config import ProxyConfig
from ..middleware.cache import TTLCache
from .models import Artifact, Release, WorkflowRun


logger = logging.getLogger(__name__)


class GitHubError(Exception):
    """
    An upstream call failed.

    status_code is GitHub's own status for HTTP failures, and 502 when
    GitHub could not be reached or sent something unreadable.
    """

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class UpstreamFile:
    """A downloaded upstream body with its status and content type."""

    status_code: int
    content: bytes = b""
    content_type: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class GitHubClient:
    """
    Client for the GitHub REST API and download hosts.

        client = GitHubClient(ProxyConfig.from_env())
        release = client.get_release("latest")
        for asset in release.assets:
            print(asset.name)

    Args:
        config: Repository, hosts, token, timeouts and TTLs.
        session: requests.Session to use; one is created when omitted.
        cache: Upstream fetch cache; one is created when omitted.
    """

    API_ACCEPT = "application/vnd.github+json"

    def __init__(
        self,
        config: ProxyConfig,
        session: Optional[requests.Session] = None,
        cache: Optional[TTLCache] = None,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = config.user_agent
        self.cache = cache if cache is not None else TTLCache(maxsize=config.cache_max_entries)

    # =========================================================================
    # URLS
    # =========================================================================

    @property
    def repo_api_url(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/repos/{self.config.repository}"

    def _api_headers(self) -> Dict[str, str]:
        headers = {"Accept": self.API_ACCEPT}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    # =========================================================================
    # JSON ENDPOINTS
    # =========================================================================

    def get_release(self, tag: str) -> Release:
        """Release by tag name; "latest" resolves to the newest full release."""
        data = self._get_json(
            f"{self.repo_api_url}/releases/tags/{tag}",
            ok_ttl=self.config.latest_ttl,
        )
        return Release.from_json(data)

    def list_releases(self) -> List[Release]:
        """Releases newest first, prereleases included."""
        data = self._get_json(f"{self.repo_api_url}/releases", ok_ttl=self.config.latest_ttl)
        return [Release.from_json(r) for r in data]

    def list_workflow_runs(self, branch: str) -> List[WorkflowRun]:
        """Successful runs of the build workflow on a branch, newest first."""
        data = self._get_json(
            f"{self.repo_api_url}/actions/workflows/{self.config.workflow}/runs",
            params={"status": "success", "branch": branch},
            ok_ttl=self.config.latest_ttl,
        )
        return [WorkflowRun.from_json(r) for r in data.get("workflow_runs") or []]

    def list_run_artifacts(self, run_id: int) -> List[Artifact]:
        data = self._get_json(
            f"{self.repo_api_url}/actions/runs/{run_id}/artifacts",
            ok_ttl=self.config.release_ttl,
        )
        return [Artifact.from_json(a) for a in data.get("artifacts") or []]

    def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        ok_ttl: int = 0,
    ) -> Any:
        upstream = self._fetch(url, params=params, headers=self._api_headers(), ok_ttl=ok_ttl)

        if not upstream.ok:
            raise GitHubError(f"GitHub returned {upstream.status_code} for {url}", upstream.status_code)

        try:
            return json.loads(upstream.content)
        except ValueError as e:
            raise GitHubError(f"Invalid JSON from {url}: {e}")

    # =========================================================================
    # DOWNLOADS
    # =========================================================================

    def download_release_asset(self, tag: str, filename: str) -> UpstreamFile:
        """
        Fetch a release asset through github.com, following its redirect to
        the object store.

        Not kept in the fetch cache: images are several MB each and the
        download route sets Cache-Control for clients instead.
        """
        url = (
            f"{self.config.github_url.rstrip('/')}/{self.config.repository}"
            f"/releases/download/{tag}/{filename}"
        )
        return self._fetch(url, ok_ttl=0)

    def download_artifact_zip(self, artifact_id: int) -> UpstreamFile:
        """
        Fetch an artifact as a zip through nightly.link, which serves
        artifacts without the token the GitHub API demands for them.

        Not kept in the fetch cache: the artifact route caches the
        unzipped result for a week instead.
        """
        url = (
            f"{self.config.nightly_link_url.rstrip('/')}/{self.config.repository}"
            f"/actions/artifacts/{artifact_id}.zip"
        )
        return self._fetch(url, ok_ttl=0)

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def ttl_for_status(self, status_code: int, ok_ttl: int) -> int:
        if 200 <= status_code < 300:
            return ok_ttl
        if status_code == 404:
            return self.config.upstream_ttl_not_found
        if status_code >= 500:
            return self.config.upstream_ttl_server_error
        return 0

    def _fetch(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        ok_ttl: int = 0,
    ) -> UpstreamFile:
        key = requests.Request("GET", url, params=params).prepare().url

        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Upstream cache hit: {key}")
            return cached

        logger.debug(f"GET {key}")
        try:
            response = self.session.get(
                url,
                params=params,
                headers=headers,
                timeout=self.config.upstream_timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Upstream request failed: {url}: {e}")
            raise GitHubError(f"Upstream request failed: {e}")

        upstream = UpstreamFile(
            status_code=response.status_code,
            content=response.content,
            content_type=response.headers.get("Content-Type"),
        )

        if not upstream.ok:
            logger.info(f"Upstream {url} returned {upstream.status_code}")

        self.cache.set(key, upstream, self.ttl_for_status(upstream.status_code, ok_ttl))
        return upstream

    def close(self) -> None:
        self.session.close()
