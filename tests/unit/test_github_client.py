"""
Unit tests for the GitHub upstream client.
"""

from dataclasses import fields
from unittest.mock import MagicMock

import pytest
import requests

from conftest import API, GITHUB, NIGHTLY, FakeSession
from espresense_proxy.config import ProxyConfig
from espresense_proxy.github import GitHubClient, GitHubError
from espresense_proxy.github.models import Artifact, Asset, Release, WorkflowRun
from espresense_proxy.middleware.cache import TTLCache


RELEASE = {
    "name": "v3.2.1",
    "tag_name": "v3.2.1",
    "prerelease": False,
    "assets": [
        {"name": "esp32.bin", "browser_download_url": f"{GITHUB}/releases/download/v3.2.1/esp32.bin"},
        {"name": "esp32c3.bin", "browser_download_url": f"{GITHUB}/releases/download/v3.2.1/esp32c3.bin"},
    ],
}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestModels:
    """Tests for payload parsing."""

    def test_release_name_falls_back_to_tag(self):
        """Test that a null release name uses the tag."""
        release = Release.from_json({"name": None, "tag_name": "v1", "assets": []})
        assert release.name == "v1"

    def test_release_assets(self):
        """Test that assets are parsed."""
        release = Release.from_json(RELEASE)
        assert [a.name for a in release.assets] == ["esp32.bin", "esp32c3.bin"]

    def test_workflow_run_short_sha(self):
        """Test the 7 character sha."""
        run = WorkflowRun.from_json({"id": 1, "head_sha": "1a2b3c4d5e6f", "head_branch": "main"})
        assert run.short_sha == "1a2b3c4"

    def test_artifact_with_run(self):
        """Test the embedded workflow run."""
        artifact = Artifact.from_json({
            "id": 98765,
            "name": "esp32.bin",
            "workflow_run": {"id": 4242, "head_branch": "main"},
        })
        assert artifact.workflow_run.id == 4242
        assert artifact.workflow_run.head_branch == "main"

    def test_artifact_without_run(self):
        """Test that a missing workflow_run parses to None."""
        assert Artifact.from_json({"id": 1, "name": "x"}).workflow_run is None

    def test_unused_payload_fields_are_dropped(self):
        """Test that sizes, draft flags and expiry are not carried around."""
        release = Release.from_json(dict(RELEASE, draft=True, prerelease=True))
        artifact = Artifact.from_json({"id": 1, "name": "x", "expired": True, "size_in_bytes": 9})

        assert [f.name for f in fields(Asset)] == ["name", "browser_download_url"]
        assert [f.name for f in fields(Release)] == ["name", "tag_name", "assets"]
        assert [f.name for f in fields(Artifact)] == ["id", "name", "workflow_run"]
        assert release.tag_name == "v3.2.1"
        assert artifact.name == "x"


class TestJSONEndpoints:
    """Tests for the REST API methods."""

    def test_get_release(self, client: GitHubClient, fake_session: FakeSession):
        """Test fetching a release by tag."""
        fake_session.add(f"{API}/releases/tags/v3.2.1", body=RELEASE)

        release = client.get_release("v3.2.1")

        assert release.name == "v3.2.1"
        assert len(release.assets) == 2

    def test_api_headers(self, client: GitHubClient, fake_session: FakeSession):
        """Test that API calls ask for the GitHub media type."""
        fake_session.add(f"{API}/releases/tags/v1", body=RELEASE)
        client.get_release("v1")

        headers = fake_session.calls[0]["headers"]
        assert headers["Accept"] == "application/vnd.github+json"
        assert "Authorization" not in headers
        assert fake_session.headers["User-Agent"] == "espresense-proxy"

    def test_token_is_sent(self, fake_session: FakeSession):
        """Test bearer auth when a token is configured."""
        client = GitHubClient(ProxyConfig(token="ghp_test"), session=fake_session)
        fake_session.add(f"{API}/releases", body=[])

        client.list_releases()

        assert fake_session.calls[0]["headers"]["Authorization"] == "Bearer ghp_test"

    def test_timeout_is_passed(self, fake_session: FakeSession):
        """Test the configured upstream timeout."""
        client = GitHubClient(ProxyConfig(upstream_timeout=7.5), session=fake_session)
        fake_session.add(f"{API}/releases", body=[])

        client.list_releases()

        assert fake_session.calls[0]["timeout"] == 7.5

    def test_release_not_found_keeps_status(self, client: GitHubClient):
        """Test that GitHub's 404 is carried on the error."""
        with pytest.raises(GitHubError) as exc_info:
            client.get_release("v0.0.0")

        assert exc_info.value.status_code == 404

    def test_server_error_keeps_status(self, client: GitHubClient, fake_session: FakeSession):
        """Test that 5xx is carried on the error."""
        fake_session.add(f"{API}/releases", status_code=503, body={"message": "busy"})

        with pytest.raises(GitHubError) as exc_info:
            client.list_releases()

        assert exc_info.value.status_code == 503

    def test_invalid_json(self, client: GitHubClient, fake_session: FakeSession):
        """Test that an unreadable body is a 502."""
        fake_session.add(f"{API}/releases", body=b"<html>", content_type="text/html")

        with pytest.raises(GitHubError) as exc_info:
            client.list_releases()

        assert exc_info.value.status_code == 502

    def test_network_error_is_bad_gateway(self, proxy_config: ProxyConfig):
        """Test that connection failures become 502."""
        session = MagicMock()
        session.headers = {}
        session.get.side_effect = requests.ConnectionError("connection refused")
        client = GitHubClient(proxy_config, session=session)

        with pytest.raises(GitHubError) as exc_info:
            client.list_releases()

        assert exc_info.value.status_code == 502

    def test_list_workflow_runs(self, client: GitHubClient, fake_session: FakeSession):
        """Test that runs are filtered to successful runs of the branch."""
        fake_session.add(
            f"{API}/actions/workflows/build.yml/runs",
            params={"status": "success", "branch": "main"},
            body={"workflow_runs": [
                {"id": 4242, "head_sha": "1a2b3c4d", "head_branch": "main"},
                {"id": 4100, "head_sha": "99887766", "head_branch": "main"},
            ]},
        )

        runs = client.list_workflow_runs("main")

        assert [r.id for r in runs] == [4242, 4100]

    def test_list_workflow_runs_empty(self, client: GitHubClient, fake_session: FakeSession):
        """Test a branch without runs."""
        fake_session.add(
            f"{API}/actions/workflows/build.yml/runs",
            params={"status": "success", "branch": "gone"},
            body={"total_count": 0, "workflow_runs": []},
        )

        assert client.list_workflow_runs("gone") == []

    def test_list_run_artifacts(self, client: GitHubClient, fake_session: FakeSession):
        """Test listing the artifacts of a run."""
        fake_session.add(f"{API}/actions/runs/4242/artifacts", body={"artifacts": [
            {"id": 1, "name": "esp32.bin", "workflow_run": {"id": 4242, "head_branch": "main"}},
        ]})

        artifacts = client.list_run_artifacts(4242)

        assert artifacts[0].name == "esp32.bin"


class TestDownloads:
    """Tests for download methods."""

    def test_release_asset(self, client: GitHubClient, fake_session: FakeSession):
        """Test downloading a release asset from github.com."""
        fake_session.add(
            f"{GITHUB}/releases/download/v1/esp32.bin",
            body=b"\xe9firmware",
            content_type="application/octet-stream",
        )

        upstream = client.download_release_asset("v1", "esp32.bin")

        assert upstream.ok
        assert upstream.content == b"\xe9firmware"
        assert upstream.content_type == "application/octet-stream"

    def test_release_asset_missing_is_not_raised(self, client: GitHubClient):
        """Test that downloads report status instead of raising."""
        upstream = client.download_release_asset("v1", "nope.bin")

        assert upstream.status_code == 404
        assert not upstream.ok

    def test_download_has_no_api_headers(self, fake_session: FakeSession):
        """Test that the token is only sent to the API."""
        client = GitHubClient(ProxyConfig(token="ghp_test"), session=fake_session)
        client.download_release_asset("v1", "esp32.bin")

        assert "Authorization" not in fake_session.calls[0]["headers"]

    def test_artifact_zip_url(self, client: GitHubClient, fake_session: FakeSession):
        """Test that artifacts come from nightly.link."""
        fake_session.add(f"{NIGHTLY}/actions/artifacts/98765.zip", body=b"PK")

        assert client.download_artifact_zip(98765).content == b"PK"


class TestUpstreamCache:
    """Tests for the status-dependent fetch cache."""

    def test_success_is_cached(self, client: GitHubClient, fake_session: FakeSession):
        """Test that a 200 is served from cache the second time."""
        fake_session.add(f"{API}/releases/tags/v1", body=RELEASE)

        client.get_release("v1")
        client.get_release("v1")

        assert fake_session.calls_to(f"{API}/releases/tags/v1") == 1

    def test_not_found_cached_one_second(self, fake_session: FakeSession):
        """Test that 404s are kept for one second."""
        clock = FakeClock()
        client = GitHubClient(ProxyConfig(), session=fake_session, cache=TTLCache(clock=clock))
        url = f"{API}/releases/tags/v9"

        for _ in range(2):
            with pytest.raises(GitHubError):
                client.get_release("v9")
        assert fake_session.calls_to(url) == 1

        clock.now = 1.0
        with pytest.raises(GitHubError):
            client.get_release("v9")
        assert fake_session.calls_to(url) == 2

    def test_server_error_not_cached(self, client: GitHubClient, fake_session: FakeSession):
        """Test that 5xx answers are always refetched."""
        fake_session.add(f"{API}/releases", status_code=500, body={})

        for _ in range(2):
            with pytest.raises(GitHubError):
                client.list_releases()

        assert fake_session.calls_to(f"{API}/releases") == 2

    def test_artifact_zip_not_cached(self, client: GitHubClient, fake_session: FakeSession):
        """Test that artifact zips bypass the fetch cache."""
        url = f"{NIGHTLY}/actions/artifacts/1.zip"
        fake_session.add(url, body=b"PK")

        client.download_artifact_zip(1)
        client.download_artifact_zip(1)

        assert fake_session.calls_to(url) == 2

    def test_release_asset_not_cached(self, client: GitHubClient, fake_session: FakeSession):
        """Test that firmware images are not held in the fetch cache."""
        url = f"{GITHUB}/releases/download/v1/esp32.bin"
        fake_session.add(url, body=b"\xe9" * 4096, content_type="application/octet-stream")

        client.download_release_asset("v1", "esp32.bin")
        client.download_release_asset("v1", "esp32.bin")

        assert fake_session.calls_to(url) == 2
        assert len(client.cache) == 0

    @pytest.mark.parametrize("status,expected", [
        (200, 300),
        (204, 300),
        (404, 1),
        (500, 0),
        (503, 0),
        (403, 0),
    ])
    def test_ttl_for_status(self, client: GitHubClient, status, expected):
        """Test TTL selection by status."""
        assert client.ttl_for_status(status, ok_ttl=300) == expected
