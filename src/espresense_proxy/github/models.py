"""
Typed views of the GitHub REST payloads the proxies read.

Only the fields the proxies use are kept; everything else in the payload
is ignored. Missing optional fields get harmless defaults so a partially
populated payload (as GitHub sends for expired artifacts) still parses.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Asset:
    """A file attached to a release."""

    name: str
    browser_download_url: str = ""

    @classmethod
    def from_json(cls, data: dict) -> "Asset":
        return cls(
            name=data["name"],
            browser_download_url=data.get("browser_download_url", ""),
        )


@dataclass
class Release:
    name: str
    tag_name: str = ""
    assets: List[Asset] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> "Release":
        tag_name = data.get("tag_name", "")
        return cls(
            # GitHub sends null for releases created without a title
            name=data.get("name") or tag_name,
            tag_name=tag_name,
            assets=[Asset.from_json(a) for a in data.get("assets") or []],
        )


@dataclass
class WorkflowRun:
    """A workflow run, as listed or as embedded in an artifact."""

    id: int
    head_sha: str = ""
    head_branch: str = ""

    @classmethod
    def from_json(cls, data: dict) -> "WorkflowRun":
        return cls(
            id=data["id"],
            head_sha=data.get("head_sha") or "",
            head_branch=data.get("head_branch") or "",
        )

    @property
    def short_sha(self) -> str:
        return self.head_sha[:7]


@dataclass
class Artifact:
    """
    A build artifact of a workflow run.

    The build workflow uploads one artifact per firmware image, named after
    the image ("esp32.bin", "esp32c3-cam.bin"), so artifacts and release
    assets can be matched by the same name rules.
    """

    id: int
    name: str
    workflow_run: Optional[WorkflowRun] = None

    @classmethod
    def from_json(cls, data: dict) -> "Artifact":
        run = data.get("workflow_run")
        return cls(
            id=data["id"],
            name=data["name"],
            workflow_run=WorkflowRun.from_json(run) if run else None,
        )
