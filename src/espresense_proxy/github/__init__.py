"""
GitHub upstream access: the REST client and the payload models it returns.
"""

from .client import GitHubClient, GitHubError, UpstreamFile
from .models import Artifact, Asset, Release, WorkflowRun

__all__ = [
    "GitHubClient",
    "GitHubError",
    "UpstreamFile",
    "Artifact",
    "Asset",
    "Release",
    "WorkflowRun",
]
