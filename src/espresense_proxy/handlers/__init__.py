"""
=============================================================================
HANDLERS
=============================================================================

    ┌───────────────┬───────────────────────────────────────────────────────┐
    │ health        │ GET / → "OK"                                          │
    │ ReleaseProxy  │ /releases/...  manifests and assets of tagged releases│
    │ ArtifactProxy │ /artifacts/... manifests and images of Actions builds │
    └───────────────┴───────────────────────────────────────────────────────┘

The proxies are class handlers: they hold the GitHub client, the TTLs and
(for artifacts) the response cache, and expose a Router to be mounted.

=============================================================================
"""

from .health import health
from .releases import ReleaseProxy
from .artifacts import ArtifactProxy, first_zip_entry

__all__ = [
    "health",
    "ReleaseProxy",
    "ArtifactProxy",
    "first_zip_entry",
]
