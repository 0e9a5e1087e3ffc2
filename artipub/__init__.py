"""artipub: publish CI build artifacts with manifests and keep-until retention.

Uploads build outputs to an artifact repository together with a
``manifest.json`` describing the build, its files and its dependencies on
other published artifacts, and extends the retention of every transitive
dependency so nothing a live build needs is cleaned up first.
"""

__version__ = "0.3.0"

from artipub.core.retention import RetentionPropagator
from artipub.core.session import PublishSession

__all__ = ["PublishSession", "RetentionPropagator", "__version__"]
