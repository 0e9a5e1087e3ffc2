"""Dependency resolution — fetch a remote manifest and return its dependencies."""

from __future__ import annotations

import logging

from pydantic import TypeAdapter

from artipub.core import schema
from artipub.core.remote_store import RemoteArtifactStore
from artipub.models.manifest import Dependency, Manifest

logger = logging.getLogger(__name__)

_DEPENDENCY_LIST = TypeAdapter(list[Dependency])


def parse_dependency_list(doc: object, *, source: str = "") -> list[Dependency]:
    """Validate a bare dependency array and build the typed records."""
    schema.check_dependency_types(doc, source=source)
    schema.validate_dependencies(doc, source=source)
    return _DEPENDENCY_LIST.validate_python(doc)


class DependencyResolver:
    """Reads ``manifest.json`` documents from the remote store.

    Validation failures are hard errors; nothing is retried here.
    """

    def __init__(self, store: RemoteArtifactStore) -> None:
        self._store = store

    def fetch_manifest(self, manifest_url: str) -> Manifest:
        data = self._store.get_json(manifest_url)
        doc = schema.decode(data, source=manifest_url)
        schema.check_dependency_types(doc, source=manifest_url)
        schema.validate(doc, source=manifest_url)
        return Manifest.from_document(doc)

    def fetch_dependencies(self, manifest_url: str) -> list[Dependency]:
        """Return the ``dependencies`` list of the manifest at ``manifest_url``."""
        manifest = self.fetch_manifest(manifest_url)
        logger.debug("%s lists %d dependencies", manifest_url, len(manifest.dependencies))
        return list(manifest.dependencies)
