"""Keep-until propagation over the dependency graph.

Given the session watermark, every transitive dependency must end up with a
remote ``keep-until`` stamp no older than ``keep_until``.  Per dependency
list:

1. generic-file leaves are checked and extended as one concurrent batch;
2. build-artifact nodes are handled one after another: when their manifest
   stamp is stale, their own dependency list is propagated first (one level
   deeper) and only then is the node's own ``manifest.json`` stamped.  An
   interrupted run therefore leaves the parent stale, and the next run redoes
   the subtree;
3. docker images are leaves whose manifest location is derived from the
   registry port.

Stale means strictly older than ``keep_until`` (or missing); a stale stamp is
rewritten to ``keep_until + buffer``; a stamp is never lowered.  Any failure
aborts the propagation.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from datetime import datetime

from pydantic import BaseModel, Field

from artipub.core.diagnostics import DepthAdapter
from artipub.core.errors import ConfigError, PublishError, UnknownDependencyTypeError
from artipub.core.remote_store import RemoteArtifactStore
from artipub.core.resolver import DependencyResolver
from artipub.core.tasks import run_all
from artipub.models.manifest import (
    MANIFEST_FILENAME,
    BuildArtifactDependency,
    Dependency,
    DockerDependency,
    GenericFileDependency,
)
from artipub.models.retention import (
    KEEP_UNTIL_PROPERTY,
    RetentionWatermark,
    format_stamp,
    parse_stamp,
)

logger = logging.getLogger(__name__)


def docker_manifest_location(dep: DockerDependency, port_repos: dict[int, str]) -> str:
    """Map ``host:port/image/path`` + tag to the image manifest inside the store.

    The registry port selects the docker repository; an unmapped or missing
    port is an error.
    """
    registry, _, image_path = dep.path.partition("/")
    host, sep, port_text = registry.rpartition(":")
    if not sep or not host or not port_text.isdigit() or not image_path:
        raise ConfigError(f"Cannot derive registry port from docker path {dep.path!r}")
    port = int(port_text)
    repo = port_repos.get(port)
    if repo is None:
        raise ConfigError(
            f"No docker repository is mapped to registry port {port} (docker path {dep.path!r})"
        )
    return f"{repo}/{image_path.strip('/')}/{dep.tag}/{MANIFEST_FILENAME}"


class PropagationReport(BaseModel):
    """Locations visited and extended during one propagation."""

    checked: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)


class RetentionPropagator:
    """Extends remote keep-until stamps of every transitive dependency.

    Parameters
    ----------
    store:
        Remote store holding the stamps.
    watermark:
        Session keep-until point and extension buffer.
    resolver:
        Reads nested manifests; defaults to one over ``store``.
    docker_port_repos:
        Registry port to docker repository mapping.
    max_workers:
        Upper bound on concurrent generic-file checks.
    """

    def __init__(
        self,
        store: RemoteArtifactStore,
        watermark: RetentionWatermark,
        *,
        resolver: DependencyResolver | None = None,
        docker_port_repos: dict[int, str] | None = None,
        max_workers: int = 100,
    ) -> None:
        self._store = store
        self._watermark = watermark
        self._resolver = resolver or DependencyResolver(store)
        self._docker_port_repos = dict(docker_port_repos or {})
        self._max_workers = max_workers
        self._lock = threading.Lock()
        self.report = PropagationReport()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def propagate(self, dependencies: Sequence[Dependency], depth: int = 0) -> PropagationReport:
        """Make every dependency in the list (and below) outlive the watermark."""
        log = DepthAdapter(logger, depth)
        generic: list[GenericFileDependency] = []
        builds: list[BuildArtifactDependency] = []
        dockers: list[DockerDependency] = []
        for dep in dependencies:
            if isinstance(dep, GenericFileDependency):
                generic.append(dep)
            elif isinstance(dep, BuildArtifactDependency):
                builds.append(dep)
            elif isinstance(dep, DockerDependency):
                dockers.append(dep)
            else:
                raise UnknownDependencyTypeError(
                    f"Cannot propagate retention through dependency {dep!r}"
                )

        log.info(
            "Propagating keep-until %s: %d generic, %d build-artifact, %d docker",
            format_stamp(self._watermark.keep_until),
            len(generic),
            len(builds),
            len(dockers),
        )

        run_all(
            lambda dep: self._extend_leaf(dep.url, log),
            generic,
            max_workers=self._max_workers,
        )

        for build in builds:
            self._extend_build_artifact(build, depth, log)

        for docker in dockers:
            location = docker_manifest_location(docker, self._docker_port_repos)
            self._extend_leaf(location, log)

        return self.report

    def protect_own(self, locations: Sequence[str]) -> None:
        """Raise the publishing build's own objects to the bare ``keep_until``.

        Only stale stamps are written, so a longer stamp left by another
        build's propagation survives.
        """
        log = DepthAdapter(logger, 0)

        def _raise(location: str) -> None:
            stamp = self._current_stamp(location)
            if not self._watermark.needs_update(stamp):
                return
            log.debug("Raising %s to %s", location, format_stamp(self._watermark.keep_until))
            self._write_stamp(location, self._watermark.keep_until)

        run_all(_raise, list(locations), max_workers=self._max_workers)

    # ------------------------------------------------------------------
    # Node handling
    # ------------------------------------------------------------------

    def _current_stamp(self, location: str) -> datetime | None:
        raw = self._store.get_property(location, KEEP_UNTIL_PROPERTY)
        with self._lock:
            self.report.checked.append(location)
        if raw is None:
            return None
        try:
            return parse_stamp(raw)
        except ValueError as exc:
            raise PublishError(f"Unparseable keep-until stamp {raw!r} on {location}") from exc

    def _write_stamp(self, location: str, moment: datetime | None = None) -> None:
        self._store.set_property(
            location,
            KEEP_UNTIL_PROPERTY,
            format_stamp(moment or self._watermark.extended),
        )
        with self._lock:
            self.report.updated.append(location)

    def _extend_leaf(self, location: str, log: DepthAdapter) -> None:
        stamp = self._current_stamp(location)
        if not self._watermark.needs_update(stamp):
            log.debug("%s keep-until %s is sufficient", location, stamp)
            return
        log.info("Extending %s to %s", location, format_stamp(self._watermark.extended))
        self._write_stamp(location)

    def _extend_build_artifact(
        self, dep: BuildArtifactDependency, depth: int, log: DepthAdapter
    ) -> None:
        manifest_url = dep.manifest_url
        stamp = self._current_stamp(manifest_url)
        if not self._watermark.needs_update(stamp):
            log.debug("%s keep-until %s is sufficient", manifest_url, stamp)
            return

        log.info("Descending into %s", manifest_url)
        children = self._resolver.fetch_dependencies(manifest_url)
        self.propagate(children, depth + 1)

        # Children are protected; only now may the node itself be extended.
        log.info("Extending %s to %s", manifest_url, format_stamp(self._watermark.extended))
        self._write_stamp(manifest_url)
