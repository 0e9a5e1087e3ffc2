"""Publish session — the incremental/final manifest lifecycle.

States run BOOTSTRAP -> LOADED -> FILES_PLANNED -> UPLOADED, then either
straight to DONE (incremental and no-manifest runs) or through
MANIFEST_PUBLISHED (manifest uploaded, retention propagated) to DONE.

A local manifest file, when used, is guarded by an exclusive ``FileLock``
on ``{manifest}.lock`` held for the whole session, so CI jobs sharing one
manifest are serialised.  The lock is released on every exit path of the
``with`` block; the OS drops it if the process dies.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from filelock import FileLock, Timeout
from pydantic import BaseModel, Field

from artipub.core import schema
from artipub.core.diagnostics import Diagnostics
from artipub.core.errors import (
    ConfigError,
    DuplicateArtifactError,
    IdentityMismatchError,
    PublishError,
    UnknownDependencyTypeError,
)
from artipub.core.planner import UploadPlanner
from artipub.core.remote_store import RemoteArtifactStore
from artipub.core.resolver import parse_dependency_list
from artipub.core.retention import PropagationReport, RetentionPropagator
from artipub.core.uploader import Uploader, UploadItem
from artipub.models.manifest import (
    MANIFEST_FILENAME,
    BuildInfo,
    Dependency,
    FileRecord,
    GenericFileDependency,
    Manifest,
    Retention,
)
from artipub.models.retention import KEEP_UNTIL_PROPERTY, format_stamp
from artipub.models.session import (
    VALID_TRANSITIONS,
    PublishMode,
    SessionConfig,
    SessionState,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a session step is called out of order."""


class PublishResult(BaseModel):
    """Summary of a finished publish run."""

    state: SessionState
    target_base: str
    files_recorded: int = 0
    uploaded: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    dependencies: int = 0
    propagation: PropagationReport | None = None
    warnings: int = 0
    errors: int = 0


class PublishSession:
    """Owns the manifest for one run and drives it through the publish states.

    Parameters
    ----------
    config:
        Merged run configuration.
    build_info:
        Identity of the current build; compared against a resumed manifest.
    store:
        Remote store; may be ``None`` only if nothing will be uploaded.
    diagnostics:
        Warning/error counters shared with the planner and uploader.
    """

    def __init__(
        self,
        config: SessionConfig,
        build_info: BuildInfo,
        store: RemoteArtifactStore | None,
        *,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        self.config = config
        self.build_info = build_info
        self._store = store
        self.diagnostics = diagnostics or Diagnostics()
        self._planner = UploadPlanner(self.diagnostics)
        self._state = SessionState.BOOTSTRAP
        self._lock: FileLock | None = None
        self.manifest: Manifest | None = None
        self._worklist: list[UploadItem] = []
        self._pending_deps: list[GenericFileDependency] = []
        self.result = PublishResult(state=self._state, target_base=config.target_base)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    def _check_transition(self, target: SessionState) -> None:
        allowed = VALID_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot move publish session from {self._state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

    def _transition(self, target: SessionState) -> None:
        self._check_transition(target)
        logger.debug("Session %s -> %s", self._state.value, target.value)
        self._state = target
        self.result.state = target

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def __enter__(self) -> PublishSession:
        path = self.config.local_manifest
        if self.config.uses_local_manifest and path is not None:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            self._lock = FileLock(f"{path}.lock")
            try:
                self._lock.acquire(timeout=self.config.lock_timeout)
            except Timeout as exc:
                raise ConfigError(
                    f"Timed out after {self.config.lock_timeout}s waiting for the lock on {path}"
                ) from exc
            logger.debug("Locked %s", path)
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._lock is not None:
            self._lock.release()
            logger.debug("Released lock on %s", self.config.local_manifest)
            self._lock = None

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def load(self) -> Manifest:
        """BOOTSTRAP -> LOADED: create a fresh manifest or resume the local one."""
        self._check_transition(SessionState.LOADED)
        fresh = Manifest(
            build_info=self.build_info,
            retention=Retention(initial_retention_time_days=self.config.days),
        )
        path = self.config.local_manifest
        resume = self.config.mode == PublishMode.FINAL or (
            self.config.mode == PublishMode.INCREMENTAL and path is not None and path.exists()
        )
        if resume:
            if path is None or not path.exists():
                raise ConfigError(f"Cannot finalize: local manifest {path} does not exist")
            loaded = schema.parse(path.read_bytes(), source=str(path))
            self._check_identity(loaded, fresh)
            logger.info(
                "Resumed %s with %d file(s), %d dependencies",
                path,
                len(loaded.files),
                len(loaded.dependencies),
            )
            self.manifest = loaded
        else:
            self.manifest = fresh
        self._transition(SessionState.LOADED)
        return self.manifest

    @staticmethod
    def _check_identity(loaded: Manifest, fresh: Manifest) -> None:
        recorded, current = loaded.identity(), fresh.identity()
        differences = {
            field: (recorded[field], current[field])
            for field in current
            if recorded[field] != current[field]
        }
        if differences:
            raise IdentityMismatchError(differences)

    def plan(self) -> None:
        """LOADED -> FILES_PLANNED: plan uploads and merge dependency files."""
        self._check_transition(SessionState.FILES_PLANNED)
        manifest = self._require_manifest()
        if self.config.dep_generic_file_dst:
            self._plan_dependency_files(self.config.dep_generic_file_dst)
        else:
            self._plan_files(manifest)
        for dep_file in self.config.dep_files:
            self._merge_dependency_file(manifest, dep_file)
        self._transition(SessionState.FILES_PLANNED)

    def _plan_files(self, manifest: Manifest) -> None:
        records = self._planner.plan(self.config.paths, self.config.pop_count)
        for record in records:
            existing = next((f for f in manifest.files if f.path == record.path), None)
            if existing is not None:
                if self.config.skip_files_already_present and existing.md5 == record.md5:
                    logger.info("Already recorded, skipping: %s", record.path)
                    continue
                raise DuplicateArtifactError(
                    f"File path {record.path!r} is already recorded in the manifest "
                    f"(from {existing.ci_path or 'an earlier invocation'})"
                )
            manifest.files.append(record)
            self._worklist.append(
                UploadItem(
                    local_path=Path(record.ci_path or record.path),
                    remote_path=f"{self.config.target_base}/{record.path}",
                )
            )

    def _plan_dependency_files(self, destination: str) -> None:
        records: list[FileRecord] = self._planner.plan(
            self.config.paths, self.config.pop_count, as_dependency=True
        )
        for record in records:
            url = f"{destination.rstrip('/')}/{record.path}"
            self._pending_deps.append(
                GenericFileDependency(url=url, local_path=record.ci_path)
            )
            self._worklist.append(
                UploadItem(local_path=Path(record.ci_path or record.path), remote_path=url)
            )

    def _merge_dependency_file(self, manifest: Manifest, dep_file: Path) -> None:
        try:
            doc = schema.decode(dep_file.read_bytes(), source=str(dep_file))
            deps = parse_dependency_list(doc, source=str(dep_file))
        except UnknownDependencyTypeError:
            raise
        except OSError as exc:
            self.diagnostics.error("Cannot read dependency file %s: %s", dep_file, exc, log=logger)
            return
        except PublishError as exc:
            self.diagnostics.error("Skipping dependency file %s:\n%s", dep_file, exc, log=logger)
            return
        added = self._add_dependencies(manifest, deps)
        logger.info("Merged %d dependencies from %s", added, dep_file)

    @staticmethod
    def _add_dependencies(manifest: Manifest, deps: list[Dependency]) -> int:
        added = 0
        for dep in deps:
            if dep not in manifest.dependencies:
                manifest.dependencies.append(dep)
                added += 1
        return added

    def upload(self) -> None:
        """FILES_PLANNED -> UPLOADED: push the worklist, then record dependency files."""
        self._check_transition(SessionState.UPLOADED)
        manifest = self._require_manifest()
        if self._worklist:
            # Dependency files get their stamp from retention propagation.
            properties = None if self.config.dep_generic_file_dst else self._stamp_properties()
            outcome = self._uploader(properties).upload(self._worklist)
            self.result.uploaded.extend(outcome.uploaded)
            self.result.skipped.extend(outcome.skipped)
        # Dependency records are only written once their file is in the store.
        self._add_dependencies(manifest, [dep.finalized() for dep in self._pending_deps])
        self._pending_deps.clear()
        if self.config.uses_local_manifest:
            self.persist()
        self._transition(SessionState.UPLOADED)

    def publish_manifest(self) -> PropagationReport:
        """UPLOADED -> MANIFEST_PUBLISHED: upload the manifest and propagate retention."""
        self._check_transition(SessionState.MANIFEST_PUBLISHED)
        manifest = self._require_manifest()
        store = self._require_store()
        watermark = self.config.watermark
        base = self.config.target_base

        manifest_path = f"{base}/{MANIFEST_FILENAME}"
        fresh = set(self.result.uploaded)
        if self._uploader(self._stamp_properties()).upload_bytes(manifest_path, schema.serialize(manifest)):
            fresh.add(manifest_path)

        propagator = RetentionPropagator(
            store,
            watermark,
            docker_port_repos=self.config.docker_port_repos,
            max_workers=self.config.max_workers,
        )
        # Files from earlier invocations or skipped re-uploads may carry older stamps.
        own = [f"{base}/{record.path}" for record in manifest.files] + [manifest_path]
        propagator.protect_own([path for path in own if path not in fresh])
        report = propagator.propagate(manifest.dependencies)
        self.result.propagation = report
        self._transition(SessionState.MANIFEST_PUBLISHED)
        return report

    def finish(self) -> PublishResult:
        """-> DONE: a finalized local manifest is deleted."""
        self._check_transition(SessionState.DONE)
        manifest = self._require_manifest()
        path = self.config.local_manifest
        if self.config.mode == PublishMode.FINAL and path is not None:
            path.unlink(missing_ok=True)
            logger.info("Finalized and removed %s", path)
        self._transition(SessionState.DONE)
        self.result.files_recorded = len(manifest.files)
        self.result.dependencies = len(manifest.dependencies)
        self.result.warnings = self.diagnostics.warning_count
        self.result.errors = self.diagnostics.error_count
        return self.result

    def run(self) -> PublishResult:
        """Drive the whole lifecycle under the local manifest lock."""
        with self:
            self.load()
            self.plan()
            self.upload()
            if self.config.mode in (PublishMode.DIRECT, PublishMode.FINAL):
                self.publish_manifest()
            return self.finish()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def persist(self) -> None:
        """Atomically write the manifest to the local manifest file."""
        path = self.config.local_manifest
        manifest = self._require_manifest()
        if path is None:
            raise ConfigError("No local manifest file configured")
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(schema.serialize(manifest))
        os.replace(tmp, path)
        logger.info("Saved manifest to %s (%d file(s))", path, len(manifest.files))

    def _stamp_properties(self) -> dict[str, str]:
        return {KEEP_UNTIL_PROPERTY: format_stamp(self.config.watermark.keep_until)}

    def _uploader(self, properties: dict[str, str] | None) -> Uploader:
        return Uploader(
            self._require_store(),
            properties=properties,
            skip_existing=self.config.skip_files_already_present,
            max_workers=self.config.max_workers,
            diagnostics=self.diagnostics,
        )

    def _require_manifest(self) -> Manifest:
        if self.manifest is None:
            raise InvalidTransitionError("Manifest not loaded; call load() first")
        return self.manifest

    def _require_store(self) -> RemoteArtifactStore:
        if self._store is None:
            raise ConfigError("No artifact store configured (set ARTIPUB_BASE_URL)")
        return self._store
