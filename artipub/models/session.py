"""Publish session models — modes, states and the per-run configuration."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from artipub.models.retention import DEFAULT_BUFFER, RetentionWatermark


class PublishMode(str, Enum):
    """How the local and remote manifests are handled during a run."""

    DIRECT = "direct"  # no local manifest; upload + propagate
    INCREMENTAL = "incremental"  # accumulate into a local manifest only
    FINAL = "final"  # load local manifest, upload + propagate, delete
    NO_MANIFEST = "no_manifest"  # files only


class SessionState(str, Enum):
    BOOTSTRAP = "bootstrap"
    LOADED = "loaded"
    FILES_PLANNED = "files_planned"
    UPLOADED = "uploaded"
    MANIFEST_PUBLISHED = "manifest_published"
    DONE = "done"


# UPLOADED -> DONE is the incremental / no-manifest exit.
VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.BOOTSTRAP: {SessionState.LOADED},
    SessionState.LOADED: {SessionState.FILES_PLANNED},
    SessionState.FILES_PLANNED: {SessionState.UPLOADED},
    SessionState.UPLOADED: {SessionState.MANIFEST_PUBLISHED, SessionState.DONE},
    SessionState.MANIFEST_PUBLISHED: {SessionState.DONE},
    SessionState.DONE: set(),
}


class SessionConfig(BaseModel):
    """Everything a publish run needs, merged from settings and CLI flags.

    Passed explicitly into ``PublishSession``; the core never reads global
    configuration.
    """

    model_config = ConfigDict(frozen=True)

    mode: PublishMode = PublishMode.DIRECT
    local_manifest: Path | None = None
    target_base: str
    paths: list[Path] = Field(default_factory=list)
    dep_files: list[Path] = Field(default_factory=list)
    days: int = 30
    buffer: timedelta = DEFAULT_BUFFER
    pop_count: int = 0
    dep_generic_file_dst: str | None = None
    skip_files_already_present: bool = False
    max_workers: int = 100
    lock_timeout: float = 600.0
    docker_port_repos: dict[int, str] = Field(default_factory=dict)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def watermark(self) -> RetentionWatermark:
        return RetentionWatermark.from_start(self.started_at, self.days, self.buffer)

    @property
    def uses_local_manifest(self) -> bool:
        return self.mode in (PublishMode.INCREMENTAL, PublishMode.FINAL)
