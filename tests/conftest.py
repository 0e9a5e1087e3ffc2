"""Shared test fixtures for artipub."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from artipub.core import schema
from artipub.core.errors import TransportError
from artipub.models.manifest import (
    BuildInfo,
    Dependency,
    FileRecord,
    Manifest,
    Retention,
)
from artipub.models.retention import (
    KEEP_UNTIL_PROPERTY,
    RetentionWatermark,
    format_stamp,
    parse_stamp,
)
from artipub.models.session import PublishMode, SessionConfig

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
STORE_URL = "https://store.test/artifactory"


class InMemoryStore:
    """Thread-safe in-memory ``RemoteArtifactStore`` with call recording.

    ``failures`` maps ``(operation, path)`` to an exception raised when that
    operation touches that path.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.objects: dict[str, bytes] = {}
        self.properties: dict[str, dict[str, str]] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[tuple[str, str], Exception] = {}

    @staticmethod
    def key(path: str) -> str:
        if path.startswith(STORE_URL):
            path = path[len(STORE_URL):]
        return path.strip("/")

    def _enter(self, op: str, path: str) -> str:
        key = self.key(path)
        with self._lock:
            self.calls.append((op, key))
        failure = self.failures.get((op, key))
        if failure is not None:
            raise failure
        return key

    # RemoteArtifactStore ------------------------------------------------

    def put(self, path: str, data: bytes, properties: dict[str, str] | None = None) -> None:
        key = self._enter("put", path)
        with self._lock:
            self.objects[key] = data
            if properties:
                self.properties.setdefault(key, {}).update(properties)

    def exists(self, path: str) -> bool:
        key = self._enter("exists", path)
        with self._lock:
            return key in self.objects or any(k.startswith(key + "/") for k in self.objects)

    def get_property(self, path: str, key: str) -> str | None:
        k = self._enter("get_property", path)
        with self._lock:
            return self.properties.get(k, {}).get(key)

    def set_property(self, path: str, key: str, value: str, *, recursive: bool = False) -> None:
        k = self._enter("set_property", path)
        with self._lock:
            targets = [k]
            if recursive:
                targets += [o for o in self.objects if o.startswith(k + "/")]
            for target in targets:
                self.properties.setdefault(target, {})[key] = value

    def get_json(self, path: str) -> bytes:
        key = self._enter("get_json", path)
        with self._lock:
            if key not in self.objects:
                raise TransportError("Artifact store returned an error", url=key, status_code=404)
            return self.objects[key]

    # Test helpers -------------------------------------------------------

    def stamp(self, path: str) -> datetime | None:
        raw = self.properties.get(self.key(path), {}).get(KEEP_UNTIL_PROPERTY)
        return parse_stamp(raw) if raw is not None else None

    def set_stamp(self, path: str, moment: datetime) -> None:
        self.properties.setdefault(self.key(path), {})[KEEP_UNTIL_PROPERTY] = format_stamp(moment)

    def writes(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("put", "set_property")]


@pytest.fixture
def store() -> InMemoryStore:
    """Provide an empty in-memory artifact store."""
    return InMemoryStore()


@pytest.fixture
def watermark() -> RetentionWatermark:
    """Keep-until ten days after ``NOW`` with the default five-day buffer."""
    return RetentionWatermark.from_start(NOW, 10)


@pytest.fixture
def build_info() -> BuildInfo:
    return BuildInfo(
        repo="git@github.com:acme/widget.git",
        branch="main",
        build_no="42",
        git_sha="0123456789abcdef0123456789abcdef01234567",
        timestamp=NOW.isoformat(timespec="seconds"),
    )


@pytest.fixture
def make_manifest(build_info: BuildInfo) -> Callable[..., Manifest]:
    """Factory fixture: build a Manifest with sensible defaults."""

    def _factory(
        files: list[FileRecord] | None = None,
        dependencies: list[Dependency] | None = None,
        days: int = 10,
        **build_overrides: Any,
    ) -> Manifest:
        info = build_info.model_copy(update=build_overrides) if build_overrides else build_info
        return Manifest(
            build_info=info,
            retention=Retention(initial_retention_time_days=days),
            files=files or [],
            dependencies=dependencies or [],
        )

    return _factory


@pytest.fixture
def publish_remote(store: InMemoryStore, make_manifest) -> Callable[..., str]:
    """Factory fixture: place a manifest in the store and stamp it.

    Returns the folder holding ``manifest.json``.
    """

    def _factory(
        folder: str,
        dependencies: list[Dependency] | None = None,
        stamp: datetime | None = None,
    ) -> str:
        manifest = make_manifest(dependencies=dependencies, build_no=folder.rsplit("/", 1)[-1])
        store.objects[f"{folder}/manifest.json"] = schema.serialize(manifest)
        if stamp is not None:
            store.set_stamp(f"{folder}/manifest.json", stamp)
        return folder

    return _factory


@pytest.fixture
def make_session_config(tmp_path: Path) -> Callable[..., SessionConfig]:
    """Factory fixture: a SessionConfig rooted in the test's temp dir."""

    def _factory(**overrides: Any) -> SessionConfig:
        defaults: dict[str, Any] = {
            "mode": PublishMode.DIRECT,
            "target_base": "artifacts/ACME/widget/main/42",
            "days": 10,
            "max_workers": 4,
            "lock_timeout": 1.0,
            "started_at": NOW,
            "docker_port_repos": {5000: "docker", 5001: "docker-ci"},
        }
        defaults.update(overrides)
        return SessionConfig(**defaults)

    return _factory


@pytest.fixture
def now() -> datetime:
    """The fixed session start used throughout the tests."""
    return NOW


@pytest.fixture
def write_tree() -> Callable[[Path, dict[str, bytes]], Path]:
    """Factory fixture: create files (relative path -> content) below a root."""

    def _factory(root: Path, files: dict[str, bytes]) -> Path:
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        return root

    return _factory
