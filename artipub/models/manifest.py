"""Manifest data model — one published artifact set, its files and dependencies.

The wire format uses hyphenated keys (``build-info``, ``ci-path`` ...); the
models expose snake_case attributes and map them through field aliases.
Records are frozen; the ``Manifest`` itself is only appended to by the
publish session that owns it.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

MANIFEST_SCHEMA_VERSION = 1
MANIFEST_FILENAME = "manifest.json"


class DependencyType(str, Enum):
    """Discriminator values of the ``dependencies`` tagged union."""

    GENERIC_FILE = "generic-file"
    BUILD_ARTIFACT = "build-artifact"
    DOCKER = "docker"


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class BuildInfo(_WireModel):
    """Identity of the build that produced the artifact set."""

    repo: str
    branch: str
    build_no: str = Field(alias="build-no")
    git_sha: str = Field(alias="git-sha")
    timestamp: str  # ISO-8601 with seconds


class Retention(_WireModel):
    initial_retention_time_days: int = Field(alias="initial-retention-time-days")


class FileRecord(_WireModel):
    """One uploaded file.

    ``path`` is the remote destination relative to the target base,
    ``ci_path`` the local source it was read from.
    """

    path: str
    ci_path: str | None = Field(default=None, alias="ci-path")
    md5: str
    size: int = 0


class GenericFileDependency(_WireModel):
    """A single uploaded file, a leaf of the dependency graph.

    ``local_path`` is only set between planning and upload; it is dropped by
    ``finalized()`` before the record is persisted.
    """

    type: Literal["generic-file"] = "generic-file"
    url: str = Field(alias="generic-file-url")
    local_path: str | None = Field(default=None, alias="generic-file-local-path")

    def finalized(self) -> GenericFileDependency:
        """Return a copy without the transient local source path."""
        return self.model_copy(update={"local_path": None})


class BuildArtifactDependency(_WireModel):
    """Another published artifact set; ``url`` is the folder holding its manifest."""

    type: Literal["build-artifact"] = "build-artifact"
    url: str = Field(alias="build-artifact-url")
    version_string: str | None = Field(default=None, alias="build-artifact-version-string")

    @property
    def manifest_url(self) -> str:
        return f"{self.url.rstrip('/')}/{MANIFEST_FILENAME}"


class DockerDependency(_WireModel):
    """A container image pushed to the registry fronted by the artifact store."""

    type: Literal["docker"] = "docker"
    tag: str = Field(alias="docker-tag")
    sha: str = Field(alias="docker-sha")
    path: str = Field(alias="docker-path")


Dependency = Annotated[
    Union[GenericFileDependency, BuildArtifactDependency, DockerDependency],
    Field(discriminator="type"),
]


class Manifest(BaseModel):
    """Root document describing one published artifact set."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    schema_version: int = Field(default=MANIFEST_SCHEMA_VERSION, alias="schema-version")
    build_info: BuildInfo = Field(alias="build-info")
    retention: Retention
    files: list[FileRecord] = Field(default_factory=list)
    dependencies: list[Dependency] = Field(default_factory=list)

    def has_file(self, path: str) -> bool:
        return any(record.path == path for record in self.files)

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-ready document with wire (hyphenated) keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Manifest:
        return cls.model_validate(doc)

    def identity(self) -> dict[str, Any]:
        """Fields that must agree between a resumed manifest and the current build."""
        return {
            "repo": self.build_info.repo,
            "branch": self.build_info.branch,
            "build-no": self.build_info.build_no,
            "git-sha": self.build_info.git_sha,
            "initial-retention-time-days": self.retention.initial_retention_time_days,
        }
