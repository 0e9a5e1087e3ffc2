"""artipub data models — Pydantic v2."""

from artipub.models.manifest import (
    MANIFEST_FILENAME,
    MANIFEST_SCHEMA_VERSION,
    BuildArtifactDependency,
    BuildInfo,
    Dependency,
    DependencyType,
    DockerDependency,
    FileRecord,
    GenericFileDependency,
    Manifest,
    Retention,
)
from artipub.models.retention import (
    DEFAULT_BUFFER,
    KEEP_UNTIL_PROPERTY,
    RetentionWatermark,
    format_stamp,
    parse_stamp,
)
from artipub.models.session import (
    VALID_TRANSITIONS,
    PublishMode,
    SessionConfig,
    SessionState,
)

__all__ = [
    # manifest
    "MANIFEST_FILENAME",
    "MANIFEST_SCHEMA_VERSION",
    "BuildInfo",
    "Retention",
    "FileRecord",
    "DependencyType",
    "Dependency",
    "GenericFileDependency",
    "BuildArtifactDependency",
    "DockerDependency",
    "Manifest",
    # retention
    "DEFAULT_BUFFER",
    "KEEP_UNTIL_PROPERTY",
    "RetentionWatermark",
    "format_stamp",
    "parse_stamp",
    # session
    "PublishMode",
    "SessionState",
    "VALID_TRANSITIONS",
    "SessionConfig",
]
