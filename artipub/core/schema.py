"""Manifest JSON schema and the parse / validate / serialize functions.

The schema is strict: ``additionalProperties`` / ``unevaluatedProperties``
are false at every object level.  Validation uses jsonschema's draft 2020-12
validator so ``unevaluatedProperties`` sees through the per-type
``if``/``then`` branches of the dependency union.
"""

from __future__ import annotations

import json
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JSONSchemaValidationError

from artipub.core.errors import SchemaError, UnknownDependencyTypeError
from artipub.models.manifest import DependencyType, Manifest

_STRING = {"type": "string", "minLength": 1}

_VARIANT_FIELDS: dict[str, tuple[dict[str, Any], list[str]]] = {
    DependencyType.DOCKER.value: (
        {"docker-tag": _STRING, "docker-sha": _STRING, "docker-path": _STRING},
        ["docker-tag", "docker-sha", "docker-path"],
    ),
    DependencyType.BUILD_ARTIFACT.value: (
        {"build-artifact-url": _STRING, "build-artifact-version-string": {"type": "string"}},
        ["build-artifact-url"],
    ),
    DependencyType.GENERIC_FILE.value: (
        {"generic-file-url": _STRING, "generic-file-local-path": {"type": "string"}},
        ["generic-file-url"],
    ),
}

DEPENDENCY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["type"],
    "properties": {"type": {"enum": [t.value for t in DependencyType]}},
    "allOf": [
        {
            "if": {"properties": {"type": {"const": type_name}}, "required": ["type"]},
            "then": {"properties": properties, "required": required},
        }
        for type_name, (properties, required) in _VARIANT_FIELDS.items()
    ],
    "unevaluatedProperties": False,
}

DEPENDENCY_LIST_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "array",
    "items": DEPENDENCY_SCHEMA,
}

MANIFEST_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "artipub manifest",
    "type": "object",
    "required": ["schema-version", "build-info", "retention", "files"],
    "additionalProperties": False,
    "properties": {
        "schema-version": {"type": "integer", "minimum": 1},
        "build-info": {
            "type": "object",
            "required": ["repo", "branch", "build-no", "git-sha", "timestamp"],
            "additionalProperties": False,
            "properties": {
                "repo": _STRING,
                "branch": _STRING,
                "build-no": _STRING,
                "git-sha": _STRING,
                "timestamp": {
                    "type": "string",
                    "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}",
                },
            },
        },
        "retention": {
            "type": "object",
            "required": ["initial-retention-time-days"],
            "additionalProperties": False,
            "properties": {
                "initial-retention-time-days": {"type": "integer", "minimum": 0},
            },
        },
        "files": {
            "type": "array",
            "uniqueItems": True,
            "items": {
                "type": "object",
                "required": ["path", "md5"],
                "additionalProperties": False,
                "properties": {
                    "path": _STRING,
                    "ci-path": {"type": "string"},
                    "md5": {"type": "string", "pattern": "^[0-9a-f]{32}$"},
                    "size": {"type": "integer", "minimum": 0},
                },
            },
        },
        "dependencies": {"type": "array", "items": DEPENDENCY_SCHEMA},
    },
}

_MANIFEST_VALIDATOR = Draft202012Validator(MANIFEST_SCHEMA)
_DEPENDENCY_LIST_VALIDATOR = Draft202012Validator(DEPENDENCY_LIST_SCHEMA)


def _error_path(error: JSONSchemaValidationError) -> str:
    parts = [str(p) for p in error.absolute_path]
    return "/".join(parts) if parts else "$"


def _collect(validator: Draft202012Validator, doc: Any) -> list[tuple[str, str]]:
    errors = sorted(validator.iter_errors(doc), key=lambda e: [str(p) for p in e.absolute_path])
    return [(_error_path(e), e.message) for e in errors]


def _duplicate_paths(doc: Any) -> list[tuple[str, str]]:
    if not isinstance(doc, dict) or not isinstance(doc.get("files"), list):
        return []
    seen: set[str] = set()
    violations: list[tuple[str, str]] = []
    for index, record in enumerate(doc["files"]):
        path = record.get("path") if isinstance(record, dict) else None
        if not isinstance(path, str):
            continue
        if path in seen:
            violations.append((f"files/{index}/path", f"duplicate file path {path!r}"))
        seen.add(path)
    return violations


def manifest_violations(doc: Any) -> list[tuple[str, str]]:
    """Return every schema violation of a manifest document (empty when valid)."""
    return _collect(_MANIFEST_VALIDATOR, doc) + _duplicate_paths(doc)


def dependency_violations(doc: Any) -> list[tuple[str, str]]:
    """Return every schema violation of a bare dependency array."""
    return _collect(_DEPENDENCY_LIST_VALIDATOR, doc)


def validate(doc: Any, *, source: str = "") -> None:
    """Raise ``SchemaError`` unless ``doc`` is a valid manifest document."""
    violations = manifest_violations(doc)
    if violations:
        raise SchemaError(violations, source=source)


def validate_dependencies(doc: Any, *, source: str = "") -> None:
    """Raise ``SchemaError`` unless ``doc`` is a valid dependency array."""
    violations = dependency_violations(doc)
    if violations:
        raise SchemaError(violations, source=source)


def check_dependency_types(doc: Any, *, source: str = "") -> None:
    """Raise ``UnknownDependencyTypeError`` for any unrecognized dependency tag.

    Used where an unknown type must abort the run with its own error rather
    than as one schema violation among others.
    """
    deps = doc.get("dependencies") if isinstance(doc, dict) else doc
    if not isinstance(deps, list):
        return
    known = {t.value for t in DependencyType}
    for index, dep in enumerate(deps):
        if isinstance(dep, dict) and isinstance(dep.get("type"), str) and dep["type"] not in known:
            where = f" in {source}" if source else ""
            raise UnknownDependencyTypeError(
                f"Unknown dependency type {dep['type']!r} at dependencies/{index}{where}"
            )


def decode(data: bytes | str, *, source: str = "") -> Any:
    """JSON-decode ``data``; a decode failure is reported as a schema violation."""
    try:
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SchemaError([("$", f"invalid JSON: {exc}")], source=source) from exc


def parse(data: bytes | str, *, source: str = "") -> Manifest:
    """Decode, validate and build a ``Manifest``."""
    doc = decode(data, source=source)
    validate(doc, source=source)
    return Manifest.from_document(doc)


def serialize(manifest: Manifest) -> bytes:
    """Deterministic JSON encoding: sorted keys, two-space indent, trailing newline."""
    return (json.dumps(manifest.to_document(), indent=2, sort_keys=True) + "\n").encode("utf-8")
