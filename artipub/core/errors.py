"""Error taxonomy for the publisher.

Every fatal condition raised by the core is a ``PublishError``.  The CLI is
the single place that catches them, prints the message and exits non-zero.
Skippable conditions are not exceptions; they go through ``Diagnostics.warn``.
"""

from __future__ import annotations

from typing import Any


class PublishError(RuntimeError):
    """Base class for all run-aborting publisher errors."""


class ConfigError(PublishError):
    """Raised for bad or missing configuration (CLI combinations, repo URL, build number)."""


class SchemaError(PublishError):
    """Raised when a manifest or dependency array fails schema validation.

    Parameters
    ----------
    violations:
        ``(path, message)`` pairs, one per schema violation.
    source:
        Optional description of the document (file name or URL).
    """

    def __init__(self, violations: list[tuple[str, str]], source: str = "") -> None:
        self.violations = list(violations)
        self.source = source
        header = f"Schema validation failed for {source}" if source else "Schema validation failed"
        lines = [f"{header} ({len(self.violations)} violation(s)):"]
        lines.extend(f"  {path}: {message}" for path, message in self.violations)
        super().__init__("\n".join(lines))


class IdentityMismatchError(PublishError):
    """Raised when a resumed manifest belongs to a different build.

    ``differences`` maps field name to ``(manifest_value, current_value)``.
    """

    def __init__(self, differences: dict[str, tuple[Any, Any]]) -> None:
        self.differences = dict(differences)
        lines = ["Manifest identity does not match the current build:"]
        for field, (recorded, current) in self.differences.items():
            lines.append(f"  {field}: manifest={recorded!r} current={current!r}")
        super().__init__("\n".join(lines))


class TransportError(PublishError):
    """Raised for non-2xx responses and connection failures against the remote store."""

    def __init__(
        self,
        message: str,
        *,
        method: str = "",
        url: str = "",
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        self.method = method
        self.url = url
        self.status_code = status_code
        self.body = body
        parts = [message]
        if method or url:
            parts.append(f"{method} {url}".strip())
        if status_code is not None:
            parts.append(f"status={status_code}")
        if body:
            parts.append(f"body={body[:500]!r}")
        super().__init__(" | ".join(parts))


class UnknownDependencyTypeError(PublishError):
    """Raised when a dependency carries a ``type`` the propagator cannot reason about."""


class DuplicateArtifactError(PublishError):
    """Raised when an artifact path is already taken, locally or remotely."""
