"""Run diagnostics — warning/error counters and depth-indented logging."""

from __future__ import annotations

import logging
import threading
from collections.abc import MutableMapping
from typing import Any

logger = logging.getLogger(__name__)


class Diagnostics:
    """Counts skippable warnings and reported errors for one run.

    Shared by the planner, uploader and session; safe to call from worker
    threads.  Messages are kept so the CLI can summarise them at the end.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def warn(self, message: str, *args: Any, log: logging.Logger | None = None) -> None:
        """Log a skippable condition at WARNING level and count it."""
        text = message % args if args else message
        (log or logger).warning(text)
        with self._lock:
            self.warnings.append(text)

    def error(self, message: str, *args: Any, log: logging.Logger | None = None) -> None:
        """Log a reported (non-fatal to the caller) error and count it."""
        text = message % args if args else message
        (log or logger).error(text)
        with self._lock:
            self.errors.append(text)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class DepthAdapter(logging.LoggerAdapter):
    """Prefix each message with two spaces per level of ``depth``.

    Usage::

        log = DepthAdapter(logger, depth=2)
        log.info("checking %s", url)
    """

    def __init__(self, logger: logging.Logger, depth: int = 0) -> None:
        super().__init__(logger, {"depth": depth})
        self.depth = depth

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("depth", self.depth)
        kwargs["extra"] = extra
        return f"{'  ' * self.depth}{msg}", kwargs
