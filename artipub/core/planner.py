"""Upload planning — expand local paths into a flat list of file records.

Planning is best-effort: symlinks are skipped silently; unreadable entries,
special files and paths that pop down to nothing are skipped with a warning.
Nothing here aborts the run.
"""

from __future__ import annotations

import logging
import stat
from pathlib import Path, PurePosixPath

from artipub.core.diagnostics import Diagnostics
from artipub.core.hasher import md5_file
from artipub.models.manifest import FileRecord

logger = logging.getLogger(__name__)


def pop_path(path: Path | str, pop_count: int) -> str:
    """Drop the first ``pop_count`` components of ``path``.

    The root anchor of an absolute path is not a component, so
    ``pop_path("/a/b/c/file.txt", 2) == "c/file.txt"``.  Returns ``""`` when
    nothing is left.
    """
    parts = [p for p in PurePosixPath(Path(path).as_posix()).parts if p != "/"]
    return "/".join(parts[pop_count:])


class UploadPlanner:
    """Turns CLI path arguments into ``FileRecord`` entries.

    Parameters
    ----------
    diagnostics:
        Collects the warnings for skipped entries.
    """

    def __init__(self, diagnostics: Diagnostics | None = None) -> None:
        self._diagnostics = diagnostics or Diagnostics()

    def plan(
        self,
        roots: list[Path],
        pop_count: int = 0,
        *,
        as_dependency: bool = False,
    ) -> list[FileRecord]:
        """Expand ``roots`` depth-first and return one record per uploadable file.

        ``path`` of each record is the popped remote path, ``ci_path`` the
        local source.  With ``as_dependency`` zero-length files are left out.
        """
        records: list[FileRecord] = []
        for root in roots:
            self._visit(Path(root), pop_count, as_dependency, records)
        logger.info("Planned %d file(s) from %d root(s).", len(records), len(roots))
        return records

    def _visit(
        self,
        path: Path,
        pop_count: int,
        as_dependency: bool,
        out: list[FileRecord],
    ) -> None:
        try:
            if path.is_symlink():
                logger.debug("Skipping symlink %s", path)
                return
            mode = path.stat().st_mode
        except OSError as exc:
            self._diagnostics.warn("Cannot stat %s: %s", path, exc, log=logger)
            return

        if stat.S_ISDIR(mode):
            try:
                children = sorted(path.iterdir(), key=lambda p: p.name)
            except OSError as exc:
                self._diagnostics.warn("Cannot list directory %s: %s", path, exc, log=logger)
                return
            for child in children:
                self._visit(child, pop_count, as_dependency, out)
            return

        if not stat.S_ISREG(mode):
            self._diagnostics.warn("Skipping %s: not a regular file", path, log=logger)
            return

        record = self._plan_file(path, pop_count, as_dependency)
        if record is not None:
            out.append(record)

    def _plan_file(self, path: Path, pop_count: int, as_dependency: bool) -> FileRecord | None:
        remote = pop_path(path, pop_count)
        if not remote.strip("/"):
            self._diagnostics.warn(
                "Skipping %s: removing %d path component(s) leaves nothing to upload",
                path,
                pop_count,
                log=logger,
            )
            return None

        try:
            digest, size = md5_file(path)
        except OSError as exc:
            self._diagnostics.warn("Skipping unreadable file %s: %s", path, exc, log=logger)
            return None

        if as_dependency and size == 0:
            logger.info("Skipping empty dependency file %s", path)
            return None

        return FileRecord(path=remote, ci_path=str(path), md5=digest, size=size)
