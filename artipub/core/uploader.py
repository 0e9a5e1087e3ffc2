"""Concurrent file upload in contiguous slices.

The worklist is cut into ``ceil(N / max_workers)``-sized slices (always at
least one); each slice is uploaded sequentially by its own task and all
slices run concurrently.  Destinations are distinct, so order is irrelevant.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from artipub.core.diagnostics import Diagnostics
from artipub.core.errors import DuplicateArtifactError
from artipub.core.remote_store import RemoteArtifactStore
from artipub.core.tasks import run_all

logger = logging.getLogger(__name__)


class UploadItem(BaseModel):
    """One local file and its store-relative destination."""

    model_config = ConfigDict(frozen=True)

    local_path: Path
    remote_path: str


class UploadOutcome(BaseModel):
    uploaded: list[str] = []
    skipped: list[str] = []


def slice_worklist(items: Sequence[UploadItem], max_workers: int) -> list[list[UploadItem]]:
    """Split ``items`` into contiguous slices, at most ``max_workers`` of them."""
    if not items:
        return [[]]
    size = max(1, math.ceil(len(items) / max(1, max_workers)))
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class Uploader:
    """Uploads planned files to the remote store.

    Parameters
    ----------
    store:
        Destination store.
    properties:
        Properties attached to every uploaded object (the keep-until stamp).
    skip_existing:
        Skip objects that already exist instead of failing the run.
    max_workers:
        Upper bound on concurrent slice tasks.
    """

    def __init__(
        self,
        store: RemoteArtifactStore,
        *,
        properties: dict[str, str] | None = None,
        skip_existing: bool = False,
        max_workers: int = 100,
        diagnostics: Diagnostics | None = None,
    ) -> None:
        self._store = store
        self._properties = dict(properties or {})
        self._skip_existing = skip_existing
        self._max_workers = max_workers
        self._diagnostics = diagnostics or Diagnostics()

    def upload_bytes(self, remote_path: str, data: bytes) -> bool:
        """Upload one object; returns ``False`` when it was skipped as already present."""
        if self._store.exists(remote_path):
            if self._skip_existing:
                logger.info("Already present, skipping: %s", remote_path)
                return False
            raise DuplicateArtifactError(
                f"{remote_path} already exists in the artifact store "
                "(duplicate build? use --skip-files-already-present to re-run)"
            )
        self._store.put(remote_path, data, properties=self._properties)
        logger.info("Uploaded %s (%d bytes)", remote_path, len(data))
        return True

    def _upload_slice(self, items: list[UploadItem]) -> UploadOutcome:
        outcome = UploadOutcome()
        for item in items:
            data = item.local_path.read_bytes()
            if self.upload_bytes(item.remote_path, data):
                outcome.uploaded.append(item.remote_path)
            else:
                outcome.skipped.append(item.remote_path)
        return outcome

    def upload(self, items: Sequence[UploadItem]) -> UploadOutcome:
        """Upload every item and wait for all slices before returning."""
        slices = slice_worklist(items, self._max_workers)
        logger.info("Uploading %d file(s) in %d slice(s)", len(items), len(slices))
        total = UploadOutcome()
        for outcome in run_all(self._upload_slice, slices, max_workers=len(slices)):
            total.uploaded.extend(outcome.uploaded)
            total.skipped.extend(outcome.skipped)
        return total
