"""Bounded fan-out helper shared by the uploader and the retention propagator."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def run_all(fn: Callable[[T], R], items: Sequence[T], *, max_workers: int) -> list[R]:
    """Run ``fn`` over ``items`` on a thread pool and join every task.

    Every launched task is allowed to finish before anything is raised; the
    first failure in submission order is then re-raised.  Results come back
    in input order.
    """
    if not items:
        return []
    workers = max(1, min(max_workers, len(items)))
    futures: list[Future[R]] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        for item in items:
            futures.append(executor.submit(fn, item))
        wait(futures)

    failures = [f.exception() for f in futures if f.exception() is not None]
    if failures:
        if len(failures) > 1:
            logger.error("%d of %d concurrent tasks failed", len(failures), len(futures))
        raise failures[0]
    return [f.result() for f in futures]
