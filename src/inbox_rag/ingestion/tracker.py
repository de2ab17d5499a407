"""Background embedding task tracking for one ingestion job."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class EmbeddingSummary(BaseModel):
    successful: int = 0
    failed: int = 0


class EmbeddingTracker:
    """Holds one task per dispatched document until :meth:`wait` collects them.

    Tasks start as soon as they are dispatched; the job does not wait
    for them before completing.
    """

    def __init__(self, job_label: str = "") -> None:
        self.job_label = job_label
        self._tasks: list[tuple[str, asyncio.Task[Any]]] = []

    def __len__(self) -> int:
        return len(self._tasks)

    def dispatch(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=f"embed:{label}")
        self._tasks.append((label, task))
        return task

    async def wait(self) -> EmbeddingSummary:
        """Await every dispatched task, log each failure and the totals."""
        results = await asyncio.gather(*(t for _, t in self._tasks), return_exceptions=True)
        summary = EmbeddingSummary()
        for (label, _), result in zip(self._tasks, results):
            if isinstance(result, BaseException):
                summary.failed += 1
                logger.error("Embedding generation failed for %s: %s", label, result)
            else:
                summary.successful += 1
        logger.info(
            "Embedding generation completed: %d successful, %d failed (job %s)",
            summary.successful,
            summary.failed,
            self.job_label or "-",
        )
        return summary
