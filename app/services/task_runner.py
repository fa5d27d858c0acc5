"""
In-process runner for detached workflows (document ingestion, handbook
generation).

Usage
-----
    runner = BackgroundTaskRunner(concurrency=4)

    runner.start("ingest", document.id, ingestion.process(document.id))
    # ... on shutdown ...
    await runner.drain(timeout=10)

Jobs are keyed by ``"{kind}:{record_id}"``; starting a key that is still
running raises.  At most *concurrency* jobs execute at once, the rest wait
on the semaphore.  A job's exception is logged and never reaches the caller:
the record's status column is the only thing a client observes.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Dict, List, Optional

logger = logging.getLogger(__name__)


class DuplicateJobError(RuntimeError):
    """A job with the same key is already running."""


def job_key(kind: str, record_id: str) -> str:
    return f"{kind}:{record_id}"


class BackgroundTaskRunner:
    """Manages background asyncio.Tasks keyed by record."""

    def __init__(self, concurrency: int = 4) -> None:
        self.concurrency = max(1, concurrency)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._semaphore: Optional[asyncio.Semaphore] = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        # Created lazily so it binds to the running loop.
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.concurrency)
        return self._semaphore

    def is_running(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    @property
    def running_keys(self) -> List[str]:
        return [key for key, task in self._tasks.items() if not task.done()]

    def start(
        self,
        kind: str,
        record_id: str,
        coro: Coroutine[Any, Any, Any],
    ) -> asyncio.Task:
        """
        Launch *coro* in the background under the key ``kind:record_id``.

        Raises:
            DuplicateJobError: the same key is still running.  *coro* is
                closed so it is never awaited.
        """
        key = job_key(kind, record_id)
        if self.is_running(key):
            coro.close()
            raise DuplicateJobError(f"Job already running: {key}")

        semaphore = self._get_semaphore()

        async def _wrapper() -> None:
            async with semaphore:
                logger.info("Background job %s started", key)
                try:
                    await coro
                except asyncio.CancelledError:
                    logger.warning("Background job %s cancelled", key)
                    raise
                except Exception as exc:
                    logger.error("Background job %s failed: %s", key, exc, exc_info=True)
                else:
                    logger.info("Background job %s finished", key)

        task = asyncio.create_task(_wrapper(), name=key)
        self._tasks[key] = task

        # Drop the reference once the job is done
        task.add_done_callback(lambda t: self._cleanup(key, t))
        return task

    def _cleanup(self, key: str, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            self._tasks.pop(key, None)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait up to *timeout* seconds for running jobs, then cancel whatever
        is left.
        """
        pending = [t for t in self._tasks.values() if not t.done()]
        if not pending:
            return

        logger.info("Waiting for %d background job(s)...", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)

        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning("Cancelled %d background job(s) at shutdown", len(still_running))
            await asyncio.gather(*still_running, return_exceptions=True)
