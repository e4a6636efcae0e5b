"""Background scheduler that drains queued runs one at a time."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from urllib.parse import quote

from .config import AppConfig
from .core import ConversionPipeline
from .executors import run_sync
from .logging import error_to_dict, get_logger
from .models import ProgressUpdate, RunRecord, RunStatus
from .retry import SleepFn
from .store import MAX_IN_FLIGHT_PROGRESS, RunStore

RunCallback = Callable[[RunRecord], Awaitable[None]]


def download_url(run_id: str) -> str:
    return f"/api/runs/{quote(run_id, safe='')}/download"


class RunScheduler:
    """Single consumer of the run queue.

    ``ensure_started()`` spawns at most one loop per scheduler. The loop scans
    runs in store order, processes the first queued one to a terminal state,
    then resumes scanning. Runs can also be driven directly with
    ``process_run()`` (inline mode); a claim set keeps one run from being
    processed twice by the same scheduler.
    """

    def __init__(
        self,
        config: AppConfig,
        store: RunStore,
        pipeline: ConversionPipeline | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._config = config
        self._store = store
        self._pipeline = pipeline or ConversionPipeline(config)
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self._claimed: set[str] = set()
        self._inline: set[asyncio.Task[RunRecord | None]] = set()
        self._logger = get_logger("worker")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def ensure_started(self) -> bool:
        """Start the loop on the running event loop; returns False if already running."""

        if self.running:
            return False
        self._logger.info("worker: starting background loop")
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="guide-converter-worker")
        return True

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._logger.info("worker: stopped")

    async def find_next_queued(self) -> str | None:
        run_ids = await run_sync(self._store.list_run_ids)
        for run_id in run_ids:
            if run_id in self._claimed:
                continue
            try:
                record = await run_sync(self._store.get, run_id)
            except (OSError, ValueError, KeyError) as exc:
                self._logger.warn("worker: unreadable run state skipped", run_id=run_id, error=error_to_dict(exc))
                continue
            if record is not None and record.status is RunStatus.QUEUED:
                return run_id
        return None

    async def process_run(self, run_id: str, on_progress: RunCallback | None = None) -> RunRecord | None:
        """Drive a queued run to completion or failure; returns the final record."""

        if run_id in self._claimed:
            return None
        self._claimed.add(run_id)
        try:
            record = await run_sync(self._store.mark_running, run_id)
            if record is None:
                return await run_sync(self._store.get, run_id)
            log = self._store.logger(run_id, "worker", upload_id=record.upload_id)
            log.info("worker: run started")

            async def _progress(update: ProgressUpdate) -> None:
                updated = await run_sync(self._store.update_progress, run_id, update)
                if updated is not None and on_progress is not None:
                    await on_progress(updated)

            try:
                archive = await self._pipeline.run(record, _progress, logger=log)
            except Exception as exc:
                log.error("worker: run failed", error=error_to_dict(exc))
                return await run_sync(self._store.mark_failed, run_id, exc)
            except BaseException as exc:
                log.error("worker: run interrupted", error=error_to_dict(exc))
                await run_sync(self._store.mark_failed, run_id, exc)
                raise
            final = await run_sync(self._store.mark_completed, run_id, archive)
            log.info("worker: run completed", archive=archive)
            return final
        finally:
            self._claimed.discard(run_id)

    async def stream_run(self, run_id: str) -> AsyncIterator[dict[str, Any]]:
        """Process *run_id* inline, yielding progress events as they happen.

        Closing the stream early stops the events, not the run: the drive task
        is held by the scheduler until the run reaches a terminal state.
        """

        events: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

        async def _on_progress(record: RunRecord) -> None:
            await events.put(status_event(record))

        async def _drive() -> RunRecord | None:
            try:
                return await self.process_run(run_id, _on_progress)
            finally:
                await events.put(None)

        yield {"type": "runId", "run_id": run_id}
        yield {"type": "status", "status": RunStatus.QUEUED.value, "progress": 0, "message": "Queued"}
        task = asyncio.create_task(_drive(), name=f"guide-converter-inline-{run_id}")
        self._inline.add(task)
        task.add_done_callback(self._inline.discard)
        try:
            while (event := await events.get()) is not None:
                yield event
            final = await asyncio.shield(task)
        except Exception as exc:
            self._logger.error("worker: inline run crashed", run_id=run_id, error=error_to_dict(exc))
            yield {"type": "failed", "run_id": run_id, "error": str(exc) or "Failed to process run"}
            return
        if final is not None and final.status is RunStatus.COMPLETED:
            yield {"type": "completed", "run_id": run_id, "download_url": download_url(run_id)}
        elif final is not None and final.status is RunStatus.FAILED:
            yield {"type": "failed", "run_id": run_id, "error": final.error or "Failed"}
        else:
            yield {"type": "failed", "run_id": run_id, "error": "Run did not complete"}

    async def _loop(self) -> None:
        scheduler = self._config.runtime.scheduler
        while True:
            try:
                run_id = await self.find_next_queued()
            except Exception as exc:
                self._logger.error("worker: scan failed", error=error_to_dict(exc))
                run_id = None
            if run_id is None:
                await self._sleep(scheduler.idle_poll_s)
                continue
            self._logger.info("worker: found queued run", run_id=run_id)
            try:
                await self.process_run(run_id)
            except Exception as exc:
                self._logger.error("worker: run processing crashed", run_id=run_id, error=error_to_dict(exc))
            await self._sleep(scheduler.cooldown_s)


def status_event(record: RunRecord) -> dict[str, Any]:
    event: dict[str, Any] = {
        "type": "status",
        "status": record.status.value,
        "progress": min(record.progress, MAX_IN_FLIGHT_PROGRESS),
        "message": record.message,
    }
    if record.current is not None:
        event["current"] = record.current.to_payload()
    return event


__all__ = ["RunScheduler", "download_url", "status_event"]
