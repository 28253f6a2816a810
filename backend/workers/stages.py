from __future__ import annotations

import asyncio
import logging
import math
from datetime import datetime
from typing import Awaitable, Callable, Mapping, Protocol, Sequence, TypeVar

from backend.core.errors import JobTimeoutError
from backend.domain import Job, JobStatus, StageDefinition
from backend.infrastructure import JobStore, utcnow

logger = logging.getLogger(__name__)

ProgressReporter = Callable[[int], None]

T = TypeVar("T")


class StageWork(Protocol):
    """Unit of work behind a stage; reports its own progress through ``report``."""

    def __call__(self, stage: StageDefinition, report: ProgressReporter) -> Awaitable[None]: ...


class SimulatedStageWork:
    """Stand-in work that advances in even ticks across the stage's duration."""

    def __init__(self, tick: float = 0.1, time_scale: float = 1.0) -> None:
        if tick <= 0:
            raise ValueError("tick must be positive")
        self.tick = tick
        self.time_scale = time_scale

    async def __call__(self, stage: StageDefinition, report: ProgressReporter) -> None:
        duration = max(0.0, stage.duration * self.time_scale)
        # At most 100 ticks so every tick moves progress forward.
        ticks = min(100, max(1, math.ceil(duration / self.tick)))
        interval = duration / ticks
        for tick in range(1, ticks + 1):
            await asyncio.sleep(interval)
            report(min(100, round(tick / ticks * 100)))


async def call_with_deadline(awaitable: Awaitable[T], timeout: float | None, what: str) -> T:
    """Await ``awaitable``; raise ``JobTimeoutError`` only when this deadline fires.

    A ``TimeoutError`` raised by the awaited work itself propagates unchanged.
    """

    if timeout is None:
        return await awaitable
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise
    if not done:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise JobTimeoutError(what, timeout)
    return task.result()


def mark_failed(store: JobStore, job_id: str, error: str, clock: Callable[[], datetime] = utcnow) -> Job:
    """Record a terminal failure unless the job already reached a terminal state."""

    def _fail(job: Job) -> None:
        if job.status.is_terminal:
            return
        job.status = JobStatus.FAILED
        job.error = error
        job.finished_at = clock()

    return store.update(job_id, _fail)


class StageRunner:
    """Drives a job's stages in declared order, one at a time."""

    def __init__(
        self,
        store: JobStore,
        definitions: Sequence[StageDefinition],
        work: StageWork | Mapping[str, StageWork] | None = None,
        *,
        pause: float = 0.2,
        stage_timeout: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._definitions = tuple(definitions)
        self._work = work if work is not None else SimulatedStageWork()
        self._pause = pause
        self._stage_timeout = stage_timeout
        self._clock = clock

    def _work_for(self, definition: StageDefinition) -> StageWork:
        if isinstance(self._work, Mapping):
            return self._work.get(definition.name) or SimulatedStageWork()
        return self._work

    def _reporter(self, job_id: str, index: int) -> ProgressReporter:
        def report(progress: int) -> None:
            def _apply(job: Job) -> None:
                if job.status.is_terminal:
                    return
                stage = job.stages[index]
                stage.progress = max(stage.progress, min(100, int(progress)))

            self._store.update(job_id, _apply)

        return report

    def _start_stage(self, index: int, job: Job) -> None:
        if job.status.is_terminal:
            return
        now = self._clock()
        if job.status is JobStatus.PENDING:
            job.status = JobStatus.RUNNING
            job.started_at = now
        job.stages[index].started_at = now

    def _finish_stage(self, index: int, job: Job) -> None:
        if job.status.is_terminal:
            return
        stage = job.stages[index]
        stage.progress = 100
        stage.finished_at = self._clock()

    async def run(self, job_id: str) -> bool:
        """Run every stage; return ``False`` when the job failed along the way."""

        for index, definition in enumerate(self._definitions):
            snapshot = self._store.update(job_id, lambda job, i=index: self._start_stage(i, job))
            if snapshot.status.is_terminal:
                return False
            logger.debug("Job %s: stage %s started", job_id, definition.name)

            work = self._work_for(definition)(definition, self._reporter(job_id, index))
            try:
                await call_with_deadline(work, self._stage_timeout, f"stage '{definition.name}'")
            except JobTimeoutError as error:
                logger.warning("Job %s: %s", job_id, error)
                mark_failed(self._store, job_id, str(error), self._clock)
                return False
            except Exception as exc:
                logger.exception("Job %s: stage %s failed", job_id, definition.name)
                mark_failed(self._store, job_id, f"stage '{definition.name}' failed: {exc}", self._clock)
                return False

            self._store.update(job_id, lambda job, i=index: self._finish_stage(i, job))
            logger.debug("Job %s: stage %s finished", job_id, definition.name)

            if index < len(self._definitions) - 1 and self._pause > 0:
                await asyncio.sleep(self._pause)
        return True
