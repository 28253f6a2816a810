from __future__ import annotations

import asyncio
import copy
import inspect
import logging
import re
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Sequence, Union

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from backend.agents import ProcessingStep, StepContext, default_plan
from backend.application import get_job_store
from backend.core.config import Settings
from backend.core.errors import JobStateError, JobTimeoutError, StageFailure
from backend.core.schema import GeneratedTestCase
from backend.domain import DEFAULT_STAGES, Job, JobInput, JobStatus
from backend.infrastructure import InMemoryJobStore, JobStore, utcnow
from backend.workers.stages import (
    SimulatedStageWork,
    StageRunner,
    call_with_deadline,
    mark_failed,
)

logger = logging.getLogger(__name__)

PlanEntry = Union[ProcessingStep, Sequence[ProcessingStep]]

CANCELLED = "cancelled"


def _natural_key(value: str) -> list[Any]:
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", value)]


def merge_by_key(outputs: Iterable[Iterable[Mapping[str, Any]]], key: str) -> list[dict[str, Any]]:
    """Combine records from concurrent steps by correlation key.

    Fields are layered in the order the outputs are given and the merged records
    come back sorted by key, so completion order never leaks into the result.
    """

    merged: dict[str, dict[str, Any]] = {}
    for records in outputs:
        for record in records:
            if key not in record:
                raise StageFailure(f"record missing correlation key '{key}'")
            merged.setdefault(str(record[key]), {}).update(record)
    return [merged[name] for name in sorted(merged, key=_natural_key)]


class PipelineOrchestrator:
    """Creates jobs, runs their stages in the background and produces results."""

    def __init__(
        self,
        store: JobStore,
        runner: StageRunner,
        plan: Sequence[PlanEntry],
        *,
        step_timeout: float | None = None,
        step_retries: int = 0,
        correlation_key: str = "req_id",
        result_schema: type[BaseModel] | None = GeneratedTestCase,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._runner = runner
        self._plan = [tuple(entry) if isinstance(entry, (list, tuple)) else (entry,) for entry in plan]
        self._step_timeout = step_timeout
        self._step_retries = max(0, step_retries)
        self._correlation_key = correlation_key
        self._result_schema = result_schema
        self._clock = clock
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def store(self) -> JobStore:
        return self._store

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def submit(self, job_input: JobInput) -> str:
        """Create a job and start it in the background; returns without waiting."""

        job = self._store.create(job_input)
        task = asyncio.create_task(self._run(job.id), name=f"pipeline-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _, job_id=job.id: self._tasks.pop(job_id, None))
        return job.id

    async def cancel(self, job_id: str) -> Job:
        def _cancel(job: Job) -> None:
            if job.status.is_terminal:
                raise JobStateError(f"pipeline already {job.status.value}")
            job.status = JobStatus.FAILED
            job.error = CANCELLED
            job.finished_at = self._clock()

        snapshot = self._store.update(job_id, _cancel)
        task = self._tasks.get(job_id)
        if task is not None:
            task.cancel()
        logger.warning("Job %s cancelled", job_id)
        return snapshot

    async def join(self, job_id: str) -> None:
        """Wait until the job's background task has exited."""

        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task})

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for job_id, task in list(self._tasks.items()):
            # A task cancelled before its first step never reaches its own handler.
            mark_failed(self._store, job_id, CANCELLED, self._clock)
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # ------------------------------------------------------------------
    # background execution
    # ------------------------------------------------------------------
    async def _run(self, job_id: str) -> None:
        try:
            if not await self._runner.run(job_id):
                return
            result = await self._execute_plan(job_id)
        except asyncio.CancelledError:
            mark_failed(self._store, job_id, CANCELLED, self._clock)
            raise
        except JobTimeoutError as exc:
            logger.warning("Job %s: %s", job_id, exc)
            mark_failed(self._store, job_id, str(exc), self._clock)
        except StageFailure as exc:
            logger.exception("Job %s failed", job_id)
            mark_failed(self._store, job_id, str(exc), self._clock)
        except Exception as exc:
            logger.exception("Job %s failed unexpectedly", job_id)
            mark_failed(self._store, job_id, f"{type(exc).__name__}: {exc}", self._clock)
        else:
            self._store.update(job_id, lambda job: self._finish(job, result))
            logger.info("Job %s finished with %d test case(s)", job_id, len(result))

    def _finish(self, job: Job, result: list[dict[str, Any]]) -> None:
        if job.status.is_terminal:
            return
        job.status = JobStatus.FINISHED
        job.result = result
        job.finished_at = self._clock()

    async def _execute_plan(self, job_id: str) -> list[dict[str, Any]]:
        job_input = self._store.get(job_id).input
        outputs: dict[str, Any] = {}
        previous: Any = None

        for steps in self._plan:
            results = await self._run_group(job_id, job_input, steps, previous, outputs)
            for step, output in zip(steps, results):
                outputs[step.name] = output
            if len(steps) == 1:
                previous = results[0]
            else:
                previous = merge_by_key(results, self._correlation_key)
        return self._check_result(previous)

    def _check_result(self, result: Any) -> list[dict[str, Any]]:
        """Reject a final output that polling clients could not read back."""

        if not isinstance(result, list) or not all(isinstance(item, Mapping) for item in result):
            raise StageFailure(
                f"pipeline result must be a list of records, got {type(result).__name__}"
            )
        if self._result_schema is None:
            return [dict(item) for item in result]
        records = []
        for index, item in enumerate(result):
            try:
                records.append(self._result_schema.model_validate(dict(item)).model_dump())
            except SchemaError as exc:
                first = exc.errors()[0]
                field = ".".join(str(part) for part in first["loc"])
                raise StageFailure(f"result record {index} is invalid: {field}: {first['msg']}") from exc
        return records

    async def _run_group(
        self,
        job_id: str,
        job_input: JobInput,
        steps: Sequence[ProcessingStep],
        previous: Any,
        outputs: Mapping[str, Any],
    ) -> list[Any]:
        tasks = []
        for step in steps:
            context = StepContext(
                job_id=job_id,
                input=job_input,
                previous=copy.deepcopy(previous),
                outputs=MappingProxyType(copy.deepcopy(dict(outputs))),
            )
            tasks.append(asyncio.ensure_future(self._call_step(step, context)))
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    async def _call_step(self, step: ProcessingStep, context: StepContext) -> Any:
        attempts = self._step_retries + 1
        attempt = 1
        while True:
            try:
                return await self._attempt(step, context)
            except StageFailure as exc:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "Job %s: step %s attempt %d/%d failed (%s); retrying",
                    context.job_id,
                    step.name,
                    attempt,
                    attempts,
                    exc,
                )
                attempt += 1

    async def _attempt(self, step: ProcessingStep, context: StepContext) -> Any:
        try:
            return await call_with_deadline(
                self._invoke(step, context), self._step_timeout, f"step '{step.name}'"
            )
        except StageFailure:
            raise
        except Exception as exc:
            raise StageFailure(f"step '{step.name}' failed: {exc}") from exc

    @staticmethod
    async def _invoke(step: ProcessingStep, context: StepContext) -> Any:
        if inspect.iscoroutinefunction(step.run):
            return await step.run(context)
        return await asyncio.to_thread(step.run, context)


def create_pipeline_orchestrator(
    store: JobStore | None = None,
    settings: Settings | None = None,
    plan: Sequence[PlanEntry] | None = None,
) -> PipelineOrchestrator:
    settings = settings or Settings.from_env()
    if store is None:
        store = InMemoryJobStore(max_jobs=settings.max_jobs, max_age=settings.retention_seconds)
    runner = StageRunner(
        store,
        getattr(store, "stage_definitions", DEFAULT_STAGES),
        SimulatedStageWork(tick=settings.tick_seconds, time_scale=settings.time_scale),
        pause=settings.stage_pause_seconds,
        stage_timeout=settings.stage_timeout_seconds,
    )
    return PipelineOrchestrator(
        store,
        runner,
        plan if plan is not None else default_plan(),
        step_timeout=settings.step_timeout_seconds,
        step_retries=settings.step_retries,
    )


_orchestrator: PipelineOrchestrator | None = None


def configure_pipeline_orchestrator(orchestrator: PipelineOrchestrator) -> None:
    """Install the orchestrator used by the API routes."""

    global _orchestrator
    _orchestrator = orchestrator


def get_pipeline_orchestrator() -> PipelineOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = create_pipeline_orchestrator(get_job_store())
    return _orchestrator
