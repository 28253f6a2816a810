"""Infrastructure layer for job persistence."""
from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Protocol, Sequence
from uuid import uuid4

from backend.core.errors import JobNotFoundError
from backend.domain import DEFAULT_STAGES, Job, JobInput, Stage, StageDefinition

logger = logging.getLogger(__name__)

JobMutator = Callable[[Job], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStore(Protocol):
    """Persistence contract for pipeline jobs."""

    def create(self, job_input: JobInput) -> Job: ...

    def get(self, job_id: str) -> Job: ...

    def update(self, job_id: str, mutator: JobMutator) -> Job: ...

    def purge(self, now: datetime | None = None) -> int: ...

    def reset(self) -> None: ...


class InMemoryJobStore:
    """Process-lifetime job store.

    Stored records are never mutated in place: ``update`` applies the mutator to
    a copy and swaps it in, so readers always see a committed version. Writers
    to the same job serialise on that job's lock; writers to different jobs
    never contend.
    """

    def __init__(
        self,
        stages: Sequence[StageDefinition] = DEFAULT_STAGES,
        *,
        max_jobs: int | None = 1000,
        max_age: float | None = 3600.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._stages = tuple(stages)
        self._max_jobs = max_jobs
        self._max_age = max_age
        self._clock = clock
        self._jobs: dict[str, Job] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @property
    def stage_definitions(self) -> tuple[StageDefinition, ...]:
        return self._stages

    # ------------------------------------------------------------------
    # CRUD operations
    # ------------------------------------------------------------------
    def create(self, job_input: JobInput) -> Job:
        now = self._clock()
        job = Job(
            id=str(uuid4()),
            created_at=now,
            input=job_input,
            stages=[Stage(name=definition.name, label=definition.label) for definition in self._stages],
        )
        with self._guard:
            self._jobs[job.id] = job
            self._locks[job.id] = threading.Lock()
            snapshot = copy.deepcopy(job)
        self.purge(now)
        logger.info("Created job %s with %d file(s)", job.id, len(job_input.files))
        return snapshot

    def get(self, job_id: str) -> Job:
        with self._guard:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return copy.deepcopy(job)

    def update(self, job_id: str, mutator: JobMutator) -> Job:
        with self._guard:
            lock = self._locks.get(job_id)
        if lock is None:
            raise JobNotFoundError(job_id)

        with lock:
            with self._guard:
                current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            draft = copy.deepcopy(current)
            mutator(draft)
            with self._guard:
                self._jobs[job_id] = draft
            return copy.deepcopy(draft)

    # ------------------------------------------------------------------
    # retention
    # ------------------------------------------------------------------
    def purge(self, now: datetime | None = None) -> int:
        """Evict terminal jobs past ``max_age`` or beyond ``max_jobs``; running jobs stay."""

        now = now or self._clock()
        with self._guard:
            terminal = sorted(
                (job for job in self._jobs.values() if job.status.is_terminal and job.finished_at),
                key=lambda job: job.finished_at,
            )
            evicted: list[str] = []
            if self._max_age is not None:
                evicted = [
                    job.id
                    for job in terminal
                    if (now - job.finished_at).total_seconds() > self._max_age
                ]
            if self._max_jobs is not None:
                overflow = len(self._jobs) - len(evicted) - self._max_jobs
                if overflow > 0:
                    already = set(evicted)
                    evicted.extend([job.id for job in terminal if job.id not in already][:overflow])
            for job_id in evicted:
                del self._jobs[job_id]
                del self._locks[job_id]
        if evicted:
            logger.debug("Evicted %d terminal job(s)", len(evicted))
        return len(evicted)

    def __len__(self) -> int:
        with self._guard:
            return len(self._jobs)

    def reset(self) -> None:
        with self._guard:
            self._jobs.clear()
            self._locks.clear()
