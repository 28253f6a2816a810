import sys
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.core.errors import JobNotFoundError
from backend.domain import DEFAULT_STAGES, FileDescriptor, JobInput, JobStatus
from backend.infrastructure import InMemoryJobStore


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _finish(store, job_id, clock):
    def mutate(job):
        job.status = JobStatus.FINISHED
        job.result = []
        job.finished_at = clock()

    store.update(job_id, mutate)


def test_create_builds_pending_job_with_fixed_stages():
    store = InMemoryJobStore()
    job_input = JobInput(
        files=(FileDescriptor("a.txt", "abc_a.txt", "/uploads/abc_a.txt", 3),),
        regs=("IEC 62304",),
    )

    job = store.create(job_input)

    assert uuid.UUID(job.id).version == 4
    assert job.status is JobStatus.PENDING
    assert job.input == job_input
    assert [stage.name for stage in job.stages] == [definition.name for definition in DEFAULT_STAGES]
    assert all(stage.progress == 0 and stage.started_at is None for stage in job.stages)
    assert job.result is None and job.error is None and job.finished_at is None


def test_get_unknown_job_raises_not_found():
    store = InMemoryJobStore()
    with pytest.raises(JobNotFoundError):
        store.get(str(uuid.uuid4()))
    with pytest.raises(JobNotFoundError):
        store.update(str(uuid.uuid4()), lambda job: None)


def test_get_returns_detached_snapshot():
    store = InMemoryJobStore()
    job = store.create(JobInput())

    snapshot = store.get(job.id)
    snapshot.stages[0].progress = 99
    snapshot.status = JobStatus.FAILED

    stored = store.get(job.id)
    assert stored.stages[0].progress == 0
    assert stored.status is JobStatus.PENDING


def test_failed_mutator_leaves_job_unchanged():
    store = InMemoryJobStore()
    job = store.create(JobInput())

    def broken(draft):
        draft.stages[0].progress = 50
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.update(job.id, broken)
    assert store.get(job.id).stages[0].progress == 0


def test_updates_to_same_job_serialise():
    store = InMemoryJobStore()
    job = store.create(JobInput())

    def bump(draft):
        draft.stages[0].progress += 1

    threads = [threading.Thread(target=store.update, args=(job.id, bump)) for _ in range(50)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get(job.id).stages[0].progress == 50


def test_updates_to_different_jobs_do_not_block():
    store = InMemoryJobStore()
    first = store.create(JobInput())
    second = store.create(JobInput())
    entered = threading.Event()
    release = threading.Event()

    def hold(draft):
        entered.set()
        release.wait(timeout=5)

    holder = threading.Thread(target=store.update, args=(first.id, hold))
    holder.start()
    try:
        assert entered.wait(timeout=5)
        done = threading.Event()

        def touch():
            store.update(second.id, lambda draft: setattr(draft.stages[0], "progress", 10))
            done.set()

        threading.Thread(target=touch).start()
        assert done.wait(timeout=1)
        assert store.get(second.id).stages[0].progress == 10
    finally:
        release.set()
        holder.join()


def test_purge_evicts_expired_terminal_jobs_only():
    clock = FakeClock()
    store = InMemoryJobStore(max_age=60, max_jobs=None, clock=clock)
    finished = store.create(JobInput())
    running = store.create(JobInput())
    store.update(running.id, lambda job: setattr(job, "status", JobStatus.RUNNING))
    _finish(store, finished.id, clock)

    clock.advance(30)
    assert store.purge() == 0

    clock.advance(31)
    assert store.purge() == 1
    with pytest.raises(JobNotFoundError):
        store.get(finished.id)
    assert store.get(running.id).status is JobStatus.RUNNING


def test_max_jobs_evicts_oldest_terminal_first():
    clock = FakeClock()
    store = InMemoryJobStore(max_jobs=2, max_age=None, clock=clock)
    oldest = store.create(JobInput())
    newer = store.create(JobInput())
    _finish(store, oldest.id, clock)
    clock.advance(1)
    _finish(store, newer.id, clock)

    latest = store.create(JobInput())

    assert len(store) == 2
    with pytest.raises(JobNotFoundError):
        store.get(oldest.id)
    assert store.get(newer.id).status is JobStatus.FINISHED
    assert store.get(latest.id).status is JobStatus.PENDING


def test_running_jobs_are_never_evicted_for_capacity():
    store = InMemoryJobStore(max_jobs=1, max_age=None)
    first = store.create(JobInput())
    second = store.create(JobInput())

    assert len(store) == 2
    assert store.get(first.id).status is JobStatus.PENDING
    assert store.get(second.id).status is JobStatus.PENDING
