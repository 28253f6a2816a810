"""Application service layer for pipeline status and results."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from backend.core.errors import JobNotReadyError
from backend.core.schema import GeneratedTestCase
from backend.domain import FileDescriptor, Job, JobStatus, Stage
from backend.infrastructure import InMemoryJobStore, JobStore


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialise_stage(stage: Stage) -> dict[str, Any]:
    return {
        "step": stage.name,
        "label": stage.label,
        "progress": stage.progress,
        "startedAt": _iso(stage.started_at),
        "finishedAt": _iso(stage.finished_at),
    }


def _serialise_file(descriptor: FileDescriptor) -> dict[str, Any]:
    return {
        "originalname": descriptor.original_name,
        "storedname": descriptor.stored_name,
        "path": descriptor.path,
        "size": descriptor.size,
    }


class PipelineService:
    """Read-only queries over the job store for polling clients."""

    def __init__(self, store: JobStore) -> None:
        self._store = store

    @property
    def store(self) -> JobStore:
        return self._store

    def get_job(self, job_id: str) -> Job:
        return self._store.get(job_id)

    def describe(self, job: Job) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": job.id,
            "status": job.status.value,
            "finished": job.status is JobStatus.FINISHED,
            "history": [_serialise_stage(stage) for stage in job.stages],
            "createdAt": _iso(job.created_at),
            "startedAt": _iso(job.started_at),
            "files": [_serialise_file(item) for item in job.input.files],
            "regs": list(job.input.regs),
            "integrationTarget": job.input.integration_target,
        }
        if job.finished_at is not None:
            payload["finishedAt"] = _iso(job.finished_at)
        if job.error is not None:
            payload["error"] = job.error
        return payload

    def get_pipeline(self, job_id: str) -> dict[str, Any]:
        return self.describe(self.get_job(job_id))

    def get_testcases(self, job_id: str) -> list[dict[str, Any]]:
        """Return the generated test cases; only a finished job has any."""

        job = self.get_job(job_id)
        if job.status is not JobStatus.FINISHED or job.result is None:
            raise JobNotReadyError(job_id, job.status.value, job.error)
        return [
            GeneratedTestCase.model_validate(item).model_dump(by_alias=True)
            for item in job.result
        ]

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._store.reset()


_service = PipelineService(InMemoryJobStore())


def configure_pipeline_service(service: PipelineService) -> None:
    """Install the service (and its store) used by the API routes."""

    global _service
    _service = service


def get_pipeline_service() -> PipelineService:
    """Return the singleton pipeline service for the process."""

    return _service


def get_job_store() -> JobStore:
    return _service.store


def reset_pipeline_state() -> None:
    """Reset the in-memory store (used in tests)."""

    _service.reset()
