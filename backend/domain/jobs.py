"""Domain entities for pipeline job tracking."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FINISHED, JobStatus.FAILED)


@dataclass(frozen=True, slots=True)
class FileDescriptor:
    """An uploaded requirement document as persisted by the upload storage."""

    original_name: str
    stored_name: str
    path: str
    size: int
    content_type: str | None = None


@dataclass(frozen=True, slots=True)
class JobInput:
    """Submitted payload; never changes once the job exists."""

    files: tuple[FileDescriptor, ...] = ()
    regs: tuple[str, ...] = ()
    integration_target: str = "none"


@dataclass(frozen=True, slots=True)
class StageDefinition:
    name: str
    label: str
    duration: float


DEFAULT_STAGES: tuple[StageDefinition, ...] = (
    StageDefinition("parsing", "Requirement Analyzer", 0.8),
    StageDefinition("generate", "Test Case Generator", 1.6),
    StageDefinition("mapping", "Compliance Mapper", 1.0),
    StageDefinition("integration", "Integration Preparation", 0.6),
)


@dataclass(slots=True)
class Stage:
    """Progress record for one named step of a job."""

    name: str
    label: str
    progress: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None


@dataclass(slots=True)
class Job:
    """A submitted unit of work tracked end-to-end by its id."""

    id: str
    created_at: datetime
    input: JobInput
    stages: list[Stage] = field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: list[dict[str, Any]] | None = None
    error: str | None = None
