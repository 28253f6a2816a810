"""Domain layer definitions."""

from .jobs import (
    DEFAULT_STAGES,
    FileDescriptor,
    Job,
    JobInput,
    JobStatus,
    Stage,
    StageDefinition,
)

__all__ = [
    "DEFAULT_STAGES",
    "FileDescriptor",
    "Job",
    "JobInput",
    "JobStatus",
    "Stage",
    "StageDefinition",
]
