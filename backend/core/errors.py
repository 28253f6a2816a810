from __future__ import annotations


class PipelineError(Exception):
    """Base error rendered as ``{"ok": false, "error": ...}`` by the API."""

    status_code: int = 500
    code: str = "pipeline_error"


class JobNotFoundError(PipelineError):
    status_code = 404
    code = "not_found"

    def __init__(self, job_id: str) -> None:
        super().__init__("pipeline not found")
        self.job_id = job_id


class JobNotReadyError(PipelineError):
    """Raised when a result is requested before the job has finished."""

    status_code = 404
    code = "not_ready"

    def __init__(self, job_id: str, status: str, reason: str | None = None) -> None:
        message = f"pipeline not finished (status: {status})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.job_id = job_id
        self.status = status


class JobStateError(PipelineError):
    status_code = 409
    code = "conflict"


class StageFailure(PipelineError):
    """A stage or processing step failed while the job was running in the background."""

    code = "stage_failure"


class JobTimeoutError(StageFailure):
    code = "timeout"

    def __init__(self, what: str, seconds: float) -> None:
        super().__init__(f"Timeout: {what} exceeded {seconds:g}s")
        self.seconds = seconds


class StorageFailure(PipelineError):
    code = "storage_failure"
