"""Application services."""

from .pipelines import (
    PipelineService,
    configure_pipeline_service,
    get_job_store,
    get_pipeline_service,
    reset_pipeline_state,
)

__all__ = [
    "PipelineService",
    "configure_pipeline_service",
    "get_job_store",
    "get_pipeline_service",
    "reset_pipeline_state",
]
