"""Contract shared by the pipeline's processing steps.

The orchestrator only knows that a step has a ``name`` and a ``run`` method
that takes a :class:`StepContext` and returns the next output, either
synchronously or as a coroutine. Real requirement parsers, generators and
mappers can replace the bundled agents as long as they keep that shape.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Protocol

from backend.domain import JobInput


@dataclass(frozen=True, slots=True)
class StepContext:
    """Inputs handed to a processing step. Steps must treat it as read-only."""

    job_id: str
    input: JobInput
    previous: Any = None
    outputs: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


class ProcessingStep(Protocol):
    """Contract for pipeline agents."""

    name: str

    def run(self, context: StepContext) -> Any:
        """Produce the next output from prior outputs, or raise to abort the job."""


def requirement_records(context: StepContext) -> list[dict[str, Any]]:
    """Return the prior step's records, rejecting anything that is not a list of dicts."""

    previous = context.previous
    if not isinstance(previous, list) or not all(isinstance(item, dict) for item in previous):
        raise TypeError("expected a list of requirement records from the previous step")
    return previous
