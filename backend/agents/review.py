from __future__ import annotations

from typing import Any

from backend.agents.base import StepContext, requirement_records
from backend.core.schema import GeneratedTestCase


class ReviewAgent:
    """Numbers the merged records and validates them into final test cases."""

    name = "review"

    def run(self, context: StepContext) -> list[dict[str, Any]]:
        reviewed: list[dict[str, Any]] = []
        for number, record in enumerate(requirement_records(context), start=1):
            complete = bool(record.get("test_steps")) and bool(record.get("regs"))
            case = GeneratedTestCase(
                id=f"TC-{number}",
                req_id=record["req_id"],
                description=record.get("description", ""),
                test_case=record.get("test_case") or record.get("description", ""),
                test_steps=record.get("test_steps") or [],
                expected=record.get("expected", ""),
                reg=record.get("reg"),
                regs=record.get("regs") or [],
                source_file=record.get("source_file"),
                integration=record.get("integration"),
                status="Draft" if complete else "Needs Review",
            )
            reviewed.append(case.model_dump())
        return reviewed
