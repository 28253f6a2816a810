from __future__ import annotations

import re
from typing import Any

from backend.agents.base import StepContext, requirement_records

# Work item shape each ALM expects for an imported test case.
TARGET_FIELDS: dict[str, dict[str, str]] = {
    "jira": {"issue_type": "Test"},
    "azure-devops": {"work_item_type": "Test Case"},
    "polarion": {"work_item_type": "testcase"},
}


def _label(reg: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", reg.lower()).strip("-")


class IntegrationPreparationAgent:
    """Attaches export hints for the chosen ALM target; performs no network calls."""

    name = "integration_preparation"

    def run(self, context: StepContext) -> list[dict[str, Any]]:
        target = context.input.integration_target
        prepared: list[dict[str, Any]] = []
        for record in requirement_records(context):
            item = dict(record)
            fields = TARGET_FIELDS.get(target)
            if fields is None:
                item["integration"] = None
            else:
                summary = f"{record['req_id']}: {record.get('description', '')}"
                item["integration"] = {
                    "target": target,
                    **fields,
                    "summary": summary[:120],
                    "labels": [_label(reg) for reg in record.get("regs") or []],
                }
            prepared.append(item)
        return prepared
