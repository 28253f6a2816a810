from __future__ import annotations

import hashlib
from typing import Any

from backend.agents.base import StepContext

BASELINE_REQUIREMENTS: tuple[dict[str, Any], ...] = (
    {
        "req_id": "REQ-101",
        "kind": "dosage",
        "description": "System shall validate medication dosage does not exceed safe threshold.",
        "topics": ["safety", "software", "risk"],
        "default_reg": "IEC 62304",
    },
    {
        "req_id": "REQ-102",
        "kind": "audit",
        "description": "Audit logs must be tamper-evident.",
        "topics": ["records", "audit", "electronic"],
        "default_reg": "FDA 21 CFR",
    },
    {
        "req_id": "REQ-103",
        "kind": "privacy",
        "description": "Data privacy check - ensure uploaded PHI is redacted in UI preview.",
        "topics": ["privacy", "phi"],
        "default_reg": "HIPAA",
    },
)

FILE_DEFAULT_REG = "ISO 13485"


def _file_suffix(stored_name: str) -> int:
    digest = hashlib.sha256(stored_name.encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % 900 + 100


class RequirementAnalysisAgent:
    """Derives the requirement list from the submission.

    Every pipeline carries the baseline requirements; each uploaded file adds one
    more. Identifiers depend only on the input so re-running is harmless.
    """

    name = "requirement_analysis"

    def run(self, context: StepContext) -> list[dict[str, Any]]:
        requirements = [dict(item, topics=list(item["topics"])) for item in BASELINE_REQUIREMENTS]
        for index, descriptor in enumerate(context.input.files, start=1):
            requirements.append(
                {
                    "req_id": f"REQ-F-{index}-{_file_suffix(descriptor.stored_name)}",
                    "kind": "file",
                    "description": f"Parse requirement from file {descriptor.original_name}",
                    "source_file": descriptor.original_name,
                    "topics": ["quality", "traceability"],
                    "default_reg": FILE_DEFAULT_REG,
                }
            )
        return requirements
