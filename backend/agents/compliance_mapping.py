from __future__ import annotations

from typing import Any

from backend.agents.base import StepContext, requirement_records

# Topics each known standard covers, keyed by a lowercase fragment of its name.
STANDARD_TOPICS: dict[str, frozenset[str]] = {
    "62304": frozenset({"software", "safety"}),
    "14971": frozenset({"risk", "safety"}),
    "21 cfr": frozenset({"records", "audit", "electronic"}),
    "13485": frozenset({"quality", "traceability"}),
    "hipaa": frozenset({"privacy", "phi"}),
    "gdpr": frozenset({"privacy"}),
}


def topics_for(standard: str) -> frozenset[str]:
    lowered = standard.lower()
    for fragment, topics in STANDARD_TOPICS.items():
        if fragment in lowered:
            return topics
    return frozenset()


class ComplianceMappingAgent:
    """Maps each requirement onto the selected compliance standards.

    With a selection, a requirement only ever maps to selected standards: those
    whose topics overlap the requirement's, else one picked round-robin. Without
    a selection the requirement keeps its default standard.
    """

    name = "compliance_mapping"

    def run(self, context: StepContext) -> list[dict[str, Any]]:
        selected = list(context.input.regs)
        mapped: list[dict[str, Any]] = []
        for index, requirement in enumerate(requirement_records(context)):
            if selected:
                topics = set(requirement.get("topics") or [])
                regs = [reg for reg in selected if topics & topics_for(reg)]
                if not regs:
                    regs = [selected[index % len(selected)]]
            else:
                regs = [str(requirement.get("default_reg") or "ISO 13485")]
            mapped.append({"req_id": requirement["req_id"], "reg": regs[0], "regs": regs})
        return mapped
