"""Pluggable processing steps run after a job's stages complete."""

from .base import ProcessingStep, StepContext
from .compliance_mapping import ComplianceMappingAgent
from .integration import IntegrationPreparationAgent
from .requirement_analysis import RequirementAnalysisAgent
from .review import ReviewAgent
from .test_generation import TestGenerationAgent

__all__ = [
    "ComplianceMappingAgent",
    "IntegrationPreparationAgent",
    "ProcessingStep",
    "RequirementAnalysisAgent",
    "ReviewAgent",
    "StepContext",
    "TestGenerationAgent",
    "default_plan",
]


def default_plan() -> list:
    """Analysis, then generation and mapping side by side, then integration and review."""

    return [
        RequirementAnalysisAgent(),
        (TestGenerationAgent(), ComplianceMappingAgent()),
        IntegrationPreparationAgent(),
        ReviewAgent(),
    ]
