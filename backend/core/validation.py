from __future__ import annotations

import json
from typing import Any

from backend.core.errors import PipelineError

INTEGRATION_TARGETS = ("none", "jira", "azure-devops", "polarion")


class ValidationError(PipelineError):
    """Raised when a submission is malformed."""

    status_code = 400
    code = "validation_error"


def parse_regs(raw: str | None) -> list[str]:
    """Parse the ``regs`` form field.

    Accepts a JSON array of strings, a single JSON string or number, or a
    comma-separated list. Anything else that parses as JSON is rejected.
    """

    if raw is None or not raw.strip():
        return []

    text = raw.strip()
    try:
        parsed: Any = json.loads(text)
    except json.JSONDecodeError:
        items = text.split(",")
    else:
        if isinstance(parsed, str):
            items = [parsed]
        elif isinstance(parsed, (int, float)) and not isinstance(parsed, bool):
            # a bare standard number such as ``13485``
            items = [text]
        elif isinstance(parsed, list) and all(isinstance(item, str) for item in parsed):
            items = parsed
        else:
            raise ValidationError("regs must be a JSON array of strings or a comma-separated list")

    regs: list[str] = []
    for item in items:
        cleaned = item.strip()
        if cleaned and cleaned not in regs:
            regs.append(cleaned)
    return regs


def normalise_integration_target(raw: str | None) -> str:
    if raw is None or not raw.strip():
        return "none"
    target = raw.strip().lower()
    if target not in INTEGRATION_TARGETS:
        raise ValidationError(
            f"integrationTarget must be one of: {', '.join(INTEGRATION_TARGETS)}"
        )
    return target


def validate_upload_count(count: int, limit: int) -> None:
    if count > limit:
        raise ValidationError(f"at most {limit} files may be uploaded per pipeline")
