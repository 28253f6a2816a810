from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, constr


class GeneratedTestCase(BaseModel):
    """A test case produced by a finished pipeline.

    Field names are snake_case internally; the API emits the camelCase aliases
    the front end reads (``reqId``, ``testCase`` ...).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: constr(pattern=r"^TC-\d+$")
    req_id: constr(pattern=r"^REQ-") = Field(alias="reqId")
    description: str
    test_case: str = Field(alias="testCase")
    test_steps: list[str] = Field(default_factory=list, alias="testSteps")
    expected: str = ""
    reg: str | None = None
    regs: list[str] = Field(default_factory=list)
    source_file: str | None = Field(default=None, alias="sourceFile")
    integration: dict[str, Any] | None = None
    status: Literal["Draft", "Needs Review"] = "Draft"
