from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from convoprobe.schemas.common import FailureCriteriaMode
from convoprobe.schemas.message import Message


class ScenarioEvaluator(BaseModel):
    """Reference to a registered evaluator, with its type-specific config."""

    type: str = Field(..., min_length=1)
    config: dict[str, Any] = Field(default_factory=dict)


class Scenario(BaseModel):
    id: str
    name: str = Field(..., min_length=1, max_length=255)
    instructions: str | None = None
    messages: list[Message] = Field(default_factory=list)
    max_messages: int | None = Field(default=None, ge=1)
    success_criteria: str | None = None
    failure_criteria: str | None = None
    failure_criteria_mode: FailureCriteriaMode = FailureCriteriaMode.ON_MAX_MESSAGES
    persona_ids: list[str] = Field(default_factory=list)
    evaluators: list[ScenarioEvaluator] = Field(default_factory=list)

    model_config = ConfigDict(use_enum_values=True)

    @model_validator(mode="after")
    def _require_criteria(self) -> "Scenario":
        # A scenario without any criterion has no defined outcome at max messages.
        if not self.success_criteria and not self.failure_criteria:
            raise ValueError("Scenario must have success or failure criteria defined")
        return self
