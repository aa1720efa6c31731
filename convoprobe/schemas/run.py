from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from uuid_extensions import uuid7

from convoprobe.schemas.common import EvaluatorKind, RunStatus
from convoprobe.schemas.message import Message


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokensUsageSchema(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class CriteriaEvaluation(BaseModel):
    success_met: bool | None = None
    failure_met: bool | None = None
    confidence: float | None = None
    reasoning: str | None = None


class EvaluatorResultEntry(BaseModel):
    type: str
    kind: EvaluatorKind
    label: str
    success: bool
    value: float | None = None
    reason: str = ""
    metadata: dict[str, Any] | None = None

    model_config = ConfigDict(use_enum_values=True)


class RunOutput(BaseModel):
    message_count: int = 0
    avg_latency_ms: int = 0
    total_latency_ms: int = 0
    max_messages_reached: bool = False
    tokens_usage: TokensUsageSchema | None = None
    evaluation: CriteriaEvaluation | None = None
    evaluator_results: list[EvaluatorResultEntry] = Field(default_factory=list)
    metrics: dict[str, float] = Field(default_factory=dict)


class RunResult(BaseModel):
    success: bool
    score: float | None = None
    reason: str | None = None


class Run(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid7()))
    eval_id: str | None = None
    scenario_id: str
    persona_id: str | None = None
    connector_id: str | None = None
    # Groups runs created by one eval trigger; passed through untouched
    execution_id: int | None = None
    # LangGraph thread, regenerated on retry
    thread_id: str | None = None
    status: RunStatus = RunStatus.QUEUED
    messages: list[Message] = Field(default_factory=list)
    output: RunOutput | None = None
    result: RunResult | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(use_enum_values=True)

    @property
    def is_retryable(self) -> bool:
        return self.status == RunStatus.ERROR
