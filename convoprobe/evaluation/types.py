"""Evaluator base class and data types.

Evaluators are either assertions (pass/fail gates on the run) or metrics
(measurements that never fail a run).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from convoprobe.engine.types import ConnectorResult, TokensUsage
from convoprobe.schemas.common import EvaluatorKind
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.run import EvaluatorResultEntry
from convoprobe.schemas.scenario import Scenario


@dataclass
class EvaluatorContext:
    """Everything an evaluator may look at. ``config`` comes from the scenario entry."""

    messages: list[Message]
    scenario: Scenario
    persona: Persona | None = None
    config: dict[str, Any] = field(default_factory=dict)
    last_invocation: ConnectorResult | None = None
    # Summed over every connector turn in the run
    tokens_usage: TokensUsage | None = None
    turn: int = 0
    is_final: bool = True


@dataclass
class EvaluatorOutcome:
    success: bool
    reason: str
    value: float | None = None
    metadata: dict[str, Any] | None = None


class Evaluator:
    """Base class for built-in and custom evaluators.

    Subclasses set the class attributes and implement ``evaluate``.
    """

    type: str = ""
    label: str = ""
    description: str = ""
    kind: EvaluatorKind = EvaluatorKind.ASSERTION
    # Auto evaluators run on every scenario whether declared or not
    auto: bool = False

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        raise NotImplementedError


@dataclass
class AggregatedEvaluation:
    success: bool
    reason: str
    score: float | None = None
    metrics: dict[str, float] = field(default_factory=dict)
    evaluator_results: list[EvaluatorResultEntry] = field(default_factory=list)
