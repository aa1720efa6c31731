"""Unit tests for the evaluator registry, built-ins and aggregation."""

from __future__ import annotations

import textwrap

import pytest

from convoprobe.core.exceptions import EvaluatorLoadError, ValidationError
from convoprobe.engine.types import TokensUsage
from convoprobe.evaluation.builtin import TokenUsageEvaluator, ToolCallCountEvaluator
from convoprobe.evaluation.registry import (
    EvaluatorRegistry,
    aggregate,
    create_registry,
    load_custom_evaluators,
)
from convoprobe.evaluation.types import Evaluator, EvaluatorContext, EvaluatorOutcome
from convoprobe.schemas.common import EvaluatorKind
from convoprobe.schemas.message import Message
from convoprobe.schemas.run import EvaluatorResultEntry
from convoprobe.schemas.scenario import ScenarioEvaluator
from factories import make_scenario


class MinLength(Evaluator):
    type = "min-length"
    label = "Minimum Length"

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        minimum = ctx.config.get("min", 1)
        count = len(ctx.messages)
        return EvaluatorOutcome(
            success=count >= minimum,
            value=1.0 if count >= minimum else 0.0,
            reason=f"{count} messages (min {minimum})",
        )


class Exploding(Evaluator):
    type = "exploding"
    label = "Exploding"

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        raise RuntimeError("kaboom")


class GrumpyMetric(Evaluator):
    type = "grumpy-metric"
    kind = EvaluatorKind.METRIC

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        return EvaluatorOutcome(success=False, value=3, reason="measured")


class NonNumericValue(Evaluator):
    type = "non-numeric"

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        return EvaluatorOutcome(success=True, reason="ok", value="high")


class ReturnsNothing(Evaluator):
    type = "returns-nothing"

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        return None


class UnknownKind(Evaluator):
    type = "unknown-kind"
    kind = "score"

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        return EvaluatorOutcome(success=True, reason="ok")


def _context(**overrides) -> EvaluatorContext:
    data = {
        "messages": [
            Message(role="user", content="Table for two?"),
            Message(
                role="assistant",
                tool_calls=[
                    {"id": "c1", "name": "find_table", "args": {}},
                    {"id": "c2", "function": {"name": "book_table", "arguments": "{}"}},
                ],
            ),
            Message(role="assistant", content="Booked"),
        ],
        "scenario": make_scenario(),
    }
    data.update(overrides)
    return EvaluatorContext(**data)


@pytest.fixture
def registry() -> EvaluatorRegistry:
    registry = create_registry([])
    registry.register(MinLength())
    return registry


class TestBuiltins:

    @pytest.mark.asyncio
    async def test_token_usage_reports_total(self) -> None:
        usage = TokensUsage(input_tokens=120, output_tokens=30, total_tokens=150)
        outcome = await TokenUsageEvaluator().evaluate(_context(tokens_usage=usage))
        assert outcome.value == 150
        assert outcome.reason == "150 tokens (120 in, 30 out)"
        assert outcome.metadata == {"input_tokens": 120, "output_tokens": 30, "total_tokens": 150}

    @pytest.mark.asyncio
    async def test_token_usage_without_usage(self) -> None:
        outcome = await TokenUsageEvaluator().evaluate(_context())
        assert outcome.value == 0
        assert outcome.reason == "No token usage reported by connector"

    @pytest.mark.asyncio
    async def test_tool_call_count(self) -> None:
        outcome = await ToolCallCountEvaluator().evaluate(_context())
        assert outcome.value == 2
        assert outcome.reason == "2 tool call(s): find_table, book_table"
        assert outcome.metadata == {"tool_call_count": 2, "tool_names": ["find_table", "book_table"]}

    @pytest.mark.asyncio
    async def test_tool_call_count_none(self) -> None:
        outcome = await ToolCallCountEvaluator().evaluate(
            _context(messages=[Message(role="assistant", content="hi")])
        )
        assert outcome.value == 0
        assert outcome.reason == "No tool calls in this run"


class TestRegistry:

    def test_list_marks_builtins(self, registry) -> None:
        listed = {entry["type"]: entry for entry in registry.list()}
        assert listed["token-usage"]["builtin"] is True
        assert listed["token-usage"]["auto"] is True
        assert listed["tool-call-count"]["auto"] is False
        assert listed["min-length"]["builtin"] is False
        assert listed["min-length"]["kind"] == "assertion"

    def test_duplicate_type_rejected(self, registry) -> None:
        with pytest.raises(ValidationError, match="built-in"):
            registry.register(TokenUsageEvaluator())

    def test_missing_type_rejected(self, registry) -> None:
        with pytest.raises(ValidationError):
            registry.register(Evaluator())

    @pytest.mark.asyncio
    async def test_auto_evaluators_always_run(self, registry) -> None:
        entries = await registry.run([], _context())
        assert [e.type for e in entries] == ["token-usage"]
        assert entries[0].kind == "metric"

    @pytest.mark.asyncio
    async def test_declared_config_passed_and_duplicates_ignored(self, registry) -> None:
        entries = await registry.run(
            [
                ScenarioEvaluator(type="min-length", config={"min": 10}),
                ScenarioEvaluator(type="min-length", config={"min": 1}),
            ],
            _context(),
        )
        by_type = {e.type: e for e in entries}
        assert len(entries) == 2
        assert by_type["min-length"].success is False
        assert by_type["min-length"].reason == "3 messages (min 10)"

    @pytest.mark.asyncio
    async def test_unknown_type_is_failed_assertion(self, registry) -> None:
        entries = await registry.run([ScenarioEvaluator(type="does-not-exist")], _context())
        unknown = next(e for e in entries if e.type == "does-not-exist")
        assert unknown.success is False
        assert unknown.kind == "assertion"
        assert unknown.reason == 'Unknown evaluator type "does-not-exist"'

    @pytest.mark.asyncio
    async def test_crash_isolated(self, registry) -> None:
        registry.register(Exploding())
        entries = await registry.run(
            [ScenarioEvaluator(type="exploding"), ScenarioEvaluator(type="min-length")],
            _context(),
        )
        by_type = {e.type: e for e in entries}
        assert by_type["exploding"].success is False
        assert by_type["exploding"].reason == "Evaluator error: kaboom"
        assert by_type["min-length"].success is True

    @pytest.mark.asyncio
    async def test_metrics_never_fail(self, registry) -> None:
        registry.register(GrumpyMetric())
        entries = await registry.run([ScenarioEvaluator(type="grumpy-metric")], _context())
        metric = next(e for e in entries if e.type == "grumpy-metric")
        assert metric.success is True
        assert metric.value == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("evaluator", [NonNumericValue(), ReturnsNothing(), UnknownKind()])
    async def test_malformed_outcome_is_failed_assertion(self, registry, evaluator) -> None:
        registry.register(evaluator)
        entries = await registry.run(
            [ScenarioEvaluator(type=evaluator.type), ScenarioEvaluator(type="min-length")],
            _context(),
        )
        by_type = {e.type: e for e in entries}
        assert set(by_type) == {"token-usage", evaluator.type, "min-length"}
        assert by_type[evaluator.type].kind == "assertion"
        assert by_type[evaluator.type].success is False
        assert by_type[evaluator.type].reason.startswith("Evaluator error: ")
        assert by_type["min-length"].success is True


class TestAggregate:

    def test_all_pass(self) -> None:
        result = aggregate([
            EvaluatorResultEntry(type="a", kind="assertion", label="A", success=True, value=0.9),
            EvaluatorResultEntry(type="b", kind="assertion", label="B", success=True, value=0.7),
            EvaluatorResultEntry(type="token-usage", kind="metric", label="T", success=True, value=42),
        ])
        assert result.success is True
        assert result.reason == "All evaluators passed"
        assert result.score == 0.7
        assert result.metrics == {"token-usage": 42}

    def test_first_failure_reported(self) -> None:
        result = aggregate([
            EvaluatorResultEntry(type="a", kind="assertion", label="A", success=False, reason="too short"),
            EvaluatorResultEntry(type="b", kind="assertion", label="B", success=False, reason="too rude"),
        ])
        assert result.success is False
        assert result.reason == "too short"
        assert result.score is None

    def test_empty(self) -> None:
        result = aggregate([])
        assert result.success is True
        assert result.metrics == {}


class TestCustomModules:

    def test_loads_classes_and_instances(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "booking_checks.py").write_text(textwrap.dedent("""
            from convoprobe.evaluation.types import Evaluator, EvaluatorOutcome

            class Polite(Evaluator):
                type = "polite"

                async def evaluate(self, ctx):
                    return EvaluatorOutcome(success=True, reason="ok")

            class Brief(Evaluator):
                type = "brief"

                async def evaluate(self, ctx):
                    return EvaluatorOutcome(success=True, reason="ok")

            EVALUATORS = [Polite, Brief()]
        """))
        monkeypatch.syspath_prepend(str(tmp_path))

        registry = create_registry(["booking_checks"])

        assert registry.get("polite") is not None
        assert registry.get("brief") is not None

    def test_missing_module(self) -> None:
        with pytest.raises(EvaluatorLoadError, match="could not be loaded"):
            load_custom_evaluators(EvaluatorRegistry(), ["no_such_module_for_convoprobe"])

    def test_module_without_evaluators(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "empty_checks.py").write_text("VALUE = 1\n")
        monkeypatch.syspath_prepend(str(tmp_path))

        with pytest.raises(EvaluatorLoadError, match="EVALUATORS"):
            load_custom_evaluators(EvaluatorRegistry(), ["empty_checks"])

    def test_custom_cannot_override_builtin(self, tmp_path, monkeypatch) -> None:
        (tmp_path / "override_checks.py").write_text(textwrap.dedent("""
            from convoprobe.evaluation.builtin import TokenUsageEvaluator

            EVALUATORS = [TokenUsageEvaluator]
        """))
        monkeypatch.syspath_prepend(str(tmp_path))

        with pytest.raises(ValidationError, match="cannot override"):
            create_registry(["override_checks"])
