"""Built-in evaluators."""

from __future__ import annotations

from convoprobe.evaluation.types import Evaluator, EvaluatorContext, EvaluatorOutcome
from convoprobe.schemas.common import EvaluatorKind, MessageRole
from convoprobe.schemas.message import tool_call_name


class TokenUsageEvaluator(Evaluator):
    """Reports token usage summed over the run. Needs a connector that reports usage."""

    type = "token-usage"
    label = "Token Usage"
    description = (
        "Reports input/output/total token usage. Requires a connector that "
        "returns usage metadata (e.g. LangGraph)."
    )
    kind = EvaluatorKind.METRIC
    auto = True

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        usage = ctx.tokens_usage
        if usage is None:
            return EvaluatorOutcome(
                success=True,
                value=0,
                reason="No token usage reported by connector",
                metadata={},
            )
        return EvaluatorOutcome(
            success=True,
            value=usage.total_tokens,
            reason=(
                f"{usage.total_tokens} tokens "
                f"({usage.input_tokens} in, {usage.output_tokens} out)"
            ),
            metadata={
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
                "total_tokens": usage.total_tokens,
            },
        )


class ToolCallCountEvaluator(Evaluator):
    """Counts tool calls made by the agent across the transcript."""

    type = "tool-call-count"
    label = "Tool Call Count"
    description = (
        "Counts tool calls in the agent's responses. Requires a connector that "
        "returns tool_calls in messages (e.g. LangGraph)."
    )
    kind = EvaluatorKind.METRIC

    async def evaluate(self, ctx: EvaluatorContext) -> EvaluatorOutcome:
        tool_names: list[str] = []
        for message in ctx.messages:
            if message.role == MessageRole.ASSISTANT and message.tool_calls:
                tool_names.extend(tool_call_name(tc) for tc in message.tool_calls)

        count = len(tool_names)
        return EvaluatorOutcome(
            success=True,
            value=count,
            reason=(
                "No tool calls in this run"
                if count == 0
                else f"{count} tool call(s): {', '.join(tool_names)}"
            ),
            metadata={"tool_call_count": count, "tool_names": tool_names},
        )


BUILTIN_EVALUATORS: list[Evaluator] = [TokenUsageEvaluator(), ToolCallCountEvaluator()]
