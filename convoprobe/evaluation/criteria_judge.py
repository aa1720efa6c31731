"""LLM-as-judge for scenario success/failure criteria.

Forces structured output via tool_use so verdicts are machine-parseable.
Falls back to a JSON object in the content if the model doesn't return a
tool call, and to an inconclusive verdict if neither parses.
"""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

from convoprobe.config import settings
from convoprobe.engine.types import CriteriaVerdict, LLMClientProtocol, LLMResponse
from convoprobe.schemas.common import MessageRole
from convoprobe.schemas.message import Message

logger = structlog.get_logger()

VERDICT_TOOL_NAME = "submit_verdict"


class CriteriaJudge:
    """Decides whether success and/or failure criteria are currently met."""

    def __init__(
        self,
        llm_client: LLMClientProtocol,
        model: str | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.model = model or settings.judge_model

    async def judge(
        self,
        history: list[Message],
        success_criteria: str | None = None,
        failure_criteria: str | None = None,
    ) -> CriteriaVerdict:
        """Judge the transcript against the given criteria.

        An axis whose criterion is absent is never evaluated and stays ``None``.
        """
        if not success_criteria and not failure_criteria:
            return CriteriaVerdict(reasoning="No evaluation criteria defined")

        response = await self.llm_client.chat(
            model=self.model,
            messages=[{
                "role": "user",
                "content": self._build_prompt(history, success_criteria, failure_criteria),
            }],
            system=self._build_system_prompt(),
            tools=[self._build_verdict_tool(success_criteria, failure_criteria)],
            temperature=settings.judge_temperature,
            max_tokens=1024,
        )

        verdict = self._parse_response(response)
        # Axes without a criterion are never "met", whatever the model says.
        if not success_criteria:
            verdict.success_met = None
        if not failure_criteria:
            verdict.failure_met = None

        logger.debug(
            "criteria_judged",
            success_met=verdict.success_met,
            failure_met=verdict.failure_met,
            confidence=verdict.confidence,
        )
        return verdict

    @staticmethod
    def _build_system_prompt() -> str:
        return (
            "You are an evaluation judge. Analyze conversations between a User and an Agent "
            "to determine if specific criteria have been met.\n\n"
            f"Use the {VERDICT_TOOL_NAME} tool to report your verdict with:\n"
            "- successMet: whether the success criteria has been met\n"
            "- failureMet: whether the failure criteria has been met\n"
            "- confidence: your confidence level from 0.0 to 1.0\n"
            "- reasoning: brief explanation of your evaluation decision\n\n"
            "If you cannot call the tool, respond ONLY with the equivalent JSON object."
        )

    @staticmethod
    def _format_conversation(history: list[Message]) -> str:
        lines: list[str] = []
        for message in history:
            if message.role == MessageRole.SYSTEM:
                continue
            if message.role == MessageRole.ASSISTANT:
                speaker = "Agent"
            elif message.role == MessageRole.TOOL:
                speaker = f"Tool ({message.name or 'result'})"
            else:
                speaker = "User"
            lines.append(f"{speaker}: {message.text}")
        return "\n\n".join(lines)

    def _build_prompt(
        self,
        history: list[Message],
        success_criteria: str | None,
        failure_criteria: str | None,
    ) -> str:
        return (
            "## Conversation\n"
            f"{self._format_conversation(history)}\n\n"
            "## Evaluation Criteria\n\n"
            "### Success Criteria\n"
            f"{success_criteria or 'No success criteria defined.'}\n\n"
            "### Failure Criteria\n"
            f"{failure_criteria or 'No failure criteria defined.'}\n\n"
            "Analyze the conversation and determine if the criteria have been met."
        )

    @staticmethod
    def _build_verdict_tool(
        success_criteria: str | None,
        failure_criteria: str | None,
    ) -> dict[str, Any]:
        """OpenAI-format tool definition for structured verdict output."""
        properties: dict[str, Any] = {
            "confidence": {
                "type": "number",
                "description": "Confidence in the verdict (0.0-1.0)",
                "minimum": 0,
                "maximum": 1,
            },
            "reasoning": {
                "type": "string",
                "description": "Brief explanation of the verdict",
            },
        }
        required = ["confidence", "reasoning"]
        if success_criteria:
            properties["successMet"] = {
                "type": "boolean",
                "description": "Whether the success criteria has been met",
            }
            required.append("successMet")
        if failure_criteria:
            properties["failureMet"] = {
                "type": "boolean",
                "description": "Whether the failure criteria has been met",
            }
            required.append("failureMet")

        return {
            "type": "function",
            "function": {
                "name": VERDICT_TOOL_NAME,
                "description": "Submit the criteria verdict for the conversation",
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": required,
                },
            },
        }

    def _parse_response(self, response: LLMResponse) -> CriteriaVerdict:
        """Extract the verdict from the tool call or fall back to content parsing."""
        for tc in response.tool_calls:
            if tc.name == VERDICT_TOOL_NAME:
                verdict = self._verdict_from_dict(tc.arguments)
                if verdict is not None:
                    verdict.raw_response = json.dumps(tc.arguments)
                    return verdict

        if response.content:
            match = re.search(r"\{[\s\S]*\}", response.content)
            if match:
                try:
                    parsed = json.loads(match.group(0))
                except json.JSONDecodeError:
                    parsed = None
                verdict = self._verdict_from_dict(parsed)
                if verdict is not None:
                    verdict.raw_response = response.content
                    return verdict

        logger.warning("criteria_verdict_unparseable", content=response.content[:200])
        return CriteriaVerdict(
            success_met=False,
            failure_met=False,
            confidence=0.0,
            reasoning=f"Failed to parse evaluation response: {response.content[:200]}",
            raw_response=response.content,
        )

    @staticmethod
    def _verdict_from_dict(data: Any) -> CriteriaVerdict | None:
        if not isinstance(data, dict):
            return None
        confidence = data.get("confidence")
        reasoning = data.get("reasoning")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            return None
        if not isinstance(reasoning, str):
            return None
        success_met = data.get("successMet", data.get("success_met"))
        failure_met = data.get("failureMet", data.get("failure_met"))
        return CriteriaVerdict(
            success_met=success_met if isinstance(success_met, bool) else False,
            failure_met=failure_met if isinstance(failure_met, bool) else False,
            confidence=min(1.0, max(0.0, float(confidence))),
            reasoning=reasoning,
        )
