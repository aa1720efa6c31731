"""Builders for test data."""

from __future__ import annotations

from typing import Any

from convoprobe.engine.types import (
    ConnectorResult,
    CriteriaVerdict,
    LLMResponse,
    ToolCall,
)
from convoprobe.schemas.connector import Connector
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.scenario import Scenario


def make_scenario(**overrides: Any) -> Scenario:
    data: dict[str, Any] = {
        "id": "scn-1",
        "name": "Booking",
        "instructions": "Book a table for two tonight",
        "success_criteria": "The agent confirms a booking",
        "max_messages": 5,
    }
    data.update(overrides)
    return Scenario(**data)


def make_connector(**overrides: Any) -> Connector:
    data: dict[str, Any] = {
        "id": "conn-1",
        "name": "Agent",
        "type": "http",
        "base_url": "http://agent.test",
        "config": {"path": "/chat"},
    }
    data.update(overrides)
    return Connector(**data)


def make_persona(**overrides: Any) -> Persona:
    data: dict[str, Any] = {
        "id": "per-1",
        "name": "Busy parent",
        "description": "Short on time",
        "system_prompt": "You are impatient.",
    }
    data.update(overrides)
    return Persona(**data)


def agent_reply(content: str = "How can I help?", latency_ms: int = 100, **kwargs: Any) -> ConnectorResult:
    return ConnectorResult(
        messages=[Message(role="assistant", content=content)],
        latency_ms=latency_ms,
        **kwargs,
    )


def verdict(
    success_met: bool | None = None,
    failure_met: bool | None = None,
    reasoning: str = "judged",
) -> CriteriaVerdict:
    return CriteriaVerdict(
        success_met=success_met,
        failure_met=failure_met,
        confidence=0.9,
        reasoning=reasoning,
    )


def llm_text(content: str) -> LLMResponse:
    return LLMResponse(content=content, input_tokens=10, output_tokens=20, model="test-model")


def llm_tool_call(name: str, arguments: dict[str, Any], content: str = "") -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=[ToolCall(id="call_1", name=name, arguments=arguments)],
        input_tokens=100,
        output_tokens=50,
        model="test-model",
        stop_reason="tool_calls",
    )


