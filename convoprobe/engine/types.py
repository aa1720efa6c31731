"""Core types and protocols for the simulation engine.

All engine components depend on these interfaces, not on concrete implementations.
Tests substitute mocks for every protocol below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from convoprobe.schemas.connector import Connector
    from convoprobe.schemas.message import Message
    from convoprobe.schemas.persona import Persona
    from convoprobe.schemas.scenario import Scenario


# ============================================================
# Data Types
# ============================================================


@dataclass
class ToolCall:
    """A model's request to call a tool (used for structured judge output)."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class TokensUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: TokensUsage) -> TokensUsage:
        return TokensUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass
class LLMResponse:
    """Normalized response from any LLM provider."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    stop_reason: str = ""


@dataclass
class ConnectorResult:
    """One successful invocation of the agent under test."""

    messages: list[Message]
    latency_ms: int
    tokens_usage: TokensUsage | None = None
    raw_response: str = ""
    thread_id: str | None = None


@dataclass
class ConnectorTestResult:
    success: bool
    latency_ms: int
    response: str | None = None
    error: str | None = None


@dataclass
class PersonaMessage:
    content: str
    raw_response: str = ""


@dataclass
class CriteriaVerdict:
    """Judge output. ``None`` on an axis means that criterion was not evaluated."""

    success_met: bool | None = None
    failure_met: bool | None = None
    confidence: float | None = None
    reasoning: str | None = None
    raw_response: str | None = None


class LoopStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    MAX_MESSAGES = "max_messages"
    ERROR = "error"


@dataclass
class ConversationResult:
    """Complete result of one simulated conversation."""

    status: LoopStatus
    messages: list[Message]
    turn_count: int
    message_count: int
    latencies_ms: list[int] = field(default_factory=list)
    tokens_usage: TokensUsage | None = None
    verdict: CriteriaVerdict | None = None
    success: bool | None = None
    reason: str | None = None
    max_messages_reached: bool = False
    last_invocation: ConnectorResult | None = None
    error_message: str | None = None

    @property
    def total_latency_ms(self) -> int:
        return sum(self.latencies_ms)

    @property
    def avg_latency_ms(self) -> int:
        if not self.latencies_ms:
            return 0
        return round(self.total_latency_ms / len(self.latencies_ms))


# ============================================================
# Protocols (Interfaces), mocked in tests
# ============================================================


class LLMClientProtocol(Protocol):
    """Chat-completion capability (LiteLLM in production)."""

    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        system: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMResponse: ...


class ConnectorClientProtocol(Protocol):
    async def invoke(
        self,
        connector: Connector,
        messages: list[Message],
        *,
        persona: Persona | None = None,
        thread_id: str | None = None,
        seen_message_ids: set[str] | None = None,
    ) -> ConnectorResult: ...


class PersonaSimulatorProtocol(Protocol):
    async def generate(
        self,
        history: list[Message],
        persona: Persona | None,
        scenario: Scenario,
    ) -> PersonaMessage: ...


class CriteriaJudgeProtocol(Protocol):
    async def judge(
        self,
        history: list[Message],
        success_criteria: str | None = None,
        failure_criteria: str | None = None,
    ) -> CriteriaVerdict: ...
