"""Core multi-turn conversation orchestrator.

Drives one run's conversation between the simulated user and the agent
under test:
- Persona simulator writes the next user message when the agent spoke last
- Connector sends the transcript and returns the agent's new messages
- Criteria judge decides after every connector turn whether to stop
- Turn cap, latency and token accounting

Depends on protocols, not implementations, so every collaborator is mocked
in tests.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog
from uuid_extensions import uuid7

from convoprobe.config import settings
from convoprobe.core.exceptions import (
    ConnectorError,
    InvalidTranscriptError,
    LLMCapabilityError,
)
from convoprobe.engine.transcript import Transcript
from convoprobe.engine.types import (
    ConnectorClientProtocol,
    ConnectorResult,
    ConversationResult,
    CriteriaJudgeProtocol,
    CriteriaVerdict,
    LoopStatus,
    PersonaSimulatorProtocol,
    TokensUsage,
)
from convoprobe.schemas.common import FailureCriteriaMode, MessageRole
from convoprobe.schemas.connector import Connector
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.scenario import Scenario

logger = structlog.get_logger()

TranscriptHook = Callable[[list[Message]], Awaitable[None]]

# Failures that end the conversation as a system error (run retryable)
SYSTEM_ERRORS = (ConnectorError, LLMCapabilityError, InvalidTranscriptError)


def effective_max_messages(scenario: Scenario) -> int:
    limit = scenario.max_messages or settings.default_max_messages
    return max(1, min(limit, settings.max_turns_ceiling))


class ScenarioRunner:
    """Executes one scenario conversation against a connector.

    Flow per turn:
    1. Persona turn, skipped when the last message is from the user or a tool
    2. Connector turn, appending whatever the agent returned
    3. Judging: success every turn; failure every turn or only on the final
       turn, depending on the scenario's failure criteria mode
    4. Stop on success (which wins over failure), failure, or the turn cap
    """

    def __init__(
        self,
        connector_client: ConnectorClientProtocol,
        persona_simulator: PersonaSimulatorProtocol,
        criteria_judge: CriteriaJudgeProtocol,
    ) -> None:
        self.connector_client = connector_client
        self.persona_sim = persona_simulator
        self.judge = criteria_judge

    async def run(
        self,
        scenario: Scenario,
        connector: Connector,
        persona: Persona | None = None,
        *,
        seed_messages: list[Message] | None = None,
        thread_id: str | None = None,
        on_transcript: TranscriptHook | None = None,
    ) -> ConversationResult:
        """Run the conversation to a terminal state.

        ``seed_messages`` resumes an earlier transcript; otherwise the
        scenario's own seed messages are used. Agent replies already in a
        resumed transcript count against the turn cap. ConnectorError,
        LLMCapabilityError and InvalidTranscriptError end the loop with
        ``LoopStatus.ERROR`` and the transcript so far. Anything else
        propagates.
        """
        max_turns = effective_max_messages(scenario)
        seeds = [_with_id(m) for m in (seed_messages or scenario.messages)]

        logger.info(
            "scenario_run_started",
            scenario=scenario.name,
            connector=connector.name,
            persona=persona.name if persona else None,
            max_turns=max_turns,
            seeded=len(seeds),
        )

        transcript: Transcript | None = None
        turn = _agent_turns(seeds) if seed_messages else 0
        latencies: list[int] = []
        usage: TokensUsage | None = None
        verdict: CriteriaVerdict | None = None
        last_invocation: ConnectorResult | None = None
        delivered: set[str] = set()

        try:
            transcript = Transcript(seeds)

            while True:
                # A resumed transcript may already be at the cap; it is only judged.
                if turn < max_turns:
                    # === PERSONA TURN ===
                    if transcript.last_role not in (MessageRole.USER, MessageRole.TOOL):
                        generated = await self.persona_sim.generate(transcript.messages, persona, scenario)
                        transcript.append(_with_id(Message(role=MessageRole.USER, content=generated.content)))
                        await _notify(on_transcript, transcript)

                    # === CONNECTOR TURN ===
                    last_invocation = await self.connector_client.invoke(
                        connector,
                        transcript.messages,
                        persona=persona,
                        thread_id=thread_id,
                        seen_message_ids=set(delivered),
                    )
                    if not last_invocation.messages:
                        raise ConnectorError("No response messages from connector")

                    turn += 1
                    transcript.extend(last_invocation.messages)
                    delivered = transcript.message_ids
                    latencies.append(last_invocation.latency_ms)
                    if last_invocation.tokens_usage is not None:
                        usage = last_invocation.tokens_usage if usage is None else usage + last_invocation.tokens_usage
                    await _notify(on_transcript, transcript)

                # === JUDGING ===
                is_final = turn >= max_turns
                check_failure = bool(scenario.failure_criteria) and (
                    scenario.failure_criteria_mode == FailureCriteriaMode.EVERY_TURN or is_final
                )
                verdict = await self.judge.judge(
                    transcript.messages,
                    success_criteria=scenario.success_criteria or None,
                    failure_criteria=scenario.failure_criteria if check_failure else None,
                )

                if scenario.success_criteria and verdict.success_met:
                    status, success, reason = LoopStatus.SUCCESS, True, verdict.reasoning
                    break
                if check_failure and verdict.failure_met:
                    status, success = LoopStatus.FAILURE, False
                    reason = f"Failure criteria was triggered. {verdict.reasoning or ''}".strip()
                    break
                if is_final:
                    status = LoopStatus.MAX_MESSAGES
                    if scenario.success_criteria:
                        success = bool(verdict.success_met)
                    else:
                        success = not verdict.failure_met
                    reason = verdict.reasoning or "Max messages reached"
                    break

        except SYSTEM_ERRORS as e:
            logger.warning(
                "scenario_run_failed",
                scenario=scenario.name,
                turn=turn,
                error_type=type(e).__name__,
                error=e.message,
            )
            messages = transcript.messages if transcript is not None else seeds
            return ConversationResult(
                status=LoopStatus.ERROR,
                messages=messages,
                turn_count=turn,
                message_count=_conversation_count(messages),
                latencies_ms=latencies,
                tokens_usage=usage,
                verdict=verdict,
                last_invocation=last_invocation,
                error_message=e.message,
            )

        result = ConversationResult(
            status=status,
            messages=transcript.messages,
            turn_count=turn,
            message_count=transcript.conversation_count,
            latencies_ms=latencies,
            tokens_usage=usage,
            verdict=verdict,
            success=success,
            reason=reason,
            max_messages_reached=status == LoopStatus.MAX_MESSAGES,
            last_invocation=last_invocation,
        )

        logger.info(
            "scenario_run_completed",
            scenario=scenario.name,
            status=result.status.value,
            success=result.success,
            turn_count=turn,
            message_count=result.message_count,
            avg_latency_ms=result.avg_latency_ms,
        )
        return result


async def _notify(hook: TranscriptHook | None, transcript: Transcript) -> None:
    if hook is not None:
        await hook(transcript.messages)


def _with_id(message: Message) -> Message:
    """Messages we author carry ids so threaded connectors can skip re-sending them."""
    if message.id:
        return message
    return message.model_copy(update={"id": str(uuid7())})


def _conversation_count(messages: list[Message]) -> int:
    return sum(1 for m in messages if m.role in (MessageRole.USER, MessageRole.ASSISTANT))


def _agent_turns(messages: list[Message]) -> int:
    """Agent replies in a transcript: assistant messages answering a user message."""
    turns = 0
    previous: str | None = None
    for m in messages:
        if m.role == MessageRole.SYSTEM:
            continue
        if m.role == MessageRole.ASSISTANT and previous == MessageRole.USER:
            turns += 1
        previous = m.role
    return turns
