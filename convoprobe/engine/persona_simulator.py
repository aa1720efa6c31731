"""LLM-powered persona simulator.

Generates the next user-turn message, impersonating a persona when one is
given and a generic realistic user otherwise.
"""

from __future__ import annotations

from typing import Any

import structlog

from convoprobe.config import settings
from convoprobe.engine.persona import (
    GENERIC_INSTRUCTION,
    PERSONA_INSTRUCTION,
    build_persona_system_prompt,
)
from convoprobe.engine.types import LLMClientProtocol, PersonaMessage
from convoprobe.schemas.common import MessageRole
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.scenario import Scenario

logger = structlog.get_logger()


class PersonaSimulator:
    """Generates simulated user messages using an LLM."""

    def __init__(
        self,
        llm_client: LLMClientProtocol,
        model: str | None = None,
        temperature: float | None = None,
    ) -> None:
        self.llm_client = llm_client
        self.model = model or settings.persona_model
        self.temperature = (
            temperature if temperature is not None else settings.persona_temperature
        )

    async def generate(
        self,
        history: list[Message],
        persona: Persona | None,
        scenario: Scenario,
    ) -> PersonaMessage:
        """Ask the LLM for the next user message only.

        LLM failures propagate unchanged; nothing is returned on error.
        """
        messages = self._build_messages(history)
        messages.append({
            "role": "user",
            "content": PERSONA_INSTRUCTION if persona else GENERIC_INSTRUCTION,
        })

        response = await self.llm_client.chat(
            model=self.model,
            messages=messages,
            system=build_persona_system_prompt(persona, scenario),
            temperature=self.temperature,
            max_tokens=500,
        )

        logger.debug(
            "persona_message_generated",
            persona=persona.name if persona else None,
            history_length=len(history),
            content_length=len(response.content),
        )

        return PersonaMessage(content=response.content.strip(), raw_response=response.content)

    @staticmethod
    def _build_messages(history: list[Message]) -> list[dict[str, Any]]:
        """System messages are dropped; everything but the agent speaks as user."""
        messages: list[dict[str, Any]] = []
        for message in history:
            if message.role == MessageRole.SYSTEM:
                continue
            role = "assistant" if message.role == MessageRole.ASSISTANT else "user"
            messages.append({"role": role, "content": message.text})
        return messages
