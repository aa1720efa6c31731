"""Prompt construction for the simulated user.

Prompts are pure functions of the persona and scenario snapshot and do no I/O.
"""

from __future__ import annotations

from convoprobe.schemas.persona import Persona
from convoprobe.schemas.scenario import Scenario

PERSONA_INSTRUCTION = (
    "Based on the conversation above, generate the next message from the user persona. "
    "Respond ONLY with the message content."
)
GENERIC_INSTRUCTION = (
    "Based on the conversation above, generate the next message from the user. "
    "Respond ONLY with the message content."
)


def build_persona_system_prompt(persona: Persona | None, scenario: Scenario) -> str:
    """System prompt for the user simulator.

    With a persona, the model impersonates its name, description and character
    instructions. Without one, it plays a generic realistic user. Scenario
    instructions and success criteria are appended as goal framing.
    """
    if persona:
        prompt = (
            "You are a test agent simulating a user interaction with a chatbot.\n"
            "Your role is to impersonate a specific user persona and simulate a realistic "
            "conversation based on the given scenario. Behave naturally as this user would, "
            "staying in character throughout the conversation.\n\n"
            "## User Persona\n\n"
            f"Name: {persona.name}\n"
        )
        if persona.description:
            prompt += f"Description: {persona.description}\n"
        if persona.system_prompt:
            prompt += f"\nCharacter Instructions:\n{persona.system_prompt}\n"
    else:
        prompt = (
            "You are a test agent simulating a user interaction with a chatbot.\n"
            "Your role is to simulate a realistic conversation based on the given scenario. "
            "Behave naturally as a typical user would throughout the conversation.\n"
        )

    if scenario.instructions:
        prompt += f"\n## Scenario\n\n{scenario.instructions}\n"

    if scenario.success_criteria:
        prompt += (
            "\n## Goal\n"
            "Try to achieve the following success criteria through natural conversation:\n"
            f"{scenario.success_criteria}\n"
        )

    stay_in_character = (
        "Stay in character as the user persona throughout the conversation"
        if persona
        else "Act as a realistic user throughout the conversation"
    )
    prompt += f"""
## Guidelines

- {stay_in_character}
- Follow the scenario context to guide your messages and goals
- Respond naturally as a real user would, with realistic questions, concerns, or requests
- Do not break character or reveal that you are a test agent
- If the chatbot asks clarifying questions, answer them based on the scenario
- Keep responses concise and natural (1-3 sentences typically)
- Respond ONLY with the user's message content, no additional formatting or explanation"""

    return prompt
