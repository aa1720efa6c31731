"""Model-agnostic LLM client using LiteLLM.

Backs both the persona simulator and the criteria judge. Provider failures
surface as ``LLMCapabilityError`` with the provider's message intact.
"""

from __future__ import annotations

import json
import os
from typing import Any

import structlog
from litellm import acompletion

from convoprobe.config import settings
from convoprobe.core.exceptions import LLMCapabilityError
from convoprobe.engine.types import LLMResponse, ToolCall

logger = structlog.get_logger()


class LLMClient:
    """Chat-completion capability over any LiteLLM provider (OpenAI, Anthropic, Ollama, ...)."""

    def __init__(self) -> None:
        # LiteLLM reads provider credentials from the environment
        if settings.anthropic_api_key:
            os.environ["ANTHROPIC_API_KEY"] = settings.anthropic_api_key
        if settings.openai_api_key:
            os.environ["OPENAI_API_KEY"] = settings.openai_api_key
        if settings.llm_provider == "ollama":
            os.environ["OLLAMA_API_BASE"] = settings.ollama_base_url

    async def chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        system: str | None = None,
        tools: list[dict[str, Any]] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        """Run one completion and normalize the result.

        Args:
            model: LiteLLM model string, e.g. "gpt-4o-mini" or "ollama/llama3"
            messages: OpenAI-format chat messages
            system: Prepended as a system message when given
            tools: OpenAI function-calling tool definitions

        Raises:
            LLMCapabilityError: the provider call failed (outage, auth, rate limit)
        """
        request: dict[str, Any] = {
            "model": model,
            "messages": ([{"role": "system", "content": system}] if system else []) + messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            request["tools"] = tools
        if model.startswith("ollama/"):
            request["api_base"] = settings.ollama_base_url

        logger.debug(
            "llm_request",
            model=model,
            message_count=len(request["messages"]),
            has_tools=bool(tools),
        )

        try:
            response = await acompletion(**request)
        except Exception as e:
            logger.warning("llm_request_failed", model=model, error=str(e))
            raise LLMCapabilityError(str(e) or type(e).__name__) from e

        result = self._normalize(response, model)
        logger.debug(
            "llm_response",
            model=result.model,
            content_length=len(result.content),
            tool_call_count=len(result.tool_calls),
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return result

    @staticmethod
    def _normalize(response: Any, model: str) -> LLMResponse:
        choice = response.choices[0]
        message = choice.message

        tool_calls = [
            ToolCall(
                id=tc.id or f"call_{index}",
                name=tc.function.name,
                arguments=_parse_arguments(tc.function.arguments),
            )
            for index, tc in enumerate(message.tool_calls or [])
        ]

        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=response.model or model,
            stop_reason=choice.finish_reason or "",
        )


def _parse_arguments(arguments: Any) -> dict[str, Any]:
    """Providers return tool arguments as either a JSON string or a dict."""
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError:
            return {"raw": arguments}
        return parsed if isinstance(parsed, dict) else {"raw": arguments}
    return {}
