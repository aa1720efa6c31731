"""Unit tests for LLMClient request building and response normalization."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from convoprobe.core.exceptions import LLMCapabilityError
from convoprobe.engine.llm_client import LLMClient


def _completion(content=None, tool_calls=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=4),
        model="gpt-4o-mini-2024",
    )


def _tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class TestLLMClient:

    @pytest.mark.asyncio
    async def test_system_prompt_prepended(self) -> None:
        fake = AsyncMock(return_value=_completion("hi"))
        with patch("convoprobe.engine.llm_client.acompletion", fake):
            result = await LLMClient().chat(
                model="gpt-4o-mini",
                messages=[{"role": "user", "content": "hello"}],
                system="be brief",
            )

        request = fake.await_args.kwargs
        assert request["messages"][0] == {"role": "system", "content": "be brief"}
        assert "tools" not in request
        assert result.content == "hi"
        assert result.input_tokens == 12
        assert result.output_tokens == 4
        assert result.model == "gpt-4o-mini-2024"
        assert result.stop_reason == "stop"

    @pytest.mark.asyncio
    async def test_tool_calls_normalized(self) -> None:
        completion = _completion(
            None,
            tool_calls=[
                _tool_call("abc", "submit_verdict", '{"confidence": 0.5}'),
                _tool_call(None, "other", {"already": "dict"}),
                _tool_call("bad", "broken", "not json"),
            ],
            finish_reason="tool_calls",
        )
        with patch("convoprobe.engine.llm_client.acompletion", AsyncMock(return_value=completion)):
            result = await LLMClient().chat(
                model="gpt-4o-mini",
                messages=[],
                tools=[{"type": "function", "function": {"name": "submit_verdict"}}],
            )

        assert result.content == ""
        assert [(tc.id, tc.name) for tc in result.tool_calls] == [
            ("abc", "submit_verdict"), ("call_1", "other"), ("bad", "broken"),
        ]
        assert result.tool_calls[0].arguments == {"confidence": 0.5}
        assert result.tool_calls[1].arguments == {"already": "dict"}
        assert result.tool_calls[2].arguments == {"raw": "not json"}

    @pytest.mark.asyncio
    async def test_provider_error_wrapped(self) -> None:
        failing = AsyncMock(side_effect=RuntimeError("Rate limit exceeded"))
        with patch("convoprobe.engine.llm_client.acompletion", failing):
            with pytest.raises(LLMCapabilityError) as excinfo:
                await LLMClient().chat(model="gpt-4o-mini", messages=[])

        assert excinfo.value.message == "Rate limit exceeded"
        assert excinfo.value.retryable

    @pytest.mark.asyncio
    async def test_ollama_models_get_api_base(self) -> None:
        fake = AsyncMock(return_value=_completion("ok"))
        with patch("convoprobe.engine.llm_client.acompletion", fake):
            await LLMClient().chat(model="ollama/llama3", messages=[])

        assert fake.await_args.kwargs["api_base"] == "http://localhost:11434"
