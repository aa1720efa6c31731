"""Generic HTTP/REST connector strategy."""

from __future__ import annotations

import json
from typing import Any

from convoprobe.connectors.base import ConnectorRequest, ParsedResponse, build_request_headers
from convoprobe.engine.types import TokensUsage
from convoprobe.schemas.connector import Connector, HttpConnectorConfig
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona


class HttpStrategy:
    """POSTs the message history to ``base_url + path`` and reads back the reply.

    Accepted response shapes, checked in order: ``{"message": {"content"}}``,
    ``{"content"}``, ``{"response"}``, ``{"messages": [...]}`` (history echo
    sliced off), a bare JSON string, or any non-JSON text.
    """

    def build_test_request(self, connector: Connector) -> ConnectorRequest:
        return ConnectorRequest(
            url=connector.base_url,
            method="POST",
            headers=build_request_headers(connector),
            body={
                "message": "hello",
                "messages": [{"role": "user", "content": "hello"}],
            },
        )

    def build_invoke_request(
        self,
        connector: Connector,
        messages: list[Message],
        persona: Persona | None = None,
        thread_id: str | None = None,
        seen_message_ids: set[str] | None = None,
    ) -> ConnectorRequest:
        config = connector.config if isinstance(connector.config, HttpConnectorConfig) else HttpConnectorConfig()
        return ConnectorRequest(
            url=connector.base_url + config.path,
            method=config.method,
            headers=build_request_headers(connector, persona),
            body={"messages": [m.to_wire() for m in messages]},
            sent_count=len(messages),
        )

    def parse_test_response(self, response_text: str) -> str:
        try:
            data = json.loads(response_text)
        except json.JSONDecodeError:
            return response_text
        if isinstance(data, dict):
            for key in ("content", "message", "response"):
                if isinstance(data.get(key), str):
                    return data[key]
        return response_text

    def parse_invoke_response(
        self,
        response_text: str,
        request: ConnectorRequest,
        seen_message_ids: set[str],
    ) -> ParsedResponse:
        try:
            data = json.loads(response_text)
        except json.JSONDecodeError:
            if response_text.strip():
                return ParsedResponse(messages=[_assistant(response_text)])
            return ParsedResponse()

        if isinstance(data, str):
            return ParsedResponse(messages=[_assistant(data)])
        if not isinstance(data, dict):
            return ParsedResponse()

        usage = _parse_usage(data.get("usage"))

        message = data.get("message")
        if isinstance(message, dict) and message.get("content"):
            return ParsedResponse(messages=[_assistant(message["content"])], tokens_usage=usage)
        if data.get("content"):
            return ParsedResponse(messages=[_assistant(data["content"])], tokens_usage=usage)
        if data.get("response"):
            return ParsedResponse(messages=[_assistant(data["response"])], tokens_usage=usage)

        raw_messages = data.get("messages")
        if isinstance(raw_messages, list):
            new_messages: list[Message] = []
            for raw in raw_messages[request.sent_count:]:
                if not isinstance(raw, dict) or not raw.get("role") or "content" not in raw:
                    continue
                if raw.get("id") and raw["id"] in seen_message_ids:
                    continue
                new_messages.append(Message.model_validate({**raw, "content": raw["content"] or ""}))
            return ParsedResponse(messages=new_messages, tokens_usage=usage)

        return ParsedResponse(tokens_usage=usage)


def _assistant(content: Any) -> Message:
    if not isinstance(content, (str, list)):
        content = json.dumps(content)
    return Message.model_validate({"role": "assistant", "content": content})


def _parse_usage(raw: Any) -> TokensUsage | None:
    """Accepts both {input_tokens, output_tokens} and {prompt_tokens, completion_tokens}."""
    if not isinstance(raw, dict):
        return None
    input_tokens = int(raw.get("input_tokens", raw.get("prompt_tokens", 0)) or 0)
    output_tokens = int(raw.get("output_tokens", raw.get("completion_tokens", 0)) or 0)
    if not input_tokens and not output_tokens:
        return None
    total = int(raw.get("total_tokens", 0) or 0) or input_tokens + output_tokens
    return TokensUsage(input_tokens=input_tokens, output_tokens=output_tokens, total_tokens=total)
