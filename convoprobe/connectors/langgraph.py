"""LangGraph API connector strategy.

Stateless mode posts the full history to ``/runs/wait``. Threaded mode posts
only unseen messages to ``/threads/{thread_id}/runs/wait`` and lets the server
keep the conversation state.
"""

from __future__ import annotations

import json
from typing import Any

from convoprobe.connectors.base import ConnectorRequest, ParsedResponse, build_request_headers
from convoprobe.engine.types import TokensUsage
from convoprobe.schemas.connector import Connector, LangGraphConnectorConfig
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona

_ROLE_BY_TYPE = {
    "human": "user",
    "user": "user",
    "ai": "assistant",
    "assistant": "assistant",
    "tool": "tool",
    "system": "system",
}


class LangGraphStrategy:
    def build_test_request(self, connector: Connector) -> ConnectorRequest:
        return ConnectorRequest(
            url=f"{connector.url_base}/info",
            method="GET",
            headers=build_request_headers(connector),
        )

    def build_invoke_request(
        self,
        connector: Connector,
        messages: list[Message],
        persona: Persona | None = None,
        thread_id: str | None = None,
        seen_message_ids: set[str] | None = None,
    ) -> ConnectorRequest:
        config = self._config(connector)
        seen = seen_message_ids or set()

        body: dict[str, Any] = {"assistant_id": config.assistant_id}
        if config.threaded and thread_id:
            url = f"{connector.url_base}/threads/{thread_id}/runs/wait"
            to_send = [m for m in messages if not m.id or m.id not in seen]
            body["multitask_strategy"] = "enqueue"
            body["if_not_exists"] = "create"
        else:
            url = f"{connector.url_base}/runs/wait"
            to_send = messages

        body["input"] = {"messages": [m.to_wire() for m in to_send]}
        if config.configurable:
            body["config"] = {"configurable": config.configurable}

        return ConnectorRequest(
            url=url,
            method="POST",
            headers=build_request_headers(connector, persona),
            body=body,
            sent_count=len(to_send),
            threaded=config.threaded and bool(thread_id),
        )

    def parse_test_response(self, response_text: str) -> str:
        try:
            data = json.loads(response_text)
        except json.JSONDecodeError:
            return response_text
        if isinstance(data, dict) and isinstance(data.get("messages"), list) and data["messages"]:
            last = data["messages"][-1]
            if isinstance(last, dict) and last.get("content"):
                content = last["content"]
                return content if isinstance(content, str) else json.dumps(content)
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
            return ParsedResponse()
        if not isinstance(data, dict):
            return ParsedResponse()

        thread_id = data.get("thread_id") if isinstance(data.get("thread_id"), str) else None
        raw_messages = data.get("messages")
        if not isinstance(raw_messages, list):
            return ParsedResponse(thread_id=thread_id)

        if request.threaded:
            # Thread state echoes every prior turn; our own user turns come back with server ids.
            candidates = [
                m for m in raw_messages
                if isinstance(m, dict) and _role_of(m) != "user"
            ]
        else:
            candidates = [m for m in raw_messages[request.sent_count:] if isinstance(m, dict)]

        new_raw = [
            m for m in candidates
            if not (isinstance(m.get("id"), str) and m["id"] in seen_message_ids)
        ]

        return ParsedResponse(
            messages=[_to_message(m) for m in new_raw],
            tokens_usage=_sum_usage(new_raw),
            thread_id=thread_id,
        )

    @staticmethod
    def _config(connector: Connector) -> LangGraphConnectorConfig:
        if isinstance(connector.config, LangGraphConnectorConfig):
            return connector.config
        return LangGraphConnectorConfig()


def _role_of(raw: dict[str, Any]) -> str:
    return _ROLE_BY_TYPE.get(raw.get("type") or raw.get("role") or "", "assistant")


def _to_message(raw: dict[str, Any]) -> Message:
    data: dict[str, Any] = {"role": _role_of(raw), "content": raw.get("content") or ""}
    if isinstance(raw.get("tool_calls"), list) and raw["tool_calls"]:
        data["tool_calls"] = raw["tool_calls"]
    for key in ("tool_call_id", "name", "id"):
        if isinstance(raw.get(key), str):
            data[key] = raw[key]

    metadata = {
        key: raw[key]
        for key in ("additional_kwargs", "response_metadata")
        if isinstance(raw.get(key), dict) and raw[key]
    }
    if metadata:
        data["metadata"] = metadata
    return Message.model_validate(data)


def _sum_usage(raw_messages: list[dict[str, Any]]) -> TokensUsage | None:
    """One invocation may return several AI messages (tool call then reply); sum them all."""
    usage = TokensUsage()
    for raw in raw_messages:
        if _role_of(raw) != "assistant":
            continue
        meta = raw.get("usage_metadata")
        if not isinstance(meta, dict):
            continue
        usage = usage + TokensUsage(
            input_tokens=int(meta.get("input_tokens") or 0),
            output_tokens=int(meta.get("output_tokens") or 0),
            total_tokens=int(meta.get("total_tokens") or 0),
        )
    if not usage.input_tokens and not usage.output_tokens:
        return None
    if not usage.total_tokens:
        usage.total_tokens = usage.input_tokens + usage.output_tokens
    return usage
