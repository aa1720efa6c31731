"""Connector strategy interface shared by all backend types.

Each strategy only builds requests and parses responses; the network call,
timing and error normalization live in ConnectorClient.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from convoprobe.engine.types import TokensUsage
from convoprobe.schemas.connector import Connector
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona


@dataclass
class ConnectorRequest:
    url: str
    method: str
    headers: httpx.Headers
    body: dict[str, Any] | None = None
    # Messages included in the body, used to slice echoed history out of responses
    sent_count: int = 0
    threaded: bool = False


@dataclass
class ParsedResponse:
    messages: list[Message] = field(default_factory=list)
    tokens_usage: TokensUsage | None = None
    thread_id: str | None = None


class ConnectorStrategy(Protocol):
    def build_test_request(self, connector: Connector) -> ConnectorRequest: ...

    def build_invoke_request(
        self,
        connector: Connector,
        messages: list[Message],
        persona: Persona | None = None,
        thread_id: str | None = None,
        seen_message_ids: set[str] | None = None,
    ) -> ConnectorRequest: ...

    def parse_test_response(self, response_text: str) -> str: ...

    def parse_invoke_response(
        self,
        response_text: str,
        request: ConnectorRequest,
        seen_message_ids: set[str],
    ) -> ParsedResponse: ...


def build_auth_headers(connector: Connector) -> dict[str, str]:
    if not connector.auth_value:
        return {}
    match connector.auth_type:
        case "api-key":
            return {"X-API-Key": connector.auth_value}
        case "bearer":
            return {"Authorization": f"Bearer {connector.auth_value}"}
        case "basic":
            return {"Authorization": f"Basic {connector.auth_value}"}
    return {}


def build_request_headers(
    connector: Connector,
    persona: Persona | None = None,
) -> httpx.Headers:
    """JSON content type, auth, connector headers, then persona headers (persona wins).

    Names compare case-insensitively, so a later layer replaces an earlier
    one however either spells the header.
    """
    headers = httpx.Headers({"Content-Type": "application/json"})
    headers.update(build_auth_headers(connector))
    headers.update(connector.headers)
    if persona:
        headers.update(persona.headers)
    return headers
