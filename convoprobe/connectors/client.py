"""Async client for the agent under test.

Dispatches on the connector config variant to a request/response strategy,
then owns the network call, latency measurement and error normalization so
every backend fails the same way: a ``ConnectorError``.
"""

from __future__ import annotations

import time

import httpx
import structlog

from convoprobe.config import settings
from convoprobe.connectors.base import ConnectorStrategy
from convoprobe.connectors.http import HttpStrategy
from convoprobe.connectors.langgraph import LangGraphStrategy
from convoprobe.core.exceptions import ConnectorError
from convoprobe.engine.types import ConnectorResult, ConnectorTestResult
from convoprobe.schemas.common import MessageRole
from convoprobe.schemas.connector import Connector, HttpConnectorConfig, LangGraphConnectorConfig
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona

logger = structlog.get_logger()

_HTTP = HttpStrategy()
_LANGGRAPH = LangGraphStrategy()


def get_strategy(connector: Connector) -> ConnectorStrategy:
    match connector.config:
        case HttpConnectorConfig():
            return _HTTP
        case LangGraphConnectorConfig():
            return _LANGGRAPH
        case _:
            raise ConnectorError(f"Unsupported connector type: {connector.type}")


class ConnectorClient:
    """Sends transcripts to a connector and returns the agent's new messages."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.connector_timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ConnectorClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def invoke(
        self,
        connector: Connector,
        messages: list[Message],
        *,
        persona: Persona | None = None,
        thread_id: str | None = None,
        seen_message_ids: set[str] | None = None,
    ) -> ConnectorResult:
        """Send the non-system transcript and return what the agent added.

        Raises ConnectorError on transport failure, non-2xx status, or an
        empty reply.
        """
        strategy = get_strategy(connector)
        outgoing = [m for m in messages if m.role != MessageRole.SYSTEM]
        seen = seen_message_ids or set()

        request = strategy.build_invoke_request(
            connector,
            outgoing,
            persona=persona,
            thread_id=thread_id,
            seen_message_ids=seen,
        )

        start = time.perf_counter()
        response_text = await self._send(connector, request.method, request.url, request.headers, request.body)
        latency_ms = int((time.perf_counter() - start) * 1000)

        parsed = strategy.parse_invoke_response(response_text, request, seen)
        if not parsed.messages:
            raise ConnectorError("No response messages from connector", body=response_text[:500])

        logger.debug(
            "connector_invoked",
            connector_id=connector.id,
            connector_type=connector.type,
            sent=request.sent_count,
            received=len(parsed.messages),
            latency_ms=latency_ms,
        )

        return ConnectorResult(
            messages=parsed.messages,
            latency_ms=latency_ms,
            tokens_usage=parsed.tokens_usage,
            raw_response=response_text,
            thread_id=parsed.thread_id or thread_id,
        )

    async def test(self, connector: Connector) -> ConnectorTestResult:
        """Probe a connector with a minimal request. Never raises for network errors."""
        strategy = get_strategy(connector)
        request = strategy.build_test_request(connector)

        start = time.perf_counter()
        try:
            response_text = await self._send(connector, request.method, request.url, request.headers, request.body)
        except ConnectorError as e:
            latency_ms = int((time.perf_counter() - start) * 1000)
            logger.info("connector_test_failed", connector_id=connector.id, error=e.message)
            return ConnectorTestResult(success=False, latency_ms=latency_ms, error=e.message)

        latency_ms = int((time.perf_counter() - start) * 1000)
        return ConnectorTestResult(
            success=True,
            latency_ms=latency_ms,
            response=strategy.parse_test_response(response_text),
        )

    async def _send(
        self,
        connector: Connector,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: dict | None,
    ) -> str:
        try:
            response = await self._client.request(method, url, headers=headers, json=body)
        except httpx.HTTPError as e:
            logger.warning("connector_request_failed", connector_id=connector.id, url=url, error=str(e))
            raise ConnectorError(str(e) or type(e).__name__) from e

        if not response.is_success:
            text = response.text
            raise ConnectorError(
                f"HTTP {response.status_code}: {text[:200]}",
                status_code=response.status_code,
                body=text[:500],
            )
        return response.text
