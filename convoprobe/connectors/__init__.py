"""Connectors to the agent under test.

- client.py: ConnectorClient, the single entry point (invoke / test)
- base.py: request/response strategy interface and header merging
- http.py: generic REST endpoints
- langgraph.py: LangGraph API (stateless or threaded)
"""

from convoprobe.connectors.client import ConnectorClient

__all__ = ["ConnectorClient"]
