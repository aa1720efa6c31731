"""Storage interfaces for runs and the definitions they reference.

The Run collection is the only shared mutable resource between concurrent
run tasks. Every status transition out of ``queued`` goes through
``claim_run``, a compare-and-set, so two processors can never both own a run.
"""

from __future__ import annotations

from typing import Any, Protocol

from convoprobe.schemas.common import RunStatus
from convoprobe.schemas.connector import Connector
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.run import Run
from convoprobe.schemas.scenario import Scenario


class RunStore(Protocol):
    async def list_runs(
        self,
        status: RunStatus | None = None,
        limit: int | None = None,
    ) -> list[Run]:
        """Runs ordered oldest first (FIFO by created_at)."""
        ...

    async def get_run(self, run_id: str) -> Run | None: ...

    async def add_run(self, run: Run) -> Run: ...

    async def claim_run(self, run_id: str) -> Run | None:
        """Atomically move ``queued`` to ``running``. ``None`` if the claim was lost."""
        ...

    async def update_run(
        self,
        run_id: str,
        changes: dict[str, Any],
        expected_status: RunStatus | None = None,
    ) -> Run | None:
        """Apply field changes. ``None`` if missing or not in ``expected_status``."""
        ...

    async def reset_running_runs(self) -> int:
        """Put every ``running`` run back to ``queued``; returns how many."""
        ...


class DefinitionStore(Protocol):
    async def get_scenario(self, scenario_id: str) -> Scenario | None: ...

    async def get_persona(self, persona_id: str) -> Persona | None: ...

    async def get_connector(self, connector_id: str) -> Connector | None: ...

    async def add_scenario(self, scenario: Scenario) -> Scenario: ...

    async def add_persona(self, persona: Persona) -> Persona: ...

    async def add_connector(self, connector: Connector) -> Connector: ...
