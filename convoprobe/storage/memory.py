"""In-process store. Used by tests and single-process embedding."""

from __future__ import annotations

import asyncio
from typing import Any

from convoprobe.schemas.common import RunStatus
from convoprobe.schemas.connector import Connector
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.run import Run, utcnow
from convoprobe.schemas.scenario import Scenario


class InMemoryStore:
    """Implements both RunStore and DefinitionStore.

    Everything crossing the boundary is deep-copied so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        # Insertion order is the FIFO order
        self._runs: dict[str, Run] = {}
        self._scenarios: dict[str, Scenario] = {}
        self._personas: dict[str, Persona] = {}
        self._connectors: dict[str, Connector] = {}

    # --- runs ---

    async def list_runs(
        self,
        status: RunStatus | None = None,
        limit: int | None = None,
    ) -> list[Run]:
        async with self._lock:
            runs = [
                r for r in self._runs.values()
                if status is None or r.status == RunStatus(status)
            ]
        runs.sort(key=lambda r: r.created_at)
        if limit is not None:
            runs = runs[:limit]
        return [r.model_copy(deep=True) for r in runs]

    async def get_run(self, run_id: str) -> Run | None:
        async with self._lock:
            run = self._runs.get(run_id)
            return run.model_copy(deep=True) if run else None

    async def add_run(self, run: Run) -> Run:
        async with self._lock:
            self._runs[run.id] = run.model_copy(deep=True)
        return run

    async def claim_run(self, run_id: str) -> Run | None:
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None or run.status != RunStatus.QUEUED:
                return None
            now = utcnow()
            claimed = _apply(run, {
                "status": RunStatus.RUNNING,
                "started_at": now,
                "updated_at": now,
            })
            self._runs[run_id] = claimed
            return claimed.model_copy(deep=True)

    async def update_run(
        self,
        run_id: str,
        changes: dict[str, Any],
        expected_status: RunStatus | None = None,
    ) -> Run | None:
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                return None
            if expected_status is not None and run.status != RunStatus(expected_status):
                return None
            updated = _apply(run, {**changes, "updated_at": utcnow()})
            self._runs[run_id] = updated
            return updated.model_copy(deep=True)

    async def reset_running_runs(self) -> int:
        async with self._lock:
            stuck = [r for r in self._runs.values() if r.status == RunStatus.RUNNING]
            for run in stuck:
                self._runs[run.id] = _apply(run, {
                    "status": RunStatus.QUEUED,
                    "started_at": None,
                    "updated_at": utcnow(),
                })
            return len(stuck)

    # --- definitions ---

    async def get_scenario(self, scenario_id: str) -> Scenario | None:
        scenario = self._scenarios.get(scenario_id)
        return scenario.model_copy(deep=True) if scenario else None

    async def get_persona(self, persona_id: str) -> Persona | None:
        persona = self._personas.get(persona_id)
        return persona.model_copy(deep=True) if persona else None

    async def get_connector(self, connector_id: str) -> Connector | None:
        connector = self._connectors.get(connector_id)
        return connector.model_copy(deep=True) if connector else None

    async def add_scenario(self, scenario: Scenario) -> Scenario:
        self._scenarios[scenario.id] = scenario.model_copy(deep=True)
        return scenario

    async def add_persona(self, persona: Persona) -> Persona:
        self._personas[persona.id] = persona.model_copy(deep=True)
        return persona

    async def add_connector(self, connector: Connector) -> Connector:
        self._connectors[connector.id] = connector.model_copy(deep=True)
        return connector


def _apply(run: Run, changes: dict[str, Any]) -> Run:
    """Re-validate so enum and nested values are normalized like a fresh Run."""
    return Run.model_validate({**run.model_dump(), **changes})
