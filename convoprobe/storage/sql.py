"""SQLAlchemy-backed store (PostgreSQL in production, SQLite in tests)."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from convoprobe.models import ConnectorRecord, PersonaRecord, RunRecord, ScenarioRecord
from convoprobe.schemas.common import RunStatus
from convoprobe.schemas.connector import Connector
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.run import Run, utcnow
from convoprobe.schemas.scenario import Scenario

logger = structlog.get_logger()

_RUN_COLUMNS = (
    "eval_id", "scenario_id", "persona_id", "connector_id", "execution_id",
    "thread_id", "status", "messages", "output", "result", "error",
    "started_at", "completed_at", "created_at", "updated_at",
)


class SqlStore:
    """Implements both RunStore and DefinitionStore on one session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # --- runs ---

    async def list_runs(
        self,
        status: RunStatus | None = None,
        limit: int | None = None,
    ) -> list[Run]:
        stmt = select(RunRecord).order_by(RunRecord.created_at, RunRecord.id)
        if status is not None:
            stmt = stmt.where(RunRecord.status == RunStatus(status).value)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.session_factory() as session:
            records = (await session.execute(stmt)).scalars().all()
            return [_run_from_record(r) for r in records]

    async def get_run(self, run_id: str) -> Run | None:
        async with self.session_factory() as session:
            record = await session.get(RunRecord, run_id)
            return _run_from_record(record) if record else None

    async def add_run(self, run: Run) -> Run:
        async with self.session_factory() as session:
            session.add(RunRecord(id=run.id, **_run_columns(run)))
            await session.commit()
        return run

    async def claim_run(self, run_id: str) -> Run | None:
        now = utcnow()
        stmt = (
            update(RunRecord)
            .where(RunRecord.id == run_id, RunRecord.status == RunStatus.QUEUED.value)
            .values(status=RunStatus.RUNNING.value, started_at=now, updated_at=now)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            if result.rowcount != 1:
                logger.debug("run_claim_lost", run_id=run_id)
                return None
        return await self.get_run(run_id)

    async def update_run(
        self,
        run_id: str,
        changes: dict[str, Any],
        expected_status: RunStatus | None = None,
    ) -> Run | None:
        current = await self.get_run(run_id)
        if current is None:
            return None

        merged = Run.model_validate({**current.model_dump(), **changes, "updated_at": utcnow()})
        columns = _run_columns(merged)
        values = {key: columns[key] for key in (*changes.keys(), "updated_at") if key in columns}

        stmt = update(RunRecord).where(RunRecord.id == run_id)
        if expected_status is not None:
            stmt = stmt.where(RunRecord.status == RunStatus(expected_status).value)
        async with self.session_factory() as session:
            result = await session.execute(stmt.values(**values))
            await session.commit()
            if result.rowcount != 1:
                return None
        return merged

    async def reset_running_runs(self) -> int:
        stmt = (
            update(RunRecord)
            .where(RunRecord.status == RunStatus.RUNNING.value)
            .values(status=RunStatus.QUEUED.value, started_at=None, updated_at=utcnow())
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

    # --- definitions ---

    async def get_scenario(self, scenario_id: str) -> Scenario | None:
        async with self.session_factory() as session:
            record = await session.get(ScenarioRecord, scenario_id)
            if record is None:
                return None
            return Scenario(
                id=record.id,
                name=record.name,
                instructions=record.instructions,
                messages=record.messages or [],
                max_messages=record.max_messages,
                success_criteria=record.success_criteria,
                failure_criteria=record.failure_criteria,
                failure_criteria_mode=record.failure_criteria_mode,
                persona_ids=record.persona_ids or [],
                evaluators=record.evaluators or [],
            )

    async def get_persona(self, persona_id: str) -> Persona | None:
        async with self.session_factory() as session:
            record = await session.get(PersonaRecord, persona_id)
            if record is None:
                return None
            return Persona(
                id=record.id,
                name=record.name,
                description=record.description,
                system_prompt=record.system_prompt,
                headers=record.headers or {},
            )

    async def get_connector(self, connector_id: str) -> Connector | None:
        async with self.session_factory() as session:
            record = await session.get(ConnectorRecord, connector_id)
            if record is None:
                return None
            return Connector(
                id=record.id,
                name=record.name,
                type=record.type,
                base_url=record.base_url,
                headers=record.headers or {},
                auth_type=record.auth_type or "none",
                auth_value=record.auth_value,
                config=record.config,
            )

    async def add_scenario(self, scenario: Scenario) -> Scenario:
        data = scenario.model_dump(mode="json")
        async with self.session_factory() as session:
            session.add(ScenarioRecord(**data))
            await session.commit()
        return scenario

    async def add_persona(self, persona: Persona) -> Persona:
        async with self.session_factory() as session:
            session.add(PersonaRecord(**persona.model_dump(mode="json")))
            await session.commit()
        return persona

    async def add_connector(self, connector: Connector) -> Connector:
        async with self.session_factory() as session:
            session.add(ConnectorRecord(**connector.model_dump(mode="json")))
            await session.commit()
        return connector


def _run_columns(run: Run) -> dict[str, Any]:
    """Run -> column values. JSON columns get plain dicts; datetimes stay native."""
    data = run.model_dump(mode="json", include={"messages", "output", "result"})
    return {
        "eval_id": run.eval_id,
        "scenario_id": run.scenario_id,
        "persona_id": run.persona_id,
        "connector_id": run.connector_id,
        "execution_id": run.execution_id,
        "thread_id": run.thread_id,
        "status": RunStatus(run.status).value,
        "messages": data["messages"],
        "output": data["output"],
        "result": data["result"],
        "error": run.error,
        "started_at": run.started_at,
        "completed_at": run.completed_at,
        "created_at": run.created_at,
        "updated_at": run.updated_at,
    }


def _run_from_record(record: RunRecord) -> Run:
    return Run.model_validate({
        "id": record.id,
        **{column: getattr(record, column) for column in _RUN_COLUMNS},
        "messages": record.messages or [],
    })
