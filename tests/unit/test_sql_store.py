"""Unit tests for SqlStore on SQLite (aiosqlite)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from convoprobe.schemas.common import RunStatus
from convoprobe.schemas.message import Message
from convoprobe.schemas.run import Run, RunOutput, RunResult
from factories import make_connector, make_persona, make_scenario


def _run(offset_s: int = 0, **fields) -> Run:
    created = datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=offset_s)
    data = {"scenario_id": "scn-1", "connector_id": "conn-1", "created_at": created}
    data.update(fields)
    return Run(**data)


class TestRuns:

    @pytest.mark.asyncio
    async def test_add_and_get(self, sql_store) -> None:
        run = _run(messages=[Message(role="user", content="hi", id="u1")], execution_id=7)
        await sql_store.add_run(run)

        stored = await sql_store.get_run(run.id)

        assert stored.id == run.id
        assert stored.status == RunStatus.QUEUED
        assert stored.execution_id == 7
        assert stored.messages[0].id == "u1"

    @pytest.mark.asyncio
    async def test_get_missing(self, sql_store) -> None:
        assert await sql_store.get_run("nope") is None

    @pytest.mark.asyncio
    async def test_list_is_fifo_and_filtered(self, sql_store) -> None:
        late = _run(offset_s=10)
        early = _run(offset_s=1)
        done = _run(offset_s=0, status=RunStatus.COMPLETED)
        for run in (late, early, done):
            await sql_store.add_run(run)

        queued = await sql_store.list_runs(status=RunStatus.QUEUED)
        assert [r.id for r in queued] == [early.id, late.id]

        limited = await sql_store.list_runs(limit=1)
        assert [r.id for r in limited] == [done.id]

    @pytest.mark.asyncio
    async def test_claim_once(self, sql_store) -> None:
        run = _run()
        await sql_store.add_run(run)

        claimed = await sql_store.claim_run(run.id)
        assert claimed.status == RunStatus.RUNNING
        assert claimed.started_at is not None

        assert await sql_store.claim_run(run.id) is None

    @pytest.mark.asyncio
    async def test_update_respects_expected_status(self, sql_store) -> None:
        run = _run()
        await sql_store.add_run(run)

        skipped = await sql_store.update_run(
            run.id, {"status": RunStatus.COMPLETED}, expected_status=RunStatus.RUNNING,
        )
        assert skipped is None
        assert (await sql_store.get_run(run.id)).status == RunStatus.QUEUED

    @pytest.mark.asyncio
    async def test_terminal_write_round_trips_nested_fields(self, sql_store) -> None:
        run = _run()
        await sql_store.add_run(run)
        await sql_store.claim_run(run.id)

        await sql_store.update_run(
            run.id,
            {
                "status": RunStatus.COMPLETED,
                "messages": [Message(role="assistant", content="Booked")],
                "output": RunOutput(message_count=1, metrics={"token-usage": 15}),
                "result": RunResult(success=True, score=1.0, reason="Confirmed"),
            },
            expected_status=RunStatus.RUNNING,
        )

        stored = await sql_store.get_run(run.id)
        assert stored.status == RunStatus.COMPLETED
        assert stored.messages[0].text == "Booked"
        assert stored.output.metrics == {"token-usage": 15}
        assert stored.result.reason == "Confirmed"
        assert stored.started_at is not None

    @pytest.mark.asyncio
    async def test_reset_running_runs(self, sql_store) -> None:
        stuck = _run(status=RunStatus.RUNNING)
        fine = _run(offset_s=1)
        await sql_store.add_run(stuck)
        await sql_store.add_run(fine)

        assert await sql_store.reset_running_runs() == 1
        assert (await sql_store.get_run(stuck.id)).status == RunStatus.QUEUED


class TestDefinitions:

    @pytest.mark.asyncio
    async def test_scenario_round_trip(self, sql_store) -> None:
        scenario = make_scenario(
            messages=[Message(role="user", content="Start")],
            failure_criteria="Agent is rude",
            failure_criteria_mode="every_turn",
            evaluators=[{"type": "tool-call-count"}],
        )
        await sql_store.add_scenario(scenario)

        stored = await sql_store.get_scenario(scenario.id)

        assert stored == scenario

    @pytest.mark.asyncio
    async def test_persona_round_trip(self, sql_store) -> None:
        persona = make_persona(headers={"X-User": "parent"})
        await sql_store.add_persona(persona)

        assert await sql_store.get_persona(persona.id) == persona

    @pytest.mark.asyncio
    async def test_connector_round_trip(self, sql_store) -> None:
        connector = make_connector(
            type="langgraph",
            config={"assistant_id": "booking", "threaded": True},
            headers={"Authorization": "Bearer t"},
        )
        await sql_store.add_connector(connector)

        assert await sql_store.get_connector(connector.id) == connector

    @pytest.mark.asyncio
    async def test_connector_auth_round_trip(self, sql_store) -> None:
        connector = make_connector(id="conn-auth", auth_type="bearer", auth_value="s3cret")
        await sql_store.add_connector(connector)

        stored = await sql_store.get_connector("conn-auth")

        assert stored.auth_type == "bearer"
        assert stored.auth_value == "s3cret"
        assert stored == connector

    @pytest.mark.asyncio
    async def test_missing_definitions(self, sql_store) -> None:
        assert await sql_store.get_scenario("x") is None
        assert await sql_store.get_persona("x") is None
        assert await sql_store.get_connector("x") is None
