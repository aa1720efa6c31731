"""CLI entrypoint for convoprobe: typer app for running and managing runs."""

import asyncio
import contextlib
import signal
import sys
from typing import Any, Optional

import typer

from convoprobe.config import settings
from convoprobe.connectors.client import ConnectorClient
from convoprobe.core.exceptions import ConvoProbeError
from convoprobe.core.logging import setup_logging
from convoprobe.db.session import create_engine, create_session_factory, init_db
from convoprobe.engine.llm_client import LLMClient
from convoprobe.engine.persona_simulator import PersonaSimulator
from convoprobe.engine.scenario_runner import ScenarioRunner
from convoprobe.evaluation.criteria_judge import CriteriaJudge
from convoprobe.services.run_processor import RunProcessor, retry_run
from convoprobe.storage.sql import SqlStore

app = typer.Typer(add_completion=False, help="Run conversational agent evaluations.")


def _log_format_option() -> Any:
    return typer.Option(
        None,
        "--log-format",
        help="Log format: 'console' or 'json' (defaults to settings)",
    )


def _database_url_option() -> Any:
    return typer.Option(None, "--database-url", help="Override the configured database URL")


def _configure(log_format: Optional[str]) -> None:
    try:
        setup_logging(debug=settings.debug, log_format=log_format or settings.log_format)
    except ValueError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc


@app.command("init-db")
def init_db_command(
    database_url: Optional[str] = _database_url_option(),
    log_format: Optional[str] = _log_format_option(),
) -> None:
    """Create the database tables."""
    _configure(log_format)

    async def _run() -> None:
        engine = create_engine(database_url)
        try:
            await init_db(engine)
        finally:
            await engine.dispose()

    asyncio.run(_run())
    typer.echo("Database initialized.")


@app.command()
def process(
    watch: bool = typer.Option(False, "--watch", help="Keep polling until interrupted"),
    max_concurrent: Optional[int] = typer.Option(None, "--max-concurrent", min=1, help="Runs executed at once"),
    poll_interval_ms: Optional[int] = typer.Option(None, "--poll-interval-ms", min=1, help="Delay between polls"),
    database_url: Optional[str] = _database_url_option(),
    log_format: Optional[str] = _log_format_option(),
) -> None:
    """Execute queued runs (once until the queue is empty, or continuously with --watch)."""
    _configure(log_format)

    async def _run() -> int:
        engine = create_engine(database_url)
        store = SqlStore(create_session_factory(engine))
        llm_client = LLMClient()
        async with ConnectorClient() as connector_client:
            processor = RunProcessor(
                store,
                store,
                ScenarioRunner(
                    connector_client=connector_client,
                    persona_simulator=PersonaSimulator(llm_client),
                    criteria_judge=CriteriaJudge(llm_client),
                ),
                poll_interval_ms=poll_interval_ms,
                max_concurrent=max_concurrent,
            )
            try:
                if watch:
                    await _watch(processor)
                    return 0
                total = 0
                while True:
                    started = await processor.process_once()
                    if not started:
                        return total
                    total += started
            finally:
                await engine.dispose()

    try:
        total = asyncio.run(_run())
    except ConvoProbeError as exc:
        typer.echo(exc.message)
        sys.exit(1)
    if not watch:
        typer.echo(f"Processed {total} run(s).")


async def _watch(processor: RunProcessor) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Signal handlers are unavailable on some platforms; Ctrl-C still raises there.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    await processor.start()
    try:
        await stop.wait()
    finally:
        await processor.stop()


@app.command()
def retry(
    run_id: str = typer.Argument(..., help="Id of a run that ended in error"),
    clear_messages: bool = typer.Option(False, "--clear-messages", help="Restart the conversation from scratch"),
    database_url: Optional[str] = _database_url_option(),
    log_format: Optional[str] = _log_format_option(),
) -> None:
    """Re-queue a run that failed with a system error."""
    _configure(log_format)

    async def _run() -> str:
        engine = create_engine(database_url)
        store = SqlStore(create_session_factory(engine))
        try:
            run = await retry_run(store, run_id, clear_messages=clear_messages)
            return run.status
        finally:
            await engine.dispose()

    try:
        status = asyncio.run(_run())
    except ConvoProbeError as exc:
        typer.echo(exc.message)
        sys.exit(1)
    typer.echo(f"Run {run_id} is now {status}.")


@app.command("test-connector")
def test_connector(
    connector_id: str = typer.Argument(..., help="Id of the connector to probe"),
    database_url: Optional[str] = _database_url_option(),
    log_format: Optional[str] = _log_format_option(),
) -> None:
    """Send a minimal request to a connector and report the outcome."""
    _configure(log_format)

    async def _run():
        engine = create_engine(database_url)
        store = SqlStore(create_session_factory(engine))
        try:
            connector = await store.get_connector(connector_id)
            if connector is None:
                return None
            async with ConnectorClient() as client:
                return await client.test(connector)
        finally:
            await engine.dispose()

    result = asyncio.run(_run())
    if result is None:
        typer.echo(f"Connector with id '{connector_id}' not found")
        sys.exit(1)
    if result.success:
        typer.echo(f"OK ({result.latency_ms} ms): {(result.response or '')[:200]}")
    else:
        typer.echo(f"FAILED ({result.latency_ms} ms): {result.error}")
        sys.exit(1)


if __name__ == "__main__":
    app()
