"""Background run processor.

Claims queued runs FIFO, executes each one's conversation loop concurrently
(bounded by a per-instance semaphore), evaluates the finished transcript and
writes exactly one terminal status per run.

Status writes out of ``running`` are conditional on the run still being
``running``, so a run reset by another process is never overwritten.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import asdict
from typing import Any

import structlog
from uuid_extensions import uuid7

from convoprobe.config import settings
from convoprobe.core.exceptions import NotFoundError, RetryNotAllowedError, ValidationError
from convoprobe.engine.scenario_runner import ScenarioRunner
from convoprobe.engine.types import ConversationResult, CriteriaVerdict, LoopStatus
from convoprobe.evaluation.registry import EvaluatorRegistry, aggregate, create_registry
from convoprobe.evaluation.types import EvaluatorContext
from convoprobe.schemas.common import RunStatus
from convoprobe.schemas.connector import Connector
from convoprobe.schemas.message import Message
from convoprobe.schemas.persona import Persona
from convoprobe.schemas.run import (
    CriteriaEvaluation,
    Run,
    RunOutput,
    RunResult,
    TokensUsageSchema,
    utcnow,
)
from convoprobe.schemas.scenario import Scenario
from convoprobe.services.observer import (
    CallbackRunObserver,
    CompositeRunObserver,
    RunObserver,
    StructlogRunObserver,
)
from convoprobe.storage.base import DefinitionStore, RunStore

logger = structlog.get_logger()


class RunProcessor:
    """Polls for queued runs and executes them.

    Use ``process_once()`` for a single batch (CLI, tests) or
    ``start()`` / ``stop()`` for continuous polling. ``stop()`` never cancels
    a run in flight; it waits for them to finish.
    """

    def __init__(
        self,
        run_store: RunStore,
        definitions: DefinitionStore,
        runner: ScenarioRunner,
        registry: EvaluatorRegistry | None = None,
        *,
        poll_interval_ms: int | None = None,
        max_concurrent: int | None = None,
        observers: list[RunObserver] | None = None,
        on_run_start: Callable[[Run], object] | None = None,
        on_run_complete: Callable[[Run, RunResult], object] | None = None,
        on_run_error: Callable[[Run, str], object] | None = None,
        recover_stuck_runs: bool | None = None,
    ) -> None:
        self.run_store = run_store
        self.definitions = definitions
        self.runner = runner
        self.registry = registry if registry is not None else create_registry()
        self.poll_interval_ms = (
            poll_interval_ms if poll_interval_ms is not None else settings.processor_poll_interval_ms
        )
        self.max_concurrent = max(
            1, max_concurrent if max_concurrent is not None else settings.processor_max_concurrent
        )
        self.recover_stuck_runs = (
            recover_stuck_runs if recover_stuck_runs is not None
            else settings.processor_recover_stuck_runs
        )

        all_observers: list[RunObserver] = [StructlogRunObserver(), *(observers or [])]
        if on_run_start or on_run_complete or on_run_error:
            all_observers.append(CallbackRunObserver(on_run_start, on_run_complete, on_run_error))
        self.observers = CompositeRunObserver(all_observers)

        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._poll_task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def active_run_ids(self) -> list[str]:
        return list(self._tasks)

    # --- polling ---

    async def start(self) -> None:
        if self.is_running:
            return
        if self.recover_stuck_runs:
            recovered = await self.run_store.reset_running_runs()
            if recovered:
                logger.warning("stuck_runs_recovered", count=recovered)

        self._stop_event = asyncio.Event()
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(
            "run_processor_started",
            poll_interval_ms=self.poll_interval_ms,
            max_concurrent=self.max_concurrent,
        )

    async def stop(self) -> None:
        """Stop claiming new runs and wait for in-flight runs to finish."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._poll_task is not None:
            await self._poll_task
            self._poll_task = None

        in_flight = list(self._tasks.values())
        if in_flight:
            logger.info("run_processor_draining", in_flight=len(in_flight))
            await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("run_processor_stopped")

    async def _poll_loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await self._claim_and_start()
            except Exception as e:
                logger.error("run_processor_tick_failed", error=str(e))
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.poll_interval_ms / 1000,
                )
            except asyncio.TimeoutError:
                pass

    async def process_once(self) -> int:
        """Claim up to ``max_concurrent`` queued runs, run them, wait for all.

        Returns the number of runs started.
        """
        started = await self._claim_and_start()
        if started:
            await asyncio.gather(*started, return_exceptions=True)
        return len(started)

    async def _claim_and_start(self) -> list[asyncio.Task[None]]:
        if self._semaphore.locked():
            return []

        candidates = await self.run_store.list_runs(
            status=RunStatus.QUEUED,
            limit=self.max_concurrent,
        )
        started: list[asyncio.Task[None]] = []
        for candidate in candidates:
            if self._semaphore.locked():
                break
            await self._semaphore.acquire()
            try:
                claimed = await self.run_store.claim_run(candidate.id)
            except BaseException:
                self._semaphore.release()
                raise
            if claimed is None:
                # Another processor got there first
                self._semaphore.release()
                continue

            task = asyncio.create_task(self._execute(claimed), name=f"run-{claimed.id}")
            self._tasks[claimed.id] = task
            task.add_done_callback(lambda _t, run_id=claimed.id: self._tasks.pop(run_id, None))
            started.append(task)
        return started

    # --- execution ---

    async def _execute(self, run: Run) -> None:
        try:
            self.observers.run_status_changed(run, RunStatus.QUEUED.value, RunStatus.RUNNING.value)
            self.observers.run_started(run)
            await self._process_run(run)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("run_processing_failed", run_id=run.id, error=error)
            try:
                await self._fail(run, error)
            except Exception as write_error:
                logger.error("run_error_write_failed", run_id=run.id, error=str(write_error))
        finally:
            self._semaphore.release()

    async def _process_run(self, run: Run) -> None:
        scenario, connector, persona = await self._load_definitions(run)

        thread_id = run.thread_id
        if not thread_id:
            thread_id = str(uuid7())
            await self.run_store.update_run(
                run.id, {"thread_id": thread_id}, expected_status=RunStatus.RUNNING
            )

        async def persist_transcript(messages: list[Message]) -> None:
            await self.run_store.update_run(
                run.id, {"messages": messages}, expected_status=RunStatus.RUNNING
            )

        conversation = await self.runner.run(
            scenario,
            connector,
            persona,
            seed_messages=run.messages or None,
            thread_id=thread_id,
            on_transcript=persist_transcript,
        )

        if conversation.status == LoopStatus.ERROR:
            await self._fail(
                run,
                conversation.error_message or "Conversation failed",
                messages=conversation.messages,
            )
            return

        await self._complete(run, scenario, persona, conversation)

    async def _load_definitions(self, run: Run) -> tuple[Scenario, Connector, Persona | None]:
        """Snapshot the definitions this run needs; stores return copies."""
        scenario = await self.definitions.get_scenario(run.scenario_id)
        if scenario is None:
            raise NotFoundError("Scenario", run.scenario_id)
        if not run.connector_id:
            raise ValidationError("Run has no connector")
        connector = await self.definitions.get_connector(run.connector_id)
        if connector is None:
            raise NotFoundError("Connector", run.connector_id)
        persona = None
        if run.persona_id:
            persona = await self.definitions.get_persona(run.persona_id)
            if persona is None:
                raise NotFoundError("Persona", run.persona_id)
        return scenario, connector, persona

    async def _complete(
        self,
        run: Run,
        scenario: Scenario,
        persona: Persona | None,
        conversation: ConversationResult,
    ) -> None:
        entries = await self.registry.run(
            scenario.evaluators,
            EvaluatorContext(
                messages=conversation.messages,
                scenario=scenario,
                persona=persona,
                last_invocation=conversation.last_invocation,
                tokens_usage=conversation.tokens_usage,
                turn=conversation.turn_count,
                is_final=True,
            ),
        )
        evaluation = aggregate(entries)

        # A failed assertion fails an otherwise successful run.
        success = bool(conversation.success) and evaluation.success
        reason = conversation.reason
        if conversation.success and not evaluation.success:
            reason = evaluation.reason
        verdict = conversation.verdict
        score = _run_score(verdict, evaluation.score)
        result = RunResult(success=success, score=score, reason=reason)

        output = RunOutput(
            message_count=conversation.message_count,
            avg_latency_ms=conversation.avg_latency_ms,
            total_latency_ms=conversation.total_latency_ms,
            max_messages_reached=conversation.max_messages_reached,
            tokens_usage=(
                TokensUsageSchema(**asdict(conversation.tokens_usage))
                if conversation.tokens_usage else None
            ),
            evaluation=(
                CriteriaEvaluation(
                    success_met=verdict.success_met,
                    failure_met=verdict.failure_met,
                    confidence=verdict.confidence,
                    reasoning=verdict.reasoning,
                )
                if verdict else None
            ),
            evaluator_results=entries,
            metrics=evaluation.metrics,
        )

        updated = await self.run_store.update_run(
            run.id,
            {
                "status": RunStatus.COMPLETED,
                "messages": conversation.messages,
                "output": output,
                "result": result,
                "error": None,
                "completed_at": utcnow(),
            },
            expected_status=RunStatus.RUNNING,
        )
        if updated is None:
            logger.warning("run_terminal_write_skipped", run_id=run.id, status="completed")
            return

        self.observers.run_status_changed(updated, RunStatus.RUNNING.value, RunStatus.COMPLETED.value)
        self.observers.run_completed(updated, result)

    async def _fail(self, run: Run, error: str, messages: list[Message] | None = None) -> None:
        changes: dict[str, Any] = {
            "status": RunStatus.ERROR,
            "error": error,
            "completed_at": utcnow(),
        }
        if messages is not None:
            changes["messages"] = messages
        updated = await self.run_store.update_run(run.id, changes, expected_status=RunStatus.RUNNING)
        if updated is None:
            logger.warning("run_terminal_write_skipped", run_id=run.id, status="error")
            return

        self.observers.run_status_changed(updated, RunStatus.RUNNING.value, RunStatus.ERROR.value)
        self.observers.run_failed(updated, error)

    # --- retry ---

    async def retry(self, run_id: str, clear_messages: bool = False) -> Run:
        """Re-queue a run that ended in a system error. See ``retry_run``."""
        updated = await retry_run(self.run_store, run_id, clear_messages=clear_messages)
        self.observers.run_status_changed(updated, RunStatus.ERROR.value, RunStatus.QUEUED.value)
        return updated


def _run_score(verdict: CriteriaVerdict | None, assertion_score: float | None) -> float:
    """Judge confidence, capped by the lowest assertion value."""
    confidence = verdict.confidence if verdict is not None and verdict.confidence is not None else 0.0
    if assertion_score is None:
        return confidence
    return min(confidence, assertion_score)


async def retry_run(run_store: RunStore, run_id: str, clear_messages: bool = False) -> Run:
    """Re-queue a run that ended in a system error.

    Judged failures are final. A fresh thread id is always assigned;
    the transcript is kept unless ``clear_messages`` is set.

    Raises:
        NotFoundError: no run with this id
        RetryNotAllowedError: the run is not in ``error``
    """
    run = await run_store.get_run(run_id)
    if run is None:
        raise NotFoundError("Run", run_id)
    if not run.is_retryable:
        raise RetryNotAllowedError(run_id, run.status)

    changes: dict[str, Any] = {
        "status": RunStatus.QUEUED,
        "error": None,
        "result": None,
        "output": None,
        "started_at": None,
        "completed_at": None,
        "thread_id": str(uuid7()),
    }
    if clear_messages:
        changes["messages"] = []

    updated = await run_store.update_run(run_id, changes, expected_status=RunStatus.ERROR)
    if updated is None:
        current = await run_store.get_run(run_id)
        raise RetryNotAllowedError(run_id, current.status if current else "unknown")

    logger.info("run_retried", run_id=run_id, clear_messages=clear_messages)
    return updated
