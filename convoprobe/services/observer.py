"""Run lifecycle observers.

Observers are structural (no inheritance from RunObserver required). The
processor talks to a single CompositeRunObserver, which isolates every
observer call so a failing callback never affects run processing.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

import structlog

from convoprobe.schemas.run import Run, RunResult

logger = structlog.get_logger()


class RunObserver(Protocol):
    def run_started(self, run: Run) -> None: ...

    def run_completed(self, run: Run, result: RunResult) -> None: ...

    def run_failed(self, run: Run, error: str) -> None: ...

    def run_status_changed(self, run: Run, old_status: str, new_status: str) -> None: ...


class StructlogRunObserver:
    """Logs run lifecycle events to structlog."""

    def __init__(self) -> None:
        self._log = structlog.get_logger()

    def run_started(self, run: Run) -> None:
        self._log.info(
            "run.started",
            run_id=run.id,
            scenario_id=run.scenario_id,
            persona_id=run.persona_id,
            connector_id=run.connector_id,
        )

    def run_completed(self, run: Run, result: RunResult) -> None:
        self._log.info(
            "run.completed",
            run_id=run.id,
            success=result.success,
            score=result.score,
            message_count=run.output.message_count if run.output else None,
        )

    def run_failed(self, run: Run, error: str) -> None:
        self._log.error("run.failed", run_id=run.id, error=error)

    def run_status_changed(self, run: Run, old_status: str, new_status: str) -> None:
        self._log.debug("run.status_changed", run_id=run.id, old=old_status, new=new_status)


class CallbackRunObserver:
    """Adapts plain ``on_run_start`` / ``on_run_complete`` / ``on_run_error`` callables."""

    def __init__(
        self,
        on_run_start: Callable[[Run], object] | None = None,
        on_run_complete: Callable[[Run, RunResult], object] | None = None,
        on_run_error: Callable[[Run, str], object] | None = None,
    ) -> None:
        self.on_run_start = on_run_start
        self.on_run_complete = on_run_complete
        self.on_run_error = on_run_error

    def run_started(self, run: Run) -> None:
        if self.on_run_start:
            self.on_run_start(run)

    def run_completed(self, run: Run, result: RunResult) -> None:
        if self.on_run_complete:
            self.on_run_complete(run, result)

    def run_failed(self, run: Run, error: str) -> None:
        if self.on_run_error:
            self.on_run_error(run, error)

    def run_status_changed(self, run: Run, old_status: str, new_status: str) -> None:
        pass


class CompositeRunObserver:
    """Delegates every event to each observer in order, isolating failures."""

    def __init__(self, observers: list[RunObserver]) -> None:
        self._observers = observers

    def run_started(self, run: Run) -> None:
        for obs in self._observers:
            self._call(obs, "run_started", run)

    def run_completed(self, run: Run, result: RunResult) -> None:
        for obs in self._observers:
            self._call(obs, "run_completed", run, result)

    def run_failed(self, run: Run, error: str) -> None:
        for obs in self._observers:
            self._call(obs, "run_failed", run, error)

    def run_status_changed(self, run: Run, old_status: str, new_status: str) -> None:
        for obs in self._observers:
            self._call(obs, "run_status_changed", run, old_status, new_status)

    @staticmethod
    def _call(obs: RunObserver, event: str, *args: object) -> None:
        try:
            getattr(obs, event)(*args)
        except Exception as e:
            logger.warning(
                "observer_callback_failed",
                observer=type(obs).__name__,
                event=event,
                error=str(e),
            )
