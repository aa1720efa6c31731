"""Evaluator registry: built-in and custom evaluators, run side by side.

Custom evaluators live in importable modules that expose ``EVALUATORS``, a
list of Evaluator instances or subclasses::

    # my_checks.py
    class NoApologies(Evaluator):
        type = "no-apologies"
        ...

    EVALUATORS = [NoApologies]

and are listed in ``CONVOPROBE_EVALUATOR_MODULES``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import importlib
from typing import Any

import structlog

from convoprobe.config import settings
from convoprobe.core.exceptions import EvaluatorLoadError, ValidationError
from convoprobe.evaluation.builtin import BUILTIN_EVALUATORS
from convoprobe.evaluation.types import AggregatedEvaluation, Evaluator, EvaluatorContext
from convoprobe.schemas.common import EvaluatorKind
from convoprobe.schemas.run import EvaluatorResultEntry
from convoprobe.schemas.scenario import ScenarioEvaluator

logger = structlog.get_logger()


class EvaluatorRegistry:
    """Holds every known evaluator type. Types are unique; nothing can be overridden."""

    def __init__(self) -> None:
        self._evaluators: dict[str, tuple[Evaluator, bool]] = {}

    def register(self, evaluator: Evaluator, builtin: bool = False) -> None:
        if not evaluator.type:
            raise ValidationError("Evaluator must define a type")
        if evaluator.type in self._evaluators:
            _, existing_builtin = self._evaluators[evaluator.type]
            source = "built-in" if existing_builtin else "custom"
            raise ValidationError(
                f'Evaluator type "{evaluator.type}" is already registered ({source}). '
                "Custom evaluators cannot override existing types."
            )
        self._evaluators[evaluator.type] = (evaluator, builtin)

    def get(self, evaluator_type: str) -> Evaluator | None:
        entry = self._evaluators.get(evaluator_type)
        return entry[0] if entry else None

    def list(self) -> list[dict[str, Any]]:
        return [
            {
                "type": evaluator.type,
                "label": evaluator.label,
                "description": evaluator.description,
                "kind": EvaluatorKind(evaluator.kind).value,
                "builtin": builtin,
                "auto": evaluator.auto,
            }
            for evaluator, builtin in self._evaluators.values()
        ]

    async def run(
        self,
        scenario_evaluators: list[ScenarioEvaluator],
        context: EvaluatorContext,
    ) -> list[EvaluatorResultEntry]:
        """Run auto evaluators plus the scenario's declared ones, concurrently.

        Never raises: unknown types and crashing evaluators come back as
        failed assertion entries.
        """
        entries: list[EvaluatorResultEntry] = []
        active: list[tuple[Evaluator, dict[str, Any]]] = []
        declared = {se.type for se in scenario_evaluators}

        for evaluator, _ in self._evaluators.values():
            if evaluator.auto and evaluator.type not in declared:
                active.append((evaluator, {}))

        seen: set[str] = set()
        for se in scenario_evaluators:
            if se.type in seen:
                continue
            seen.add(se.type)
            evaluator = self.get(se.type)
            if evaluator is None:
                entries.append(EvaluatorResultEntry(
                    type=se.type,
                    kind=EvaluatorKind.ASSERTION,
                    label=se.type,
                    success=False,
                    reason=f'Unknown evaluator type "{se.type}"',
                ))
                continue
            active.append((evaluator, se.config))

        results = await asyncio.gather(
            *(self._run_one(evaluator, dataclasses.replace(context, config=dict(config)))
              for evaluator, config in active)
        )
        entries.extend(results)
        return entries

    @staticmethod
    async def _run_one(evaluator: Evaluator, ctx: EvaluatorContext) -> EvaluatorResultEntry:
        name = str(evaluator.type)
        label = evaluator.label or name
        try:
            kind = EvaluatorKind(evaluator.kind)
            outcome = await evaluator.evaluate(ctx)
            # Metrics measure; they never fail a run.
            return EvaluatorResultEntry(
                type=name,
                kind=kind,
                label=label,
                success=True if kind == EvaluatorKind.METRIC else outcome.success,
                value=outcome.value,
                reason=outcome.reason,
                metadata=outcome.metadata,
            )
        except Exception as e:
            logger.warning("evaluator_failed", evaluator_type=name, error=str(e))
            return EvaluatorResultEntry(
                type=name,
                kind=EvaluatorKind.ASSERTION,
                label=str(label),
                success=False,
                reason=f"Evaluator error: {e}",
            )


def aggregate(entries: list[EvaluatorResultEntry]) -> AggregatedEvaluation:
    """All assertions must pass; score is the minimum assertion value."""
    success = True
    score: float | None = None
    first_failure: str | None = None
    metrics: dict[str, float] = {}

    for entry in entries:
        if entry.kind == EvaluatorKind.METRIC:
            if entry.value is not None:
                metrics[entry.type] = entry.value
            continue
        if not entry.success:
            success = False
            if first_failure is None:
                first_failure = entry.reason
        if entry.value is not None:
            score = entry.value if score is None else min(score, entry.value)

    return AggregatedEvaluation(
        success=success,
        reason=first_failure or "All evaluators passed",
        score=score,
        metrics=metrics,
        evaluator_results=list(entries),
    )


def load_custom_evaluators(registry: EvaluatorRegistry, module_paths: list[str]) -> None:
    for path in module_paths:
        try:
            module = importlib.import_module(path)
        except ImportError as e:
            raise EvaluatorLoadError(f'Evaluator module "{path}" could not be loaded: {e}') from e

        exported = getattr(module, "EVALUATORS", None)
        if not isinstance(exported, (list, tuple)):
            raise EvaluatorLoadError(
                f'Evaluator module "{path}" must expose an EVALUATORS list'
            )

        for item in exported:
            evaluator = item() if isinstance(item, type) and issubclass(item, Evaluator) else item
            if not isinstance(evaluator, Evaluator):
                raise EvaluatorLoadError(
                    f'Evaluator module "{path}" exports {item!r}, which is not an Evaluator'
                )
            registry.register(evaluator, builtin=False)

        logger.info("custom_evaluators_loaded", module=path, count=len(exported))


def create_registry(module_paths: list[str] | None = None) -> EvaluatorRegistry:
    """Registry with built-ins plus custom modules (defaults to settings)."""
    registry = EvaluatorRegistry()
    for evaluator in BUILTIN_EVALUATORS:
        registry.register(evaluator, builtin=True)
    load_custom_evaluators(
        registry,
        module_paths if module_paths is not None else settings.evaluator_modules,
    )
    return registry
