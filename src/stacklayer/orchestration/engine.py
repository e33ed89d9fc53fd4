"""
Wave-based deployment engine.

Units in one wave run concurrently; a wave starts only after every unit of
the previous wave has reached a terminal state and its exports have been
committed.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from stacklayer.config.settings import Settings
from stacklayer.core.errors import (
    DeploymentCancelled,
    ProviderApplyError,
    StackLayerError,
    UnresolvedReferenceError,
)
from stacklayer.graph.dependency import DependencyGraph
from stacklayer.logging import bind_unit
from stacklayer.orchestration.cancellation import CancellationToken
from stacklayer.orchestration.context import DeploymentContext
from stacklayer.orchestration.plan_builder import DeploymentPlan, EdgeLike, PlanBuilder
from stacklayer.orchestration.results import (
    DeploymentResult,
    PlanResult,
    ResultCollector,
    RunState,
    UnitOutcome,
    UnitStatus,
)
from stacklayer.providers.base import Handle, ResourceProvider
from stacklayer.providers.registry import ProviderRegistry
from stacklayer.references.parameters import ParameterStore
from stacklayer.references.resolver import ReferenceResolver, ResolveMode
from stacklayer.units.models import Unit
from stacklayer.units.render import collect_exports, render_intent

logger = structlog.get_logger()

Applied = List[Tuple[ResourceProvider, Handle]]


class FailurePolicy(str, Enum):
    """What happens to the rest of a wave when one of its units fails."""

    # Let in-flight units finish
    FINISH = "finish"
    # Cancel in-flight units and roll back what they created
    ROLLBACK = "rollback"


class Orchestrator:
    """Plans a set of units and drives them through wave execution."""

    def __init__(
        self,
        providers: ProviderRegistry,
        context: DeploymentContext,
        *,
        resolver: Optional[ReferenceResolver] = None,
        max_parallel_units: int = 4,
        failure_policy: FailurePolicy = FailurePolicy.FINISH,
        continue_independent_branches: bool = False,
        unit_timeout_seconds: Optional[float] = None,
    ) -> None:
        if max_parallel_units < 1:
            raise ValueError("max_parallel_units must be at least 1")
        self._providers = providers
        self._context = context
        self._resolver = resolver or ReferenceResolver()
        self._planner = PlanBuilder(providers)
        self._max_parallel = max_parallel_units
        self._policy = FailurePolicy(failure_policy)
        self._continue_independent = continue_independent_branches
        self._unit_timeout = unit_timeout_seconds
        self._cancel = CancellationToken()
        self.state: Optional[RunState] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        providers: ProviderRegistry,
        context: DeploymentContext,
        store: Optional[ParameterStore] = None,
    ) -> Orchestrator:
        resolver = ReferenceResolver(
            store,
            namespace=settings.app_name,
            timeout=settings.reference_timeout_seconds,
            mode=ResolveMode(settings.resolve_mode),
        )
        return cls(
            providers,
            context,
            resolver=resolver,
            max_parallel_units=settings.max_parallel_units,
            failure_policy=FailurePolicy(settings.failure_policy),
            continue_independent_branches=settings.continue_independent_branches,
            unit_timeout_seconds=settings.unit_timeout_seconds,
        )

    @property
    def resolver(self) -> ReferenceResolver:
        return self._resolver

    def cancel(self, reason: str = "cancellation requested") -> None:
        """Stop scheduling new waves; in-flight units stop at their next intent."""
        self._cancel.cancel(reason)
        logger.warning("deployment_cancel_requested", reason=reason)

    def plan(self, units: Sequence[Unit], edges: Iterable[EdgeLike] = ()) -> DeploymentPlan:
        return self._planner.build(units, edges)

    async def preview(self, units: Sequence[Unit], edges: Iterable[EdgeLike] = ()) -> PlanResult:
        """Dry run: report per-unit changes without applying anything."""
        plan = self._planner.build(units, edges)
        return await self._planner.preview(plan, self._context, self._resolver)

    async def run(self, units: Sequence[Unit], edges: Iterable[EdgeLike] = ()) -> DeploymentResult:
        """
        Deploy ``units``.

        Planning problems (duplicate names, cycles, unknown imports, missing
        or unreachable providers) are raised before any unit starts. Failures
        during execution are reported in the returned result.
        """
        run_id = uuid.uuid4().hex[:12]
        with structlog.contextvars.bound_contextvars(run_id=run_id, app=self._context.app_name):
            try:
                return await self._execute(run_id, units, edges)
            finally:
                if self.state not in (RunState.COMPLETED, RunState.FAILED):
                    self._set_state(RunState.FAILED)
                # A cancel() issued between runs applies to the next run only
                self._cancel = CancellationToken()

    async def _execute(
        self, run_id: str, units: Sequence[Unit], edges: Iterable[EdgeLike]
    ) -> DeploymentResult:
        started = time.monotonic()
        self._set_state(RunState.PLANNING)
        plan = self._planner.build(units, edges)
        await self._planner.preflight(plan)

        self._resolver.prepare(plan.graph)
        for unit in plan.graph.units:
            unit.attributes = {}
        collector = ResultCollector(run_id, plan.wave_names)
        semaphore = asyncio.Semaphore(self._max_parallel)

        self._set_state(RunState.WAVED_EXECUTION)
        for index, wave in enumerate(plan.waves):
            runnable = self._schedule(wave, plan.graph, collector)
            if not runnable:
                continue

            logger.info("wave_started", wave=index, units=[u.name for u in runnable])
            token = self._cancel.child()
            outcomes = await asyncio.gather(
                *(self._deploy_unit(unit, index, token, semaphore) for unit in runnable)
            )

            completed = []
            for outcome in outcomes:
                collector.record(outcome)
                if outcome.status == UnitStatus.COMPLETED:
                    completed.append(outcome.unit)
                else:
                    self._resolver.mark_failed(outcome.unit, outcome.reason or "failed")
            await self._resolver.commit(completed)
            logger.info("wave_committed", wave=index, completed=completed)

        if self._cancel.cancelled:
            collector.record_cancelled(f"cancelled: {self._cancel.reason}")

        state = RunState.COMPLETED if collector.all_completed else RunState.FAILED
        self._set_state(state)
        result = collector.finalize(
            state,
            time.monotonic() - started,
            exports=self._resolver.export_table(),
            references=[r.to_dict() for r in self._resolver.references()],
        )
        logger.info(
            "deployment_finished",
            state=state.value,
            completed=len(result.completed),
            failed=result.failed,
            skipped=result.skipped,
            root_cause=result.root_cause,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    def _set_state(self, state: RunState) -> None:
        self.state = state
        logger.debug("run_state_changed", state=state.value)

    def _schedule(
        self, wave: List[Unit], graph: DependencyGraph, collector: ResultCollector
    ) -> List[Unit]:
        """Skip units that can no longer run; return the rest."""
        runnable = []
        halted_by = collector.root_cause_unit
        for unit in wave:
            blocked = self._blocked_by(unit, graph, collector)
            if blocked is not None:
                producer, cause = blocked
                collector.record_skipped(unit.name, cause, f"dependency '{producer}' did not complete")
            elif self._cancel.cancelled:
                collector.record_skipped(unit.name, None, f"cancelled: {self._cancel.reason}")
            elif halted_by is not None and not self._continue_independent:
                collector.record_skipped(unit.name, halted_by, f"deployment halted after '{halted_by}' failed")
            else:
                runnable.append(unit)
                continue
            logger.info("unit_skipped", unit=unit.name, reason=collector.outcome(unit.name).reason)
        return runnable

    @staticmethod
    def _blocked_by(
        unit: Unit, graph: DependencyGraph, collector: ResultCollector
    ) -> Optional[Tuple[str, Optional[str]]]:
        for producer in graph.producers_of(unit.name):
            outcome = collector.outcome(producer)
            if outcome.status == UnitStatus.FAILED:
                return producer, producer
            if outcome.status == UnitStatus.SKIPPED:
                return producer, outcome.cause
        return None

    async def _deploy_unit(
        self,
        unit: Unit,
        wave: int,
        token: CancellationToken,
        semaphore: asyncio.Semaphore,
    ) -> UnitOutcome:
        async with semaphore:
            log = bind_unit(unit, wave)
            outcome = UnitOutcome(unit=unit.name, wave=wave)
            applied: Applied = []
            started = time.monotonic()
            log.info("unit_started", intents=len(unit.intents))

            try:
                deployment = self._deploy_intents(unit, token, applied, log)
                if self._unit_timeout is not None:
                    attributes = await asyncio.wait_for(deployment, self._unit_timeout)
                else:
                    attributes = await deployment
            except asyncio.TimeoutError:
                error: StackLayerError = ProviderApplyError(
                    f"Unit '{unit.name}' did not finish within {self._unit_timeout}s",
                    unit=unit.name,
                )
                await self._fail(unit, outcome, error, applied, token, log)
            except DeploymentCancelled as exc:
                outcome.status = UnitStatus.FAILED
                outcome.reason = exc.message
                outcome.cancelled = True
                outcome.rolled_back = await self._rollback(applied, log)
                log.warning("unit_cancelled", reason=exc.message, rolled_back=outcome.rolled_back)
            except (ProviderApplyError, UnresolvedReferenceError) as exc:
                await self._fail(unit, outcome, exc, applied, token, log)
            else:
                unit.attributes = attributes
                self._resolver.stage(unit.name, attributes)
                outcome.status = UnitStatus.COMPLETED
                log.info(
                    "unit_completed",
                    exports=sorted(attributes),
                    changed=sum(1 for _, h in applied if h.action != "noop"),
                )

            outcome.resources = [handle for _, handle in applied]
            outcome.duration_seconds = time.monotonic() - started
            return outcome

    async def _deploy_intents(
        self,
        unit: Unit,
        token: CancellationToken,
        applied: Applied,
        log: Any,
    ) -> Dict[str, Any]:
        token.raise_if_cancelled()
        inputs = {}
        for ref in sorted(unit.imports, key=str):
            inputs[ref] = await self._resolver.resolve(ref, unit.locality)

        handles: Dict[str, Handle] = {}
        for intent in unit.intents:
            token.raise_if_cancelled()
            try:
                provider = self._providers.for_kind(intent.kind)
                rendered = render_intent(
                    intent,
                    unit,
                    app_name=self._context.app_name,
                    base_tags=self._context.common_tags,
                    inputs=inputs,
                    handles=handles,
                )
                handle = await provider.apply(rendered, idempotency_key=rendered.physical_name)
            except ProviderApplyError as exc:
                raise ProviderApplyError(
                    exc.message, unit=unit.name, logical_id=intent.logical_id, details=exc.details
                ) from exc
            except (DeploymentCancelled, UnresolvedReferenceError):
                raise
            except StackLayerError as exc:
                raise ProviderApplyError(
                    exc.message, unit=unit.name, logical_id=intent.logical_id, details=exc.details
                ) from exc
            except Exception as exc:
                raise ProviderApplyError(
                    f"{intent.kind} '{intent.logical_id}' failed: {exc}",
                    unit=unit.name,
                    logical_id=intent.logical_id,
                ) from exc
            applied.append((provider, handle))
            handles[intent.logical_id] = handle
            log.debug("intent_applied", logical_id=intent.logical_id, action=handle.action)

        try:
            return collect_exports(unit, handles, inputs)
        except KeyError as exc:
            raise ProviderApplyError(
                f"Unit '{unit.name}' could not compute its exports: {exc.args[0]}",
                unit=unit.name,
            ) from exc

    async def _fail(
        self,
        unit: Unit,
        outcome: UnitOutcome,
        error: StackLayerError,
        applied: Applied,
        token: CancellationToken,
        log: Any,
    ) -> None:
        outcome.status = UnitStatus.FAILED
        outcome.reason = error.message
        log.error("unit_failed", error_type=type(error).__name__, reason=error.message)
        if self._policy == FailurePolicy.ROLLBACK:
            token.cancel(f"unit '{unit.name}' failed")
            outcome.rolled_back = await self._rollback(applied, log)

    async def _rollback(self, applied: Applied, log: Any) -> List[str]:
        """Remove resources this pass created, newest first."""
        removed = []
        for provider, handle in reversed(applied):
            if handle.action != "create":
                continue
            try:
                await provider.rollback(handle)
            except Exception as exc:
                log.error(
                    "rollback_failed",
                    physical_id=handle.physical_id,
                    error_type=type(exc).__name__,
                    message=str(exc),
                )
                continue
            removed.append(handle.physical_id)
        return removed


def deploy(
    orchestrator: Orchestrator, units: Sequence[Unit], edges: Iterable[EdgeLike] = ()
) -> DeploymentResult:
    """Synchronous entry point around ``Orchestrator.run``."""
    return asyncio.run(orchestrator.run(units, edges))
