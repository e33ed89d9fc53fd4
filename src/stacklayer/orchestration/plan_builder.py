"""Builds the dependency graph and wave schedule for a set of units."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple, Union

import structlog

from stacklayer.core.errors import ProviderError
from stacklayer.graph.dependency import DependencyEdge, DependencyGraph, EdgeReason
from stacklayer.orchestration.context import DeploymentContext
from stacklayer.orchestration.results import PlanResult
from stacklayer.providers.base import Handle, PlanChange
from stacklayer.providers.registry import ProviderRegistry
from stacklayer.references.resolver import ReferenceResolver
from stacklayer.units.models import AttributeRef, Unit
from stacklayer.units.render import KNOWN_AFTER_APPLY, collect_exports, render_intent

logger = structlog.get_logger()

EdgeLike = Union[DependencyEdge, Tuple[str, str]]


@dataclass
class DeploymentPlan:
    """A validated graph and the waves it deploys in."""

    graph: DependencyGraph
    waves: List[List[Unit]]

    @property
    def wave_names(self) -> List[List[str]]:
        return [[u.name for u in wave] for wave in self.waves]

    def wave_of(self, name: str) -> int:
        for index, wave in enumerate(self.waves):
            if any(u.name == name for u in wave):
                return index
        raise KeyError(name)


class PlanBuilder:
    """Validates units and edges and computes deployment waves."""

    def __init__(self, providers: ProviderRegistry) -> None:
        self._providers = providers

    def build(self, units: Sequence[Unit], edges: Iterable[EdgeLike] = ()) -> DeploymentPlan:
        """
        Build the plan.

        Raises:
            DuplicateUnitError: Two units share a name
            CyclicDependencyError: An edge would close a cycle
            ValidationError: An import names an unknown unit or export
            ConfigurationError: No provider for an intent kind
        """
        graph = DependencyGraph()
        for unit in units:
            graph.add_unit(unit)

        for unit in graph.units:
            graph.infer_edges(unit)
            for producer in unit.depends_on:
                graph.add_edge(producer, unit.name, EdgeReason.EXPLICIT, "depends_on")

        for edge in edges:
            if isinstance(edge, DependencyEdge):
                graph.add_edge(edge.producer, edge.consumer, edge.reason, edge.detail)
            else:
                producer, consumer = edge
                graph.add_edge(producer, consumer, EdgeReason.EXPLICIT)

        for unit in graph.units:
            for intent in unit.intents:
                self._providers.for_kind(intent.kind)

        waves = graph.topological_order()
        plan = DeploymentPlan(graph=graph, waves=waves)
        logger.info(
            "plan_built",
            units=len(graph.units),
            edges=len(graph.edges),
            waves=plan.wave_names,
        )
        return plan

    async def preflight(self, plan: DeploymentPlan) -> None:
        """Health-check every provider the plan uses."""
        needed = {intent.kind for unit in plan.graph.units for intent in unit.intents}
        checked: List[object] = []
        for kind in sorted(needed):
            provider = self._providers.for_kind(kind)
            if any(p is provider for p in checked):
                continue
            checked.append(provider)
            health = await provider.health_check()
            if health.status == "unreachable":
                raise ProviderError(
                    f"Provider '{provider.name}' is unreachable",
                    {"provider": provider.name, "details": health.details},
                )
            if health.status == "degraded":
                logger.warning("provider_degraded", provider=provider.name, details=health.details)

    async def preview(
        self,
        plan: DeploymentPlan,
        context: DeploymentContext,
        resolver: ReferenceResolver | None = None,
    ) -> PlanResult:
        """
        Ask providers what applying the plan would change, without applying.

        Exports of units whose intents are all unchanged are taken from the
        existing resources, so their consumers render with concrete values.
        Anything else renders as known after apply.
        """
        result = PlanResult(
            app_name=context.app_name,
            waves=plan.wave_names,
            edges=plan.graph.edges,
        )
        if resolver is not None:
            resolver.prepare(plan.graph)
            result.references = [r.to_dict() for r in resolver.references()]

        known: Dict[AttributeRef, Any] = {}
        for unit in (u for wave in plan.waves for u in wave):
            handles: Dict[str, Handle] = {}
            changes: List[PlanChange] = []
            for intent in unit.intents:
                try:
                    rendered = render_intent(
                        intent,
                        unit,
                        app_name=context.app_name,
                        base_tags=context.common_tags,
                        inputs=known,
                        handles=handles,
                        strict=False,
                    )
                    provider = self._providers.for_kind(intent.kind)
                    change = await provider.plan(rendered, idempotency_key=rendered.physical_name)
                except ProviderError as exc:
                    result.errors.append(f"{unit.name}/{intent.logical_id}: {exc.message}")
                    continue
                except KeyError as exc:
                    result.errors.append(f"{unit.name}/{intent.logical_id}: {exc.args[0]}")
                    continue
                if change.action == "noop" and change.attributes is not None:
                    handles[intent.logical_id] = Handle(
                        kind=intent.kind,
                        logical_id=intent.logical_id,
                        physical_id=change.details.get("physical_id", rendered.physical_name),
                        locality=unit.locality,
                        attributes=change.attributes,
                    )
                if _has_unknowns(rendered.properties):
                    change = PlanChange(
                        action=change.action,
                        logical_id=change.logical_id,
                        kind=change.kind,
                        details={**change.details, "unresolved": True},
                    )
                changes.append(change)
            result.changes[unit.name] = changes

            if len(handles) == len(unit.intents):
                try:
                    values = collect_exports(unit, handles, known)
                except KeyError:
                    continue
                known.update({AttributeRef(unit.name, key): value for key, value in values.items()})
        return result


def _has_unknowns(value) -> bool:
    if value == KNOWN_AFTER_APPLY:
        return True
    if isinstance(value, dict):
        return any(_has_unknowns(v) for v in value.values())
    if isinstance(value, list):
        return any(_has_unknowns(v) for v in value)
    return False
