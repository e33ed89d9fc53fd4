"""Composition-root collection of declared units."""

from __future__ import annotations

from typing import Any, Iterable, List, Union

from stacklayer.graph.dependency import DependencyEdge, DependencyGraph, EdgeReason
from stacklayer.orchestration.context import DeploymentContext
from stacklayer.units.declare import declare, handle_for
from stacklayer.units.models import Locality, ResourceIntent, Unit, UnitHandle

UnitLike = Union[str, Unit, UnitHandle]


class Blueprint:
    """Declares units against an explicit context and graph.

    Declaring registers the unit as a node straight away, so a duplicate name
    fails at the declaration site rather than later in planning.
    """

    def __init__(self, context: DeploymentContext) -> None:
        self.context = context
        self._graph = DependencyGraph()
        self._edges: List[DependencyEdge] = []

    def declare(
        self,
        name: str,
        locality: Locality,
        intents: Iterable[ResourceIntent],
        **kwargs: Any,
    ) -> UnitHandle:
        unit = declare(name, locality, intents, **kwargs)
        self._graph.add_unit(unit)
        return handle_for(unit)

    def add_dependency(self, producer: UnitLike, consumer: UnitLike, detail: str = "") -> None:
        """Explicit ordering edge: ``consumer`` deploys after ``producer``."""
        self._edges.append(
            DependencyEdge(_name(producer), _name(consumer), EdgeReason.EXPLICIT, detail)
        )

    @property
    def units(self) -> List[Unit]:
        return self._graph.units

    @property
    def edges(self) -> List[DependencyEdge]:
        return list(self._edges)

    def unit(self, name: str) -> Unit:
        return self._graph.unit(name)


def _name(value: UnitLike) -> str:
    return value if isinstance(value, str) else value.name
