"""
Dependency graph between units.

Edges point from producer to consumer. The graph refuses any edge that would
close a cycle, so the edge set is acyclic at all times.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from stacklayer.core.errors import CyclicDependencyError, DuplicateUnitError, ValidationError
from stacklayer.units.models import Unit

logger = structlog.get_logger()


class EdgeReason(str, Enum):
    """Why an edge exists."""

    EXPLICIT = "explicit"
    IMPORT = "import"


@dataclass(frozen=True)
class DependencyEdge:
    """Producer must complete before consumer starts."""

    producer: str
    consumer: str
    reason: EdgeReason = EdgeReason.EXPLICIT
    detail: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "producer": self.producer,
            "consumer": self.consumer,
            "reason": self.reason.value,
            "detail": self.detail,
        }


class DependencyGraph:
    """Units as nodes, dependency edges between them."""

    def __init__(self) -> None:
        self._units: dict[str, Unit] = {}
        self._order: dict[str, int] = {}
        self._edges: list[DependencyEdge] = []
        self._producers: dict[str, set[str]] = {}
        self._consumers: dict[str, set[str]] = {}

    def add_unit(self, unit: Unit) -> None:
        if unit.name in self._units:
            raise DuplicateUnitError(unit.name)
        self._order[unit.name] = len(self._units)
        self._units[unit.name] = unit
        self._producers[unit.name] = set()
        self._consumers[unit.name] = set()

    def add_edge(
        self,
        producer: str,
        consumer: str,
        reason: EdgeReason = EdgeReason.EXPLICIT,
        detail: str = "",
    ) -> DependencyEdge:
        """Add a producer -> consumer edge, rejecting it if it closes a cycle."""
        for name in (producer, consumer):
            if name not in self._units:
                raise ValidationError(
                    f"Edge {producer} -> {consumer} refers to unknown unit '{name}'",
                    {"producer": producer, "consumer": consumer},
                )

        edge = DependencyEdge(producer, consumer, reason, detail)
        if consumer in self._consumers[producer]:
            if edge not in self._edges:
                self._edges.append(edge)
            return edge

        back_path = self._path(consumer, producer)
        if back_path is not None:
            raise CyclicDependencyError([producer, *back_path])

        self._consumers[producer].add(consumer)
        self._producers[consumer].add(producer)
        self._edges.append(edge)
        logger.debug("edge_added", producer=producer, consumer=consumer, reason=reason.value)
        return edge

    def infer_edges(self, unit: Unit) -> list[DependencyEdge]:
        """Add an IMPORT edge for every export ``unit`` consumes."""
        added = []
        for ref in sorted(unit.imports, key=lambda r: (self._order.get(r.producer, -1), r.key)):
            producer = self._units.get(ref.producer)
            if producer is None:
                raise ValidationError(
                    f"Unit '{unit.name}' imports '{ref}' from an undeclared unit",
                    {"unit": unit.name, "ref": str(ref)},
                )
            if ref.key not in producer.exports:
                raise ValidationError(
                    f"Unit '{unit.name}' imports '{ref}', which '{ref.producer}' does not export",
                    {"unit": unit.name, "ref": str(ref)},
                )
            added.append(self.add_edge(ref.producer, unit.name, EdgeReason.IMPORT, ref.key))
        return added

    def unit(self, name: str) -> Unit:
        try:
            return self._units[name]
        except KeyError:
            raise ValidationError(f"Unknown unit '{name}'") from None

    def __contains__(self, name: object) -> bool:
        return name in self._units

    @property
    def units(self) -> list[Unit]:
        """Units in declaration order."""
        return list(self._units.values())

    @property
    def edges(self) -> list[DependencyEdge]:
        return list(self._edges)

    def producers_of(self, name: str) -> list[str]:
        return self._sorted(self._producers[name])

    def consumers_of(self, name: str) -> list[str]:
        return self._sorted(self._consumers[name])

    def transitive_consumers(self, name: str) -> list[str]:
        seen: set[str] = set()
        stack = list(self._consumers[name])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._consumers[current])
        return self._sorted(seen)

    def find_cycle(self) -> list[str] | None:
        """Return a cycle path (first node repeated at the end) or None."""
        visiting: list[str] = []
        done: set[str] = set()

        def visit(name: str) -> list[str] | None:
            if name in visiting:
                return visiting[visiting.index(name):] + [name]
            if name in done:
                return None
            visiting.append(name)
            for consumer in self._sorted(self._consumers[name]):
                cycle = visit(consumer)
                if cycle:
                    return cycle
            visiting.pop()
            done.add(name)
            return None

        for name in self._units:
            cycle = visit(name)
            if cycle:
                return cycle
        return None

    def topological_order(self) -> list[list[Unit]]:
        """
        Group units into deployment waves.

        A unit's wave is one past the latest wave of its producers, so every
        edge goes from a lower wave to a higher one. Units inside a wave keep
        declaration order.
        """
        cycle = self.find_cycle()
        if cycle:
            raise CyclicDependencyError(cycle)

        remaining = {name: len(producers) for name, producers in self._producers.items()}
        ready = [name for name, count in remaining.items() if count == 0]
        waves: list[list[Unit]] = []
        while ready:
            ready = self._sorted(ready)
            waves.append([self._units[name] for name in ready])
            next_ready = []
            for name in ready:
                for consumer in self._consumers[name]:
                    remaining[consumer] -= 1
                    if remaining[consumer] == 0:
                        next_ready.append(consumer)
            ready = next_ready
        return waves

    def _path(self, start: str, goal: str) -> list[str] | None:
        """Path of unit names from ``start`` to ``goal`` along existing edges."""
        if start == goal:
            return [start]
        parents: dict[str, str] = {}
        queue = [start]
        seen = {start}
        while queue:
            current = queue.pop(0)
            for consumer in self._sorted(self._consumers[current]):
                if consumer in seen:
                    continue
                parents[consumer] = current
                if consumer == goal:
                    path = [goal]
                    while path[-1] != start:
                        path.append(parents[path[-1]])
                    return list(reversed(path))
                seen.add(consumer)
                queue.append(consumer)
        return None

    def _sorted(self, names) -> list[str]:
        return sorted(names, key=self._order.__getitem__)
