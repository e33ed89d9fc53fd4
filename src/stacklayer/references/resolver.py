"""
Cross-unit reference resolution.

Exports staged by a unit are invisible until the orchestrator commits the
unit's wave. On commit, values consumed from another locality are written to
a parameter store in each consumer locality; consumers there read the
replicated parameter, never the producer directly.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

import structlog

from stacklayer.core.errors import UnresolvedReferenceError
from stacklayer.graph.dependency import DependencyGraph
from stacklayer.references.parameters import InMemoryParameterStore, ParameterStore
from stacklayer.units.models import AttributeRef, DeferredRef, Locality

logger = structlog.get_logger()


class ResolveMode(str, Enum):
    """What a cross-locality read does when the parameter is not there yet."""

    BLOCK = "block"
    FAIL_FAST = "fail_fast"


@dataclass(frozen=True)
class ReferenceRecord:
    """A cross-locality reference, for audit output."""

    consumer: str
    deferred: DeferredRef

    def to_dict(self) -> dict[str, str]:
        return {
            "consumer": self.consumer,
            "ref": str(self.deferred.ref),
            "producer_locality": str(self.deferred.producer_locality),
            "consumer_locality": str(self.deferred.consumer_locality),
            "parameter": self.deferred.parameter_name,
        }


class ReferenceResolver:
    """Resolves AttributeRefs for consumers, in or across localities."""

    def __init__(
        self,
        store: ParameterStore | None = None,
        *,
        namespace: str = "stacklayer",
        timeout: float = 30.0,
        mode: ResolveMode = ResolveMode.BLOCK,
    ) -> None:
        self._store = store if store is not None else InMemoryParameterStore()
        self._namespace = namespace.strip("/")
        self._timeout = timeout
        self._mode = ResolveMode(mode)
        self._graph: DependencyGraph | None = None
        self._staged: dict[str, dict[str, Any]] = {}
        self._committed: dict[AttributeRef, Any] = {}
        self._replicas: dict[AttributeRef, set[Locality]] = {}
        self._failed: dict[str, str] = {}
        self._failure_events: dict[str, asyncio.Event] = {}
        self._records: list[ReferenceRecord] = []

    @property
    def store(self) -> ParameterStore:
        return self._store

    def prepare(self, graph: DependencyGraph) -> None:
        """Start a run: forget previous values and learn where exports must be replicated."""
        self._graph = graph
        self._staged.clear()
        self._committed.clear()
        self._replicas.clear()
        self._failed.clear()
        self._failure_events.clear()
        self._records.clear()
        for consumer in graph.units:
            for ref in consumer.imports:
                producer = graph.unit(ref.producer)
                if producer.locality != consumer.locality:
                    self._replicas.setdefault(ref, set()).add(consumer.locality)
                    self._records.append(
                        ReferenceRecord(consumer.name, self._deferred(ref, producer.locality, consumer.locality))
                    )

    def parameter_name(self, ref: AttributeRef) -> str:
        return f"/{self._namespace}/exports/{ref.producer}/{ref.key}"

    def import_attribute(self, ref: AttributeRef, consumer_locality: Locality) -> Any:
        """
        Read an export for a consumer in ``consumer_locality``.

        Returns the committed value when producer and consumer share a
        locality, otherwise a DeferredRef to be passed to ``resolve``.

        Raises:
            UnresolvedReferenceError: Unknown producer, or same-locality value not committed yet
        """
        producer = self._producer(ref)
        if producer.locality != consumer_locality:
            return self._deferred(ref, producer.locality, consumer_locality)
        if ref not in self._committed:
            raise UnresolvedReferenceError(
                f"Export {ref} is not available: producer '{ref.producer}' has not completed",
                ref=ref,
            )
        return self._committed[ref]

    async def resolve(self, ref: AttributeRef | DeferredRef, consumer_locality: Locality) -> Any:
        """Return the concrete value of ``ref`` as seen from ``consumer_locality``."""
        token = ref if isinstance(ref, DeferredRef) else self.import_attribute(ref, consumer_locality)
        if not isinstance(token, DeferredRef):
            return token

        producer = token.ref.producer
        self._raise_if_failed(token)

        if self._mode == ResolveMode.FAIL_FAST:
            value = await self._store.get(token.consumer_locality, token.parameter_name)
            if value is None:
                raise UnresolvedReferenceError(
                    f"Export {token.ref} is not yet replicated to {token.consumer_locality}",
                    ref=token.ref,
                )
            return value

        waiter = asyncio.ensure_future(
            self._store.wait(token.consumer_locality, token.parameter_name, self._timeout)
        )
        failure = asyncio.ensure_future(self._failure_event(producer).wait())
        try:
            done, _ = await asyncio.wait({waiter, failure}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            failure.cancel()
            if not waiter.done():
                waiter.cancel()
        if waiter not in done:
            self._raise_if_failed(token)
            raise UnresolvedReferenceError(
                f"Producer '{producer}' failed before {token.ref} was exported", ref=token.ref
            )
        try:
            value = waiter.result()
        except asyncio.TimeoutError:
            raise UnresolvedReferenceError(
                f"Timed out after {self._timeout}s waiting for {token.ref} in {token.consumer_locality}",
                ref=token.ref,
            ) from None
        logger.debug("reference_resolved", ref=str(token.ref), locality=str(token.consumer_locality))
        return value

    def stage(self, unit_name: str, attributes: dict[str, Any]) -> None:
        """Hold a unit's exports until its wave is committed."""
        self._staged[unit_name] = dict(attributes)

    async def commit(self, unit_names: Iterable[str]) -> None:
        """Make staged exports visible and replicate cross-locality ones."""
        for name in unit_names:
            values = self._staged.pop(name, {})
            for key, value in values.items():
                ref = AttributeRef(name, key)
                self._committed[ref] = value
                for locality in sorted(self._replicas.get(ref, ()), key=str):
                    await self._store.put(locality, self.parameter_name(ref), value)
                    logger.debug(
                        "export_replicated",
                        ref=str(ref),
                        locality=str(locality),
                        parameter=self.parameter_name(ref),
                    )

    def mark_failed(self, unit_name: str, reason: str) -> None:
        """Fail every pending and future resolution of ``unit_name``'s exports."""
        self._staged.pop(unit_name, None)
        self._failed[unit_name] = reason
        self._failure_event(unit_name).set()

    def export_table(self) -> dict[str, dict[str, Any]]:
        table: dict[str, dict[str, Any]] = {}
        for ref, value in self._committed.items():
            table.setdefault(ref.producer, {})[ref.key] = value
        return table

    def references(self) -> list[ReferenceRecord]:
        return list(self._records)

    def _producer(self, ref: AttributeRef):
        if self._graph is None or ref.producer not in self._graph:
            raise UnresolvedReferenceError(f"Unknown producer for {ref}", ref=ref)
        return self._graph.unit(ref.producer)

    def _deferred(self, ref: AttributeRef, producer: Locality, consumer: Locality) -> DeferredRef:
        return DeferredRef(
            ref=ref,
            producer_locality=producer,
            consumer_locality=consumer,
            parameter_name=self.parameter_name(ref),
        )

    def _raise_if_failed(self, token: DeferredRef) -> None:
        reason = self._failed.get(token.ref.producer)
        if reason is not None:
            raise UnresolvedReferenceError(
                f"Producer '{token.ref.producer}' failed before {token.ref} was exported: {reason}",
                ref=token.ref,
            )

    def _failure_event(self, unit_name: str) -> asyncio.Event:
        if unit_name not in self._failure_events:
            self._failure_events[unit_name] = asyncio.Event()
        return self._failure_events[unit_name]
