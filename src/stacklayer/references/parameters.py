"""Locality-scoped parameter stores carrying replicated exports."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from stacklayer.units.models import Locality


class ParameterStore(Protocol):
    """Key/value store readable from a given locality."""

    async def put(self, locality: Locality, name: str, value: Any) -> None:
        ...

    async def get(self, locality: Locality, name: str) -> Any | None:
        ...

    async def wait(self, locality: Locality, name: str, timeout: float) -> Any:
        """Return the value once present; raise TimeoutError after ``timeout`` seconds."""
        ...


class InMemoryParameterStore:
    """In-process store; one namespace per locality."""

    def __init__(self) -> None:
        self._values: dict[tuple[Locality, str], Any] = {}
        self._events: dict[tuple[Locality, str], asyncio.Event] = {}

    async def put(self, locality: Locality, name: str, value: Any) -> None:
        key = (locality, name)
        self._values[key] = value
        self._event(key).set()

    async def get(self, locality: Locality, name: str) -> Any | None:
        return self._values.get((locality, name))

    async def wait(self, locality: Locality, name: str, timeout: float) -> Any:
        key = (locality, name)
        if key not in self._values:
            await asyncio.wait_for(self._event(key).wait(), timeout=timeout)
        return self._values[key]

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Stored values grouped by locality, for audit output."""
        out: dict[str, dict[str, Any]] = {}
        for (locality, name), value in sorted(self._values.items(), key=lambda kv: (str(kv[0][0]), kv[0][1])):
            out.setdefault(str(locality), {})[name] = value
        return out

    def _event(self, key: tuple[Locality, str]) -> asyncio.Event:
        if key not in self._events:
            self._events[key] = asyncio.Event()
        return self._events[key]
