from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Protocol

from stacklayer.units.models import Locality, ResourceIntent


@dataclass(frozen=True)
class Handle:
    """Identifying attributes of a realized resource."""

    kind: str
    logical_id: str
    physical_id: str
    locality: Locality
    attributes: Mapping[str, Any] = field(default_factory=dict)
    action: Literal["create", "update", "noop"] = field(default="noop", compare=False)

    def attribute(self, name: str) -> Any:
        try:
            return self.attributes[name]
        except KeyError:
            raise KeyError(
                f"{self.kind} '{self.logical_id}' has no attribute '{name}' "
                f"(available: {', '.join(sorted(self.attributes))})"
            ) from None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "logical_id": self.logical_id,
            "physical_id": self.physical_id,
            "locality": str(self.locality),
            "attributes": dict(self.attributes),
        }


@dataclass(frozen=True)
class PlanChange:
    """Represents a single change detected during planning."""

    action: Literal["create", "update", "noop"]
    logical_id: str
    kind: str
    details: dict[str, Any] = field(default_factory=dict)
    # Attributes of the existing resource when the change is a noop
    attributes: Mapping[str, Any] | None = field(default=None, compare=False)


@dataclass(frozen=True)
class ProviderHealth:
    status: Literal["healthy", "degraded", "unreachable"]
    details: str | None = None


class ResourceProvider(Protocol):
    """
    Contract the orchestrator requires of providers.

    ``apply`` is idempotent: reapplying an unchanged intent under the same
    key returns an equal Handle with action "noop" and no side effect.
    ``rollback`` removes a resource created by ``apply`` and is a no-op for
    resources it did not create or already removed.
    """

    name: str

    async def health_check(self) -> ProviderHealth:
        ...

    async def plan(self, intent: ResourceIntent, *, idempotency_key: str) -> PlanChange:
        ...

    async def apply(self, intent: ResourceIntent, *, idempotency_key: str) -> Handle:
        ...

    async def rollback(self, handle: Handle) -> None:
        ...
