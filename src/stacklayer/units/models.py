"""
Unit data models.

Plain, immutable declarations: localities, resource intents, security
boundaries and the reference types that connect units to each other.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


@dataclass(frozen=True)
class Locality:
    """Account + region pair a unit's resources belong to."""

    account: str
    region: str

    def __str__(self) -> str:
        return f"{self.account}/{self.region}"


@dataclass(frozen=True)
class AttributeRef:
    """Reference to another unit's exported attribute."""

    producer: str
    key: str

    def __str__(self) -> str:
        return f"{self.producer}.{self.key}"


@dataclass(frozen=True)
class IntentRef:
    """Reference to an attribute of another intent's handle within the same unit."""

    logical_id: str
    attribute: str

    def __str__(self) -> str:
        return f"{self.logical_id}.{self.attribute}"


@dataclass(frozen=True)
class DeferredRef:
    """Placeholder for a cross-locality export, resolvable once the producer completes."""

    ref: AttributeRef
    producer_locality: Locality
    consumer_locality: Locality
    parameter_name: str

    def __str__(self) -> str:
        return f"{self.ref} ({self.producer_locality} -> {self.consumer_locality})"


class PeerKind(str, Enum):
    """Kinds of traffic source/destination a rule can name."""

    CIDR = "cidr"
    PREFIX_LIST = "prefix_list"
    BOUNDARY = "boundary"
    ANY_IPV4 = "any_ipv4"


@dataclass(frozen=True)
class Peer:
    """Traffic peer of a security rule. ``value`` may be an imported AttributeRef."""

    kind: PeerKind
    value: str | AttributeRef

    @classmethod
    def ipv4(cls, cidr: str | AttributeRef) -> Peer:
        return cls(PeerKind.CIDR, cidr)

    @classmethod
    def prefix_list(cls, prefix_list_id: str) -> Peer:
        return cls(PeerKind.PREFIX_LIST, prefix_list_id)

    @classmethod
    def boundary(cls, name: str) -> Peer:
        return cls(PeerKind.BOUNDARY, name)

    @classmethod
    def any_ipv4(cls) -> Peer:
        return cls(PeerKind.ANY_IPV4, "0.0.0.0/0")


@dataclass(frozen=True)
class Rule:
    """A single ingress or egress rule."""

    peer: Peer
    port: int
    protocol: str = "tcp"
    description: str = ""


@dataclass(frozen=True)
class SecurityBoundary:
    """Named set of ingress/egress rules scoped to a network perimeter.

    Default-deny: traffic not matched by a rule is not allowed.
    """

    name: str
    description: str = ""
    ingress: tuple[Rule, ...] = ()
    egress: tuple[Rule, ...] = ()

    def allows_ingress(self, source: Peer, port: int, protocol: str = "tcp") -> bool:
        return _matches(self.ingress, source, port, protocol)

    def allows_egress(self, destination: Peer, port: int, protocol: str = "tcp") -> bool:
        return _matches(self.egress, destination, port, protocol)


def _matches(rules: tuple[Rule, ...], peer: Peer, port: int, protocol: str) -> bool:
    for rule in rules:
        if rule.port != port or rule.protocol != protocol:
            continue
        if rule.peer.kind == PeerKind.ANY_IPV4 and peer.kind in (PeerKind.CIDR, PeerKind.ANY_IPV4):
            return True
        if rule.peer == peer:
            return True
    return False


@dataclass(frozen=True)
class ResourceIntent:
    """Typed description of a desired resource state."""

    kind: str
    logical_id: str
    properties: Mapping[str, Any] = field(default_factory=dict)
    boundary: SecurityBoundary | None = None
    tags: Mapping[str, str] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    locality: Locality | None = None
    # Set on rendered intents only
    physical_name: str | None = None


@dataclass(frozen=True)
class ExportSpec:
    """Declared source of an exported attribute."""

    source: Any
    description: str = ""


@dataclass
class Unit:
    """Independently deployable bundle of resource intents."""

    name: str
    locality: Locality
    intents: tuple[ResourceIntent, ...]
    exports: dict[str, ExportSpec] = field(default_factory=dict)
    imports: frozenset[AttributeRef] = frozenset()
    depends_on: tuple[str, ...] = ()
    tags: dict[str, str] = field(default_factory=dict)
    description: str = ""

    # Populated during this unit's own deployment pass
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def boundaries(self) -> dict[str, SecurityBoundary]:
        """Security boundaries declared by this unit's intents, by name."""
        return {i.boundary.name: i.boundary for i in self.intents if i.boundary is not None}

    def export(self, key: str) -> AttributeRef:
        from stacklayer.units.declare import export

        return export(self, key)


@dataclass(frozen=True)
class UnitHandle:
    """What the composition root holds on to after declaring a unit."""

    name: str
    locality: Locality
    export_keys: frozenset[str]

    def export(self, key: str) -> AttributeRef:
        from stacklayer.units.declare import export

        return export(self, key)
