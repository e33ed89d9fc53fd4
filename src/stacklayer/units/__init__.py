"""Units: declarations of independently deployable bundles of resource intents."""

from stacklayer.units.declare import declare, export, find_attribute_refs, handle_for
from stacklayer.units.models import (
    AttributeRef,
    DeferredRef,
    ExportSpec,
    IntentRef,
    Locality,
    Peer,
    PeerKind,
    ResourceIntent,
    Rule,
    SecurityBoundary,
    Unit,
    UnitHandle,
)
from stacklayer.units.naming import physical_name

__all__ = [
    "AttributeRef",
    "DeferredRef",
    "ExportSpec",
    "IntentRef",
    "Locality",
    "Peer",
    "PeerKind",
    "ResourceIntent",
    "Rule",
    "SecurityBoundary",
    "Unit",
    "UnitHandle",
    "declare",
    "export",
    "find_attribute_refs",
    "handle_for",
    "physical_name",
]
