"""
Unit declaration.

``declare`` turns plain data into a validated Unit. It never provisions and
never touches a graph; registering the unit is the caller's job.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping

from stacklayer.core.errors import ValidationError
from stacklayer.units.locality import check_intent_locality
from stacklayer.units.models import (
    AttributeRef,
    ExportSpec,
    IntentRef,
    Locality,
    PeerKind,
    ResourceIntent,
    SecurityBoundary,
    Unit,
    UnitHandle,
)


def declare(
    name: str,
    locality: Locality,
    intents: Iterable[ResourceIntent],
    *,
    exports: Mapping[str, Any] | None = None,
    depends_on: Iterable[str] = (),
    tags: Mapping[str, str] | None = None,
    description: str = "",
) -> Unit:
    """
    Declare a unit.

    Args:
        name: Unique unit name within a run
        locality: Account/region every intent must be valid in
        intents: Resource intents, applied in order
        exports: Export name -> ExportSpec, IntentRef, AttributeRef or literal
        depends_on: Names of units that must complete first
        tags: Tags merged into every intent of the unit
        description: Free-form description

    Raises:
        ValidationError: Structural problems (duplicate logical ids, bad refs, bad rules)
        LocalityMismatchError: An intent is not valid in ``locality``
    """
    if not name:
        raise ValidationError("Unit name is required")

    intents = tuple(intents)
    seen: set[str] = set()
    boundary_names = {i.boundary.name for i in intents if i.boundary is not None}

    for intent in intents:
        if intent.logical_id in seen:
            raise ValidationError(
                f"Logical id '{intent.logical_id}' is declared twice in unit '{name}'",
                {"unit": name},
            )
        check_intent_locality(name, locality, intent)
        for dep in intent.depends_on:
            if dep not in seen:
                raise ValidationError(
                    f"Intent '{intent.logical_id}' depends on '{dep}', which is not declared before it",
                    {"unit": name},
                )
        for ref in _intent_refs(intent.properties):
            if ref.logical_id not in seen:
                raise ValidationError(
                    f"Intent '{intent.logical_id}' references '{ref}', which is not declared before it",
                    {"unit": name},
                )
        if intent.boundary is not None:
            validate_boundary(name, intent.boundary, boundary_names)
        seen.add(intent.logical_id)

    export_specs = {
        key: value if isinstance(value, ExportSpec) else ExportSpec(source=value)
        for key, value in (exports or {}).items()
    }
    for key, spec in export_specs.items():
        if isinstance(spec.source, IntentRef) and spec.source.logical_id not in seen:
            raise ValidationError(
                f"Export '{key}' of unit '{name}' references unknown intent '{spec.source.logical_id}'",
                {"unit": name},
            )

    imports = frozenset(find_attribute_refs([i.properties for i in intents]))
    imports |= frozenset(
        rule.peer.value
        for i in intents
        if i.boundary is not None
        for rule in (*i.boundary.ingress, *i.boundary.egress)
        if isinstance(rule.peer.value, AttributeRef)
    )
    imports |= frozenset(s.source for s in export_specs.values() if isinstance(s.source, AttributeRef))
    for ref in imports:
        if ref.producer == name:
            raise ValidationError(f"Unit '{name}' cannot import its own export '{ref}'")

    return Unit(
        name=name,
        locality=locality,
        intents=intents,
        exports=export_specs,
        imports=imports,
        depends_on=tuple(depends_on),
        tags=dict(tags or {}),
        description=description,
    )


def handle_for(unit: Unit) -> UnitHandle:
    return UnitHandle(name=unit.name, locality=unit.locality, export_keys=frozenset(unit.exports))


def export(unit: Unit | UnitHandle, key: str) -> AttributeRef:
    """Reference an exported attribute of ``unit``."""
    keys = unit.export_keys if isinstance(unit, UnitHandle) else unit.exports.keys()
    if key not in keys:
        raise ValidationError(
            f"Unit '{unit.name}' does not export '{key}'",
            {"unit": unit.name, "exports": sorted(keys)},
        )
    return AttributeRef(producer=unit.name, key=key)


def validate_boundary(unit_name: str, boundary: SecurityBoundary, known: set[str]) -> None:
    """Every rule must name a concrete peer and a concrete port."""
    for direction, rules in (("ingress", boundary.ingress), ("egress", boundary.egress)):
        for rule in rules:
            if not isinstance(rule.port, int) or not 1 <= rule.port <= 65535:
                raise ValidationError(
                    f"{direction} rule on boundary '{boundary.name}' has invalid port {rule.port!r}",
                    {"unit": unit_name},
                )
            if not rule.peer.value:
                raise ValidationError(
                    f"{direction} rule on boundary '{boundary.name}' has no source/destination",
                    {"unit": unit_name},
                )
            if rule.peer.kind == PeerKind.BOUNDARY and rule.peer.value not in known:
                raise ValidationError(
                    f"Boundary '{boundary.name}' refers to unknown boundary '{rule.peer.value}'",
                    {"unit": unit_name},
                )


def find_attribute_refs(value: Any) -> Iterator[AttributeRef]:
    """Yield every AttributeRef nested in ``value``."""
    yield from _walk(value, AttributeRef)


def _intent_refs(value: Any) -> Iterator[IntentRef]:
    yield from _walk(value, IntentRef)


def _walk(value: Any, kind: type) -> Iterator[Any]:
    if isinstance(value, kind):
        yield value
    elif isinstance(value, Mapping):
        for v in value.values():
            yield from _walk(v, kind)
    elif isinstance(value, (list, tuple)):
        for v in value:
            yield from _walk(v, kind)
