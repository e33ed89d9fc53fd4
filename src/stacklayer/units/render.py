"""Rendering of intents into concrete, provider-ready form."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping

from stacklayer.units.models import (
    AttributeRef,
    IntentRef,
    PeerKind,
    ResourceIntent,
    Rule,
    Unit,
)
from stacklayer.units.naming import physical_name

KNOWN_AFTER_APPLY = "(known after apply)"


class _Renderer:
    def __init__(
        self,
        inputs: Mapping[AttributeRef, Any],
        handles: Mapping[str, Any],
        strict: bool,
    ) -> None:
        self._inputs = inputs
        self._handles = handles
        self._strict = strict

    def value(self, value: Any) -> Any:
        if isinstance(value, AttributeRef):
            if value in self._inputs:
                return self._inputs[value]
            if self._strict:
                raise KeyError(f"input {value} has not been resolved")
            return KNOWN_AFTER_APPLY
        if isinstance(value, IntentRef):
            handle = self._handles.get(value.logical_id)
            if handle is None:
                if self._strict:
                    raise KeyError(f"intent {value.logical_id} has not been applied")
                return KNOWN_AFTER_APPLY
            return handle.attribute(value.attribute)
        if isinstance(value, Mapping):
            return {k: self.value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self.value(v) for v in value]
        return value


def render_intent(
    intent: ResourceIntent,
    unit: Unit,
    *,
    app_name: str,
    base_tags: Mapping[str, str],
    inputs: Mapping[AttributeRef, Any],
    handles: Mapping[str, Any],
    strict: bool = True,
) -> ResourceIntent:
    """Return a copy of ``intent`` with every reference replaced by a concrete value."""
    renderer = _Renderer(inputs, handles, strict)
    properties = renderer.value(dict(intent.properties))

    if intent.boundary is not None:
        boundary_ids = {
            i.boundary.name: physical_name(app_name, unit.locality, unit.name, i.logical_id)
            for i in unit.intents
            if i.boundary is not None
        }
        properties["description"] = intent.boundary.description
        properties["ingress"] = [_render_rule(r, renderer, boundary_ids) for r in intent.boundary.ingress]
        properties["egress"] = [_render_rule(r, renderer, boundary_ids) for r in intent.boundary.egress]

    tags = {
        **base_tags,
        **unit.tags,
        **intent.tags,
        "stacklayer:app": app_name,
        "stacklayer:unit": unit.name,
    }
    return replace(
        intent,
        properties=properties,
        tags=tags,
        physical_name=physical_name(app_name, unit.locality, unit.name, intent.logical_id),
        locality=unit.locality,
    )


def _render_rule(rule: Rule, renderer: _Renderer, boundary_ids: Mapping[str, str]) -> dict[str, Any]:
    if rule.peer.kind == PeerKind.BOUNDARY:
        peer = boundary_ids[rule.peer.value]
    else:
        peer = renderer.value(rule.peer.value)
    return {
        "peer_kind": rule.peer.kind.value,
        "peer": peer,
        "port": rule.port,
        "protocol": rule.protocol,
        "description": rule.description,
    }


def collect_exports(
    unit: Unit,
    handles: Mapping[str, Any],
    inputs: Mapping[AttributeRef, Any],
) -> dict[str, Any]:
    """Compute the unit's exported attributes from its realized handles."""
    renderer = _Renderer(inputs, handles, strict=True)
    return {key: renderer.value(spec.source) for key, spec in unit.exports.items()}
