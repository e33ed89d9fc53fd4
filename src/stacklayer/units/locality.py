"""Locality rules for resource intents."""

from __future__ import annotations

import re
from typing import Any, Iterator, Mapping

from stacklayer.core.errors import LocalityMismatchError
from stacklayer.units.models import Locality, ResourceIntent

# CloudFront and its CLOUDFRONT-scoped WAF/ACM resources are global but managed from here
EDGE_REGION = "us-east-1"

_ARN_PATTERN = re.compile(r"^arn:(?P<partition>[^:]+):(?P<service>[^:]+):(?P<region>[^:]*):(?P<account>[^:]*)")


def parse_arn(value: str) -> dict[str, str] | None:
    """Return partition/service/region/account of an ARN, or None for non-ARNs."""
    match = _ARN_PATTERN.match(value)
    if not match:
        return None
    return match.groupdict()


def pinned_region(intent: ResourceIntent) -> str | None:
    """Region a resource kind must live in regardless of its unit, if any."""
    if intent.kind == "cdn_distribution":
        return EDGE_REGION
    if intent.kind == "web_acl" and intent.properties.get("scope") == "CLOUDFRONT":
        return EDGE_REGION
    return None


def check_intent_locality(unit_name: str, locality: Locality, intent: ResourceIntent) -> None:
    """Raise LocalityMismatchError if the intent cannot be provisioned in ``locality``."""
    if intent.locality is not None and intent.locality != locality:
        raise LocalityMismatchError(
            f"Intent '{intent.logical_id}' targets {intent.locality} "
            f"but unit '{unit_name}' deploys to {locality}",
            {"unit": unit_name, "logical_id": intent.logical_id},
        )

    region = pinned_region(intent)
    if region is not None and region != locality.region:
        raise LocalityMismatchError(
            f"{intent.kind} '{intent.logical_id}' must be provisioned in {region}, "
            f"unit '{unit_name}' deploys to {locality.region}",
            {"unit": unit_name, "logical_id": intent.logical_id},
        )

    for key, value in _string_values(intent.properties):
        arn = parse_arn(value)
        if arn is None:
            continue
        if arn["region"] and arn["region"] != locality.region:
            raise LocalityMismatchError(
                f"Property '{key}' of '{intent.logical_id}' references region {arn['region']}; "
                f"unit '{unit_name}' deploys to {locality.region}",
                {"unit": unit_name, "logical_id": intent.logical_id, "property": key},
            )
        if arn["account"] and arn["account"] != locality.account:
            raise LocalityMismatchError(
                f"Property '{key}' of '{intent.logical_id}' references account {arn['account']}; "
                f"unit '{unit_name}' deploys to account {locality.account}",
                {"unit": unit_name, "logical_id": intent.logical_id, "property": key},
            )


def _string_values(value: Any, path: str = "") -> Iterator[tuple[str, str]]:
    if isinstance(value, str):
        yield path, value
    elif isinstance(value, Mapping):
        for k, v in value.items():
            yield from _string_values(v, f"{path}.{k}" if path else str(k))
    elif isinstance(value, (list, tuple)):
        for i, v in enumerate(value):
            yield from _string_values(v, f"{path}[{i}]")
