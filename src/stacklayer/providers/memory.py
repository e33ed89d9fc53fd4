"""
In-memory resource provider.

Realizes every resource kind as a record in a StateStore and synthesizes the
identifiers a real cloud API would return (ids, ARNs, endpoints). Backed by a
file-based StateStore it gives the same idempotent behaviour across runs.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
from typing import Any, Iterable

import structlog

from stacklayer.core.errors import ProviderApplyError
from stacklayer.providers.base import Handle, PlanChange, ProviderHealth
from stacklayer.providers.state import ResourceRecord, StateStore
from stacklayer.units.models import Locality, ResourceIntent

logger = structlog.get_logger()

_FALLBACK_LOCALITY = Locality("000000000000", "local")

# kind -> (ARN service, id prefix)
_KIND_META: dict[str, tuple[str, str]] = {
    "vpc": ("ec2", "vpc"),
    "security_group": ("ec2", "sg"),
    "bucket": ("s3", "bucket"),
    "audit_trail": ("cloudtrail", "trail"),
    "threat_detector": ("guardduty", "detector"),
    "security_hub": ("securityhub", "hub"),
    "security_standard": ("securityhub", "standard"),
    "budget": ("budgets", "budget"),
    "secret": ("secretsmanager", "secret"),
    "db_instance": ("rds", "db"),
    "hosted_zone": ("route53", "zone"),
    "certificate": ("acm", "cert"),
    "container_cluster": ("ecs", "cluster"),
    "log_group": ("logs", "lg"),
    "load_balancer": ("elasticloadbalancing", "alb"),
    "listener": ("elasticloadbalancing", "listener"),
    "target_group": ("elasticloadbalancing", "tg"),
    "dns_record": ("route53", "record"),
    "file_system": ("elasticfilesystem", "fs"),
    "file_system_access_point": ("elasticfilesystem", "fsap"),
    "task_definition": ("ecs", "taskdef"),
    "container_service": ("ecs", "svc"),
    "autoscaling_target": ("application-autoscaling", "scaling"),
    "web_acl": ("wafv2", "acl"),
    "cdn_distribution": ("cloudfront", "dist"),
}


def intent_fingerprint(intent: ResourceIntent) -> str:
    """Stable digest of everything that defines the desired state."""
    payload = {
        "kind": intent.kind,
        "properties": intent.properties,
        "tags": intent.tags,
        "locality": str(intent.locality) if intent.locality else None,
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()


class InMemoryProvider:
    name = "memory"

    def __init__(
        self,
        state: StateStore | None = None,
        *,
        fail_on: Iterable[str] = (),
        delay: float = 0.0,
        health: ProviderHealth | None = None,
    ) -> None:
        self.state = state if state is not None else StateStore()
        self.fail_on = set(fail_on)
        self.delay = delay
        self.health = health or ProviderHealth(status="healthy")
        self.apply_calls: list[str] = []
        self.mutations: list[tuple[str, str]] = []
        self.rollbacks: list[str] = []

    async def health_check(self) -> ProviderHealth:
        return self.health

    async def plan(self, intent: ResourceIntent, *, idempotency_key: str) -> PlanChange:
        record = self.state.get(idempotency_key)
        if record is None:
            return PlanChange("create", intent.logical_id, intent.kind, {"physical_id": idempotency_key})
        if record.fingerprint != intent_fingerprint(intent):
            return PlanChange("update", intent.logical_id, intent.kind, {"physical_id": record.physical_id})
        return PlanChange(
            "noop",
            intent.logical_id,
            intent.kind,
            {"physical_id": record.physical_id},
            attributes=dict(record.attributes),
        )

    async def apply(self, intent: ResourceIntent, *, idempotency_key: str) -> Handle:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.apply_calls.append(idempotency_key)

        fingerprint = intent_fingerprint(intent)
        record = self.state.get(idempotency_key)
        if record is not None and record.fingerprint == fingerprint:
            return self._handle(record, intent.locality, "noop")

        if self.fail_on & {intent.logical_id, intent.kind, idempotency_key}:
            raise ProviderApplyError(
                f"Provider rejected {intent.kind} '{intent.logical_id}'",
                logical_id=intent.logical_id,
            )

        action = "update" if record is not None else "create"
        locality = intent.locality or _FALLBACK_LOCALITY
        record = ResourceRecord(
            kind=intent.kind,
            logical_id=intent.logical_id,
            physical_id=idempotency_key,
            locality=str(locality),
            fingerprint=fingerprint,
            attributes=synthesize_attributes(intent, idempotency_key, locality),
        )
        self.state.set(idempotency_key, record)
        self.mutations.append((action, idempotency_key))
        logger.debug("resource_applied", action=action, kind=intent.kind, physical_id=idempotency_key)
        return self._handle(record, locality, action)

    async def rollback(self, handle: Handle) -> None:
        if handle.action != "create":
            return
        if self.state.remove(handle.physical_id):
            self.rollbacks.append(handle.physical_id)
            logger.debug("resource_rolled_back", kind=handle.kind, physical_id=handle.physical_id)

    def _handle(self, record: ResourceRecord, locality: Locality | None, action: str) -> Handle:
        return Handle(
            kind=record.kind,
            logical_id=record.logical_id,
            physical_id=record.physical_id,
            locality=locality or _FALLBACK_LOCALITY,
            attributes=dict(record.attributes),
            action=action,  # type: ignore[arg-type]
        )


def synthesize_attributes(intent: ResourceIntent, key: str, locality: Locality) -> dict[str, Any]:
    """Identifiers a cloud API would hand back for this resource."""
    service, prefix = _KIND_META.get(intent.kind, (intent.kind.replace("_", ""), intent.kind[:4]))
    digest = hashlib.sha256(key.encode()).hexdigest()
    props = intent.properties
    region = locality.region

    attributes: dict[str, Any] = {
        k: v for k, v in props.items() if isinstance(v, (str, int, float, bool))
    }
    attributes.update(
        {
            "id": f"{prefix}-{digest[:17]}",
            "name": key,
            "arn": f"arn:aws:{service}:{region}:{locality.account}:{intent.kind}/{key}",
        }
    )

    kind = intent.kind
    if kind == "vpc":
        azs = int(props.get("max_azs", 2))
        attributes["cidr_block"] = props.get("cidr", "10.0.0.0/16")
        attributes["public_subnet_ids"] = [f"subnet-{digest[i * 8:i * 8 + 8]}" for i in range(azs)]
        attributes["private_subnet_ids"] = [
            f"subnet-{digest[32 + i * 8:40 + i * 8]}" for i in range(azs)
        ]
    elif kind == "db_instance":
        attributes["endpoint_address"] = f"{key}.{digest[:12]}.{region}.rds.amazonaws.com"
        attributes["port"] = props.get("port", 3306)
    elif kind == "load_balancer":
        attributes["dns_name"] = f"{key[:32].rstrip('-')}-{digest[:10]}.{region}.elb.amazonaws.com"
    elif kind == "dns_record":
        zone = props.get("zone_name", "")
        record = props.get("record_name")
        attributes["fqdn"] = f"{record}.{zone}" if record else zone
    elif kind == "hosted_zone":
        attributes["zone_id"] = f"Z{digest[:12].upper()}"
        attributes["zone_name"] = props.get("domain_name", "")
    elif kind == "cdn_distribution":
        attributes["domain_name"] = f"d{digest[:13]}.cloudfront.net"
    elif kind == "certificate" and props.get("certificate_arn"):
        attributes["arn"] = props["certificate_arn"]
    elif kind == "file_system":
        attributes["file_system_id"] = f"fs-{digest[:8]}"
    return attributes
