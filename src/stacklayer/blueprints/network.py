"""VPC shared by the database and compute units."""

from __future__ import annotations

from stacklayer.orchestration.blueprint import Blueprint
from stacklayer.units import IntentRef, ResourceIntent, UnitHandle

UNIT_NAME = "Network"


def declare_network(blueprint: Blueprint, governance: UnitHandle) -> UnitHandle:
    ctx = blueprint.context
    vpc = ResourceIntent(
        "vpc",
        "CmsVpc",
        {
            "cidr": "10.0.0.0/16",
            "max_azs": 2,
            "nat_gateways": 1,
            "subnets": [
                {"name": "public-subnet", "type": "PUBLIC"},
                {"name": "private-subnet", "type": "PRIVATE_WITH_EGRESS"},
            ],
        },
    )
    return blueprint.declare(
        UNIT_NAME,
        ctx.primary,
        [vpc],
        exports={
            "vpc_id": IntentRef("CmsVpc", "id"),
            "vpc_cidr": IntentRef("CmsVpc", "cidr_block"),
            "public_subnet_ids": IntentRef("CmsVpc", "public_subnet_ids"),
            "private_subnet_ids": IntentRef("CmsVpc", "private_subnet_ids"),
        },
        depends_on=(governance.name,),
    )
