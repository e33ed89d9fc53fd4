"""WordPress database: credentials secret, MySQL boundary and instance."""

from __future__ import annotations

from stacklayer.orchestration.blueprint import Blueprint
from stacklayer.units import IntentRef, Peer, ResourceIntent, Rule, SecurityBoundary, UnitHandle

UNIT_NAME = "Database"
MYSQL_PORT = 3306


def declare_database(blueprint: Blueprint, network: UnitHandle) -> UnitHandle:
    ctx = blueprint.context
    vpc_cidr = network.export("vpc_cidr")

    db_boundary = SecurityBoundary(
        name="db",
        description="MySQL ingress only from app tier",
        ingress=(Rule(Peer.ipv4(vpc_cidr), MYSQL_PORT, description="MySQL from inside VPC"),),
    )

    intents = [
        ResourceIntent(
            "secret",
            "WordpressDbSecret",
            {
                "secret_name": "wordpress-db-credentials",
                "secret_string_template": {"username": "wordpress"},
                "generate_string_key": "password",
                "exclude_punctuation": True,
                "include_space": False,
            },
        ),
        ResourceIntent(
            "security_group",
            "DbSg",
            {"vpc_id": network.export("vpc_id")},
            boundary=db_boundary,
        ),
        ResourceIntent(
            "db_instance",
            "WordpressRDS",
            {
                "engine": "mysql",
                "engine_version": "8.0",
                "instance_type": "t4g.small",
                "database_name": "wordpress",
                "credentials_secret_arn": IntentRef("WordpressDbSecret", "arn"),
                "subnet_ids": network.export("private_subnet_ids"),
                "security_group_ids": [IntentRef("DbSg", "id")],
                "port": MYSQL_PORT,
                "allocated_storage_gb": 20,
                "max_allocated_storage_gb": 100,
                "allow_major_version_upgrade": False,
                "auto_minor_version_upgrade": True,
                "multi_az": True,
                "storage_encrypted": True,
                "deletion_protection": True,
                "delete_automated_backups": False,
                "backup_retention_days": 14,
                "removal_policy": "RETAIN",
            },
            depends_on=("WordpressDbSecret", "DbSg"),
        ),
    ]

    return blueprint.declare(
        UNIT_NAME,
        ctx.primary,
        intents,
        exports={
            "db_secret_arn": IntentRef("WordpressDbSecret", "arn"),
            "db_endpoint_address": IntentRef("WordpressRDS", "endpoint_address"),
            "db_port": IntentRef("WordpressRDS", "port"),
            "db_security_group_id": IntentRef("DbSg", "id"),
        },
    )
