"""
WordPress on Fargate behind an application load balancer.

The load balancer only accepts HTTPS from CloudFront's origin-facing prefix
list; the edge unit reaches it through the ``origin.<domain>`` alias record.
"""

from __future__ import annotations

from stacklayer.orchestration.blueprint import Blueprint
from stacklayer.units import IntentRef, Peer, ResourceIntent, Rule, SecurityBoundary, UnitHandle

UNIT_NAME = "Compute"

CLOUDFRONT_PREFIX_LIST = "pl-b8a742d1"
WORDPRESS_IMAGE = "wordpress:6.8.1"
HTTP_PORT = 80
HTTPS_PORT = 443
MYSQL_PORT = 3306
NFS_PORT = 2049


def boundaries(vpc_cidr) -> tuple[SecurityBoundary, SecurityBoundary, SecurityBoundary]:
    """Load balancer, task and file-system boundaries."""
    alb = SecurityBoundary(
        name="alb",
        description="ALB inbound HTTPS from CloudFront only",
        ingress=(Rule(Peer.prefix_list(CLOUDFRONT_PREFIX_LIST), HTTPS_PORT, description="CloudFront HTTPS"),),
        egress=(Rule(Peer.any_ipv4(), HTTP_PORT, description="To tasks HTTP"),),
    )
    task = SecurityBoundary(
        name="task",
        description="Fargate tasks inbound from ALB over HTTP",
        ingress=(Rule(Peer.boundary("alb"), HTTP_PORT, description="ALB to tasks"),),
        egress=(
            Rule(Peer.ipv4(vpc_cidr), MYSQL_PORT, description="MySQL inside VPC"),
            Rule(Peer.any_ipv4(), HTTPS_PORT, description="HTTPS"),
            Rule(Peer.ipv4(vpc_cidr), NFS_PORT, description="EFS NFS"),
        ),
    )
    file_system = SecurityBoundary(
        name="efs",
        description="EFS mount targets",
        ingress=(Rule(Peer.boundary("task"), NFS_PORT, description="NFS from tasks"),),
    )
    return alb, task, file_system


def declare_compute(blueprint: Blueprint, network: UnitHandle, database: UnitHandle) -> UnitHandle:
    ctx = blueprint.context
    vpc_id = network.export("vpc_id")
    public_subnets = network.export("public_subnet_ids")
    private_subnets = network.export("private_subnet_ids")
    db_secret_arn = database.export("db_secret_arn")
    alb_boundary, task_boundary, efs_boundary = boundaries(network.export("vpc_cidr"))

    wp_config_extra = "\n".join(
        [
            f"define('WP_HOME','https://{ctx.domain_name}');",
            f"define('WP_SITEURL','https://{ctx.domain_name}');",
            "if(isset($_SERVER['HTTP_X_FORWARDED_PROTO']) && $_SERVER['HTTP_X_FORWARDED_PROTO']==='https'){",
            "  $_SERVER['HTTPS']='on';",
            "}",
        ]
    )

    intents = [
        ResourceIntent("hosted_zone", "HostedZone", {"domain_name": ctx.domain_name, "lookup": True}),
        ResourceIntent("certificate", "OriginCert", {"certificate_arn": ctx.origin_certificate_arn, "imported": True}),
        ResourceIntent("container_cluster", "CmsCluster", {"vpc_id": vpc_id}),
        ResourceIntent("log_group", "WordPressLogs", {"retention_days": 7}),
        ResourceIntent(
            "bucket",
            "AlbLogBucket",
            {
                "encryption": "S3_MANAGED",
                "block_public_access": "BLOCK_ALL",
                "lifecycle_expiration_days": 90,
                "removal_policy": "RETAIN",
            },
        ),
        ResourceIntent("security_group", "AlbSg", {"vpc_id": vpc_id, "allow_all_outbound": False}, boundary=alb_boundary),
        ResourceIntent("security_group", "TaskSg", {"vpc_id": vpc_id, "allow_all_outbound": False}, boundary=task_boundary),
        ResourceIntent("security_group", "EfsSg", {"vpc_id": vpc_id}, boundary=efs_boundary),
        ResourceIntent(
            "load_balancer",
            "WpAlb",
            {
                "internet_facing": True,
                "subnet_ids": public_subnets,
                "security_group_ids": [IntentRef("AlbSg", "id")],
                "access_logs_bucket": IntentRef("AlbLogBucket", "name"),
                "access_logs_prefix": "alb",
            },
            depends_on=("AlbSg", "AlbLogBucket"),
        ),
        ResourceIntent(
            "target_group",
            "WpTg",
            {
                "vpc_id": vpc_id,
                "port": HTTP_PORT,
                "protocol": "HTTP",
                "target_type": "ip",
                "health_check": {"path": "/", "healthy_http_codes": "200-399", "interval_seconds": 30},
                "stickiness_cookie_duration_seconds": 3600,
            },
        ),
        ResourceIntent(
            "listener",
            "Https",
            {
                "load_balancer_arn": IntentRef("WpAlb", "arn"),
                "port": HTTPS_PORT,
                "certificate_arns": [IntentRef("OriginCert", "arn")],
                "ssl_policy": "RECOMMENDED_TLS",
                "default_target_group_arn": IntentRef("WpTg", "arn"),
            },
            depends_on=("WpAlb", "WpTg", "OriginCert"),
        ),
        ResourceIntent(
            "dns_record",
            "OriginAlias",
            {
                "zone_id": IntentRef("HostedZone", "zone_id"),
                "zone_name": IntentRef("HostedZone", "zone_name"),
                "record_name": "origin",
                "record_type": "A",
                "alias_target": IntentRef("WpAlb", "dns_name"),
            },
            depends_on=("HostedZone", "WpAlb"),
        ),
        ResourceIntent(
            "file_system",
            "WpFs",
            {
                "vpc_id": vpc_id,
                "subnet_ids": private_subnets,
                "security_group_ids": [IntentRef("EfsSg", "id")],
                "encrypted": True,
                "performance_mode": "GENERAL_PURPOSE",
                "lifecycle_policy": "AFTER_14_DAYS",
                "removal_policy": "RETAIN",
            },
            depends_on=("EfsSg",),
        ),
        ResourceIntent(
            "file_system_access_point",
            "WpAp",
            {
                "file_system_id": IntentRef("WpFs", "file_system_id"),
                "path": "/wordpress/wp-content",
                "posix_user": {"uid": "33", "gid": "33"},
                "create_acl": {"owner_uid": "33", "owner_gid": "33", "permissions": "755"},
            },
            depends_on=("WpFs",),
        ),
        ResourceIntent(
            "task_definition",
            "TaskDef",
            {
                "cpu": 512,
                "memory_mib": 1024,
                "container": {
                    "name": "WordPress",
                    "image": WORDPRESS_IMAGE,
                    "port_mappings": [{"container_port": HTTP_PORT}],
                    "log_group": IntentRef("WordPressLogs", "name"),
                    "log_stream_prefix": "wp",
                    "secrets": {
                        "WORDPRESS_DB_USER": {"secret_arn": db_secret_arn, "field": "username"},
                        "WORDPRESS_DB_PASSWORD": {"secret_arn": db_secret_arn, "field": "password"},
                    },
                    "environment": {
                        "WORDPRESS_DB_HOST": database.export("db_endpoint_address"),
                        "WORDPRESS_DB_NAME": "wordpress",
                        "WORDPRESS_CONFIG_EXTRA": wp_config_extra,
                    },
                    "mount_points": [
                        {"container_path": "/var/www/html/wp-content", "source_volume": "wp-content"}
                    ],
                },
                "volumes": [
                    {
                        "name": "wp-content",
                        "file_system_id": IntentRef("WpFs", "file_system_id"),
                        "access_point_id": IntentRef("WpAp", "id"),
                        "transit_encryption": "ENABLED",
                        "iam": "ENABLED",
                    }
                ],
            },
            depends_on=("WordPressLogs", "WpFs", "WpAp"),
        ),
        ResourceIntent(
            "container_service",
            "WpService",
            {
                "cluster_arn": IntentRef("CmsCluster", "arn"),
                "task_definition_arn": IntentRef("TaskDef", "arn"),
                "desired_count": 2,
                "launch_type": "FARGATE",
                "subnet_ids": private_subnets,
                "security_group_ids": [IntentRef("TaskSg", "id")],
                "assign_public_ip": False,
                "min_healthy_percent": 100,
                "max_healthy_percent": 200,
                "target_group_arn": IntentRef("WpTg", "arn"),
            },
            depends_on=("CmsCluster", "TaskDef", "TaskSg", "Https"),
        ),
        ResourceIntent(
            "autoscaling_target",
            "WpScaling",
            {
                "service_name": IntentRef("WpService", "name"),
                "min_capacity": 2,
                "max_capacity": 6,
                "cpu_target_percent": 55,
                "scale_in_cooldown_seconds": 300,
                "scale_out_cooldown_seconds": 120,
            },
            depends_on=("WpService",),
        ),
    ]

    return blueprint.declare(
        UNIT_NAME,
        ctx.primary,
        intents,
        exports={
            "load_balancer_hostname": IntentRef("OriginAlias", "fqdn"),
            "cluster_arn": IntentRef("CmsCluster", "arn"),
            "service_name": IntentRef("WpService", "name"),
        },
        description="Custom origin for CloudFront",
    )
