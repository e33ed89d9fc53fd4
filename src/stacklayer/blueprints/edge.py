"""CloudFront distribution, WAF and apex DNS, managed from the edge region."""

from __future__ import annotations

from typing import Any

from stacklayer.orchestration.blueprint import Blueprint
from stacklayer.units import IntentRef, ResourceIntent, UnitHandle

UNIT_NAME = "Edge"

# Paths served uncached straight from the origin
ADMIN_PATHS = ("wp-login.php", "wp-admin/install.php", "wp-admin/*")


def _visibility(metric_name: str) -> dict[str, Any]:
    return {
        "metric_name": metric_name,
        "sampled_requests_enabled": True,
        "cloudwatch_metrics_enabled": True,
    }


def web_acl_rules() -> list[dict[str, Any]]:
    return [
        {
            "name": "AWSManagedRulesCommonRuleSet",
            "priority": 0,
            "override_action": "none",
            "statement": {"managed_rule_group": {"vendor_name": "AWS", "name": "AWSManagedRulesCommonRuleSet"}},
            "visibility": _visibility("Common"),
        },
        {
            "name": "RateLimit1k5m",
            "priority": 1,
            "action": "block",
            "statement": {"rate_based": {"limit": 1000, "aggregate_key_type": "IP"}},
            "visibility": _visibility("RateLimit"),
        },
    ]


def declare_edge(blueprint: Blueprint, compute: UnitHandle) -> UnitHandle:
    ctx = blueprint.context
    origin_hostname = compute.export("load_balancer_hostname")

    admin_behavior = {
        "viewer_protocol_policy": "REDIRECT_TO_HTTPS",
        "allowed_methods": "ALLOW_ALL",
        "cache_policy": "CACHING_DISABLED",
        "origin_request_policy": "ALL_VIEWER",
    }

    intents = [
        ResourceIntent("hosted_zone", "Zone", {"domain_name": ctx.domain_name, "lookup": True}),
        ResourceIntent(
            "bucket",
            "CloudFrontLogs",
            {
                "encryption": "S3_MANAGED",
                "block_public_access": "BLOCK_ALL",
                "object_ownership": "OBJECT_WRITER",
                "access_control": "LOG_DELIVERY_WRITE",
                "lifecycle_expiration_days": 90,
                "removal_policy": "RETAIN",
            },
        ),
        ResourceIntent("certificate", "ViewerCert", {"certificate_arn": ctx.cf_certificate_arn, "imported": True}),
        ResourceIntent(
            "web_acl",
            "WpWebAcl",
            {
                "scope": "CLOUDFRONT",
                "default_action": "allow",
                "visibility": _visibility("WpWebAcl"),
                "rules": web_acl_rules(),
            },
        ),
        ResourceIntent(
            "cdn_distribution",
            "WordpressCdn",
            {
                "origin_domain_name": origin_hostname,
                "origin_protocol_policy": "HTTPS_ONLY",
                "default_behavior": {
                    "viewer_protocol_policy": "REDIRECT_TO_HTTPS",
                    "allowed_methods": "ALLOW_ALL",
                    "cached_methods": "CACHE_GET_HEAD",
                    "cache_policy": "CACHING_OPTIMIZED",
                    "origin_request_policy": "ALL_VIEWER",
                },
                "additional_behaviors": {path: dict(admin_behavior) for path in ADMIN_PATHS},
                "domain_names": [ctx.domain_name],
                "certificate_arn": IntentRef("ViewerCert", "arn"),
                "web_acl_id": IntentRef("WpWebAcl", "arn"),
                "minimum_protocol_version": "TLSv1.2_2021",
                "logging_bucket": IntentRef("CloudFrontLogs", "name"),
                "log_file_prefix": "cloudfront",
            },
            depends_on=("CloudFrontLogs", "ViewerCert", "WpWebAcl"),
        ),
    ]
    for logical_id, record_type in (("ApexAlias", "A"), ("ApexAliasAAAA", "AAAA")):
        intents.append(
            ResourceIntent(
                "dns_record",
                logical_id,
                {
                    "zone_id": IntentRef("Zone", "zone_id"),
                    "zone_name": IntentRef("Zone", "zone_name"),
                    "record_type": record_type,
                    "alias_target": IntentRef("WordpressCdn", "domain_name"),
                },
                depends_on=("Zone", "WordpressCdn"),
            )
        )

    return blueprint.declare(
        UNIT_NAME,
        ctx.edge,
        intents,
        exports={
            "distribution_domain_name": IntentRef("WordpressCdn", "domain_name"),
            "web_acl_arn": IntentRef("WpWebAcl", "arn"),
        },
        depends_on=(compute.name,),
        description="CloudFront distribution hostname",
    )
