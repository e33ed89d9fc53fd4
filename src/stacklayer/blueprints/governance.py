"""Account baseline: audit trail, threat detection, security posture and budget."""

from __future__ import annotations

from stacklayer.orchestration.blueprint import Blueprint
from stacklayer.units import IntentRef, ResourceIntent, UnitHandle

UNIT_NAME = "Governance"


def declare_governance(blueprint: Blueprint) -> UnitHandle:
    ctx = blueprint.context
    standards_arn = (
        f"arn:aws:securityhub:{ctx.primary_region}::"
        "standards/aws-foundational-security-best-practices/v/1.0.0"
    )

    intents = [
        ResourceIntent(
            "bucket",
            "TrailBucket",
            {
                "encryption": "S3_MANAGED",
                "block_public_access": "BLOCK_ALL",
                "lifecycle_expiration_days": 365,
            },
        ),
        ResourceIntent(
            "audit_trail",
            "AccountTrail",
            {
                "bucket_name": IntentRef("TrailBucket", "name"),
                "is_multi_region_trail": True,
                "include_global_service_events": True,
                "management_events": "ALL",
                "enable_file_validation": True,
            },
            depends_on=("TrailBucket",),
        ),
        ResourceIntent("threat_detector", "GuardDutyDetector", {"enable": True}),
        ResourceIntent("security_hub", "SecurityHub"),
        # Already-enabled standards are not an error
        ResourceIntent(
            "security_standard",
            "EnableAFSBP",
            {
                "hub_arn": IntentRef("SecurityHub", "arn"),
                "standards_arn": standards_arn,
                "ignore_error_codes": "ResourceConflictException",
            },
            depends_on=("SecurityHub",),
        ),
        ResourceIntent(
            "budget",
            "MonthlyBudget",
            {
                "budget_type": "COST",
                "time_unit": "MONTHLY",
                "limit_amount": ctx.budget_limit_usd,
                "limit_unit": "USD",
                "notifications": [
                    {
                        "notification_type": "ACTUAL",
                        "comparison_operator": "GREATER_THAN",
                        "threshold": 80,
                        "threshold_type": "PERCENTAGE",
                        "subscribers": [
                            {"subscription_type": "EMAIL", "address": ctx.budget_email}
                        ],
                    }
                ],
            },
        ),
    ]

    return blueprint.declare(
        UNIT_NAME,
        ctx.primary,
        intents,
        exports={
            "trail_arn": IntentRef("AccountTrail", "arn"),
            "budget_name": IntentRef("MonthlyBudget", "name"),
        },
        tags={"Compliance": "Baseline"},
        description="Single-account governance baseline",
    )
