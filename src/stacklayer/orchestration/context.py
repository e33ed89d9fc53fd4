"""Deployment context shared by every unit declaration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

from stacklayer.config.settings import Settings
from stacklayer.units.models import Locality


@dataclass(frozen=True)
class DeploymentContext:
    """Naming and account context passed explicitly to every blueprint."""

    app_name: str
    environment: str
    account: str
    primary_region: str
    edge_region: str
    domain_name: str
    cf_certificate_arn: str
    origin_certificate_arn: str
    budget_email: str = "owner@example.com"
    budget_limit_usd: int = 50
    tags: Mapping[str, str] = field(default_factory=dict)

    @property
    def primary(self) -> Locality:
        return Locality(self.account, self.primary_region)

    @property
    def edge(self) -> Locality:
        return Locality(self.account, self.edge_region)

    @property
    def common_tags(self) -> Dict[str, str]:
        return {"Application": self.app_name, "Environment": self.environment, **self.tags}

    @classmethod
    def from_settings(
        cls, settings: Settings, tags: Optional[Mapping[str, str]] = None
    ) -> DeploymentContext:
        return cls(
            app_name=settings.app_name,
            environment=settings.environment,
            account=settings.account,
            primary_region=settings.primary_region,
            edge_region=settings.edge_region,
            domain_name=settings.domain_name,
            cf_certificate_arn=settings.cf_certificate_arn,
            origin_certificate_arn=settings.origin_certificate_arn,
            budget_email=settings.budget_email,
            budget_limit_usd=settings.budget_limit_usd,
            tags=dict(tags or {}),
        )
