"""
Application settings using Pydantic.

Provides environment-based configuration loading with STACKLAYER_ prefix.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STACKLAYER_",
        extra="ignore",
    )

    # Deployment identity
    app_name: str = "cms"
    environment: str = "production"

    # AWS
    account: str = "000000000000"
    primary_region: str = "ap-southeast-2"
    edge_region: str = "us-east-1"

    # Site
    domain_name: str = "domain.com"
    cf_certificate_arn: str = "arn:aws:acm:us-east-1:"
    origin_certificate_arn: str = "arn:aws:acm:ap-southeast-2:"

    # Governance
    budget_email: str = "owner@example.com"
    budget_limit_usd: int = 50

    # Provider state
    state_file: str = ".stacklayer/state.json"

    # Orchestration
    max_parallel_units: int = 4
    reference_timeout_seconds: float = 30.0
    resolve_mode: Literal["block", "fail_fast"] = "block"
    failure_policy: Literal["finish", "rollback"] = "finish"
    continue_independent_branches: bool = False
    unit_timeout_seconds: float | None = None

    # Logging
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
