"""
Deployment file loading.

Search order:
1. Explicit path (--config flag)
2. .stacklayer/config.yaml (project root)
3. ~/.stacklayer/config.yaml (user home)
4. No file: settings/environment only
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Optional

import structlog
import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from stacklayer.config.settings import Settings
from stacklayer.core.errors import ConfigurationError

logger = structlog.get_logger()


class BudgetConfig(BaseModel):
    email: Optional[str] = None
    limit_usd: Optional[int] = Field(None, gt=0)


class OrchestrationConfig(BaseModel):
    max_parallel_units: Optional[int] = Field(None, ge=1)
    reference_timeout_seconds: Optional[float] = Field(None, gt=0)
    resolve_mode: Optional[Literal["block", "fail_fast"]] = None
    failure_policy: Optional[Literal["finish", "rollback"]] = None
    continue_independent_branches: Optional[bool] = None
    unit_timeout_seconds: Optional[float] = Field(None, gt=0)


class DeploymentConfig(BaseModel):
    """Contents of a deployment file. Every field overrides the matching setting."""

    app_name: Optional[str] = None
    environment: Optional[str] = None
    account: Optional[str] = None
    primary_region: Optional[str] = None
    edge_region: Optional[str] = None
    domain_name: Optional[str] = None
    cf_certificate_arn: Optional[str] = None
    origin_certificate_arn: Optional[str] = None
    state_file: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)

    def apply_to(self, settings: Settings) -> Settings:
        """Return a copy of ``settings`` with this file's values layered on top."""
        overrides: dict[str, Any] = {
            k: v
            for k, v in self.model_dump(exclude={"tags", "budget", "orchestration"}).items()
            if v is not None
        }
        if self.budget.email is not None:
            overrides["budget_email"] = self.budget.email
        if self.budget.limit_usd is not None:
            overrides["budget_limit_usd"] = self.budget.limit_usd
        overrides.update(self.orchestration.model_dump(exclude_none=True))
        return settings.model_copy(update=overrides)


def get_config_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the deployment file to use.

    Returns:
        Path to config file or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigurationError(f"Config file not found: {path}", {"path": str(path)})

    cwd_config = Path.cwd() / ".stacklayer" / "config.yaml"
    if cwd_config.exists():
        return cwd_config

    home_config = Path.home() / ".stacklayer" / "config.yaml"
    if home_config.exists():
        return home_config

    return None


class ConfigLoader:
    """
    Loads the deployment file and layers it over settings.
    """

    def __init__(self, config_path: Path | None = None):
        self.config_path = config_path

    def load(self) -> DeploymentConfig:
        """Load configuration from file or return defaults."""
        if self.config_path is None:
            return DeploymentConfig()
        return self._load_from_file(self.config_path)

    def _load_from_file(self, path: Path) -> DeploymentConfig:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", {"path": str(path)}) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping", {"path": str(path)})

        try:
            config = DeploymentConfig.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid deployment file {path}: {e}", {"path": str(path)}) from e

        logger.debug("loaded_config", path=str(path))
        return config


def load_config(
    path: str | Path | None = None,
    settings: Settings | None = None,
) -> tuple[Settings, DeploymentConfig]:
    """
    Convenience function to load settings plus the deployment file.

    Args:
        path: Explicit deployment file path
        settings: Base settings (environment) to layer the file over

    Returns:
        (effective settings, parsed deployment file)
    """
    from stacklayer.config.settings import get_settings

    base = settings or get_settings()
    config = ConfigLoader(get_config_path(path)).load()
    return config.apply_to(base), config
