"""Wires settings, the deployment file and providers together for CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import structlog

from stacklayer.blueprints import build_cms_blueprint
from stacklayer.config import Settings, load_config
from stacklayer.orchestration import Blueprint, DeploymentContext, Orchestrator
from stacklayer.providers import InMemoryProvider, ProviderRegistry, StateStore, load_state

logger = structlog.get_logger()


@dataclass
class Runtime:
    settings: Settings
    context: DeploymentContext
    state: StateStore
    providers: ProviderRegistry
    blueprint: Blueprint

    def orchestrator(self) -> Orchestrator:
        return Orchestrator.from_settings(self.settings, self.providers, self.context)


def load_runtime(
    config_path: Optional[str] = None,
    state_file: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    settings: Optional[Settings] = None,
) -> Runtime:
    """
    Build everything a command needs.

    Precedence, lowest first: environment, deployment file, command-line flags.
    """
    effective, config = load_config(config_path, settings)
    updates = {k: v for k, v in (overrides or {}).items() if v is not None}
    if state_file:
        updates["state_file"] = state_file
    if updates:
        effective = effective.model_copy(update=updates)

    context = DeploymentContext.from_settings(effective, config.tags)
    state = load_state(Path(effective.state_file))
    providers = ProviderRegistry(default=InMemoryProvider(state))
    logger.debug(
        "runtime_loaded",
        app=context.app_name,
        state_file=effective.state_file,
        resources=len(state.resources),
    )
    return Runtime(
        settings=effective,
        context=context,
        state=state,
        providers=providers,
        blueprint=build_cms_blueprint(context),
    )
