"""
Orchestration: plans units into waves and deploys them.

Usage:
    from stacklayer.orchestration import Orchestrator, deploy

    result = deploy(Orchestrator(providers, context), blueprint.units, blueprint.edges)
"""

from stacklayer.orchestration.blueprint import Blueprint
from stacklayer.orchestration.cancellation import CancellationToken
from stacklayer.orchestration.context import DeploymentContext
from stacklayer.orchestration.engine import FailurePolicy, Orchestrator, deploy
from stacklayer.orchestration.plan_builder import DeploymentPlan, PlanBuilder
from stacklayer.orchestration.results import (
    DeploymentResult,
    PlanResult,
    ResultCollector,
    RunState,
    UnitOutcome,
    UnitStatus,
)

__all__ = [
    "Blueprint",
    "CancellationToken",
    "DeploymentContext",
    "DeploymentPlan",
    "DeploymentResult",
    "FailurePolicy",
    "Orchestrator",
    "PlanBuilder",
    "PlanResult",
    "ResultCollector",
    "RunState",
    "UnitOutcome",
    "UnitStatus",
    "deploy",
]
