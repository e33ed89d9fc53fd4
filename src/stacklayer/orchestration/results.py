"""Result types for deployment runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from stacklayer.graph.dependency import DependencyEdge
from stacklayer.providers.base import Handle, PlanChange


class RunState(str, Enum):
    """Lifecycle of a run."""

    PLANNING = "planning"
    WAVED_EXECUTION = "waved_execution"
    COMPLETED = "completed"
    FAILED = "failed"


class UnitStatus(str, Enum):
    """Terminal (or not yet terminal) state of one unit."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class UnitOutcome:
    """What happened to one unit during a run."""

    unit: str
    wave: int
    status: UnitStatus = UnitStatus.PENDING
    reason: Optional[str] = None
    # Root failing unit when SKIPPED
    cause: Optional[str] = None
    resources: List[Handle] = field(default_factory=list)
    rolled_back: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    cancelled: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit": self.unit,
            "wave": self.wave,
            "status": self.status.value,
            "reason": self.reason,
            "cause": self.cause,
            "resources": [
                {**h.to_dict(), "action": h.action} for h in self.resources
            ],
            "rolled_back": self.rolled_back,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class DeploymentResult:
    """Per-unit report of a run plus the resolved export table."""

    run_id: str
    state: RunState
    waves: List[List[str]]
    units: Dict[str, UnitOutcome]
    exports: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    references: List[Dict[str, str]] = field(default_factory=list)
    root_cause: Optional[str] = None
    root_cause_unit: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        """Whether every unit completed."""
        return self.state == RunState.COMPLETED

    def _with_status(self, status: UnitStatus) -> List[str]:
        return [name for name, outcome in self.units.items() if outcome.status == status]

    @property
    def completed(self) -> List[str]:
        return self._with_status(UnitStatus.COMPLETED)

    @property
    def failed(self) -> List[str]:
        return self._with_status(UnitStatus.FAILED)

    @property
    def skipped(self) -> List[str]:
        return self._with_status(UnitStatus.SKIPPED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "success": self.success,
            "waves": self.waves,
            "units": {name: outcome.to_dict() for name, outcome in self.units.items()},
            "exports": self.exports,
            "references": self.references,
            "root_cause": self.root_cause,
            "root_cause_unit": self.root_cause_unit,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class PlanResult:
    """Result of planning (dry-run) a deployment."""

    app_name: str
    waves: List[List[str]] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    changes: Dict[str, List[PlanChange]] = field(default_factory=dict)
    references: List[Dict[str, str]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        """Number of intents that would be created or updated."""
        return sum(1 for items in self.changes.values() for c in items if c.action != "noop")

    @property
    def success(self) -> bool:
        """Whether plan succeeded without errors."""
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "app_name": self.app_name,
            "waves": self.waves,
            "edges": [e.to_dict() for e in self.edges],
            "changes": {
                unit: [
                    {"action": c.action, "kind": c.kind, "logical_id": c.logical_id, **c.details}
                    for c in items
                ]
                for unit, items in self.changes.items()
            },
            "references": self.references,
            "total_changes": self.total_changes,
            "errors": self.errors,
            "success": self.success,
        }


class ResultCollector:
    """Aggregates unit outcomes during execution."""

    def __init__(self, run_id: str, waves: List[List[str]]) -> None:
        self._run_id = run_id
        self._waves = waves
        self._outcomes: Dict[str, UnitOutcome] = {
            name: UnitOutcome(unit=name, wave=index)
            for index, wave in enumerate(waves)
            for name in wave
        }
        self._root_cause: Optional[str] = None
        self._root_cause_unit: Optional[str] = None

    def outcome(self, unit: str) -> UnitOutcome:
        return self._outcomes[unit]

    def record(self, outcome: UnitOutcome) -> None:
        """Record a finished unit; the first failure becomes the root cause."""
        self._outcomes[outcome.unit] = outcome
        if (
            outcome.status == UnitStatus.FAILED
            and not outcome.cancelled
            and self._root_cause_unit is None
        ):
            self._root_cause = outcome.reason
            self._root_cause_unit = outcome.unit

    def record_skipped(self, unit: str, cause: Optional[str], reason: str) -> None:
        outcome = self._outcomes[unit]
        outcome.status = UnitStatus.SKIPPED
        outcome.cause = cause
        outcome.reason = reason

    def record_cancelled(self, reason: str) -> None:
        """Cancellation is the root cause when nothing failed first."""
        if self._root_cause is None:
            self._root_cause = reason

    @property
    def root_cause_unit(self) -> Optional[str]:
        return self._root_cause_unit

    @property
    def all_completed(self) -> bool:
        return all(o.status == UnitStatus.COMPLETED for o in self._outcomes.values())

    def finalize(
        self,
        state: RunState,
        duration: float,
        exports: Dict[str, Dict[str, Any]],
        references: List[Dict[str, str]],
    ) -> DeploymentResult:
        """Return the final result."""
        return DeploymentResult(
            run_id=self._run_id,
            state=state,
            waves=self._waves,
            units=dict(self._outcomes),
            exports=exports,
            references=references,
            root_cause=self._root_cause,
            root_cause_unit=self._root_cause_unit,
            duration_seconds=duration,
        )
