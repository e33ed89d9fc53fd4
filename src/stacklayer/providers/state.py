from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

DEFAULT_STATE_PATH = Path(".stacklayer") / "state.json"
STATE_VERSION = 1


@dataclass
class ResourceRecord:
    """What a provider remembers about one resource between runs."""

    kind: str
    logical_id: str
    physical_id: str
    locality: str
    fingerprint: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "logical_id": self.logical_id,
            "physical_id": self.physical_id,
            "locality": self.locality,
            "fingerprint": self.fingerprint,
            "attributes": self.attributes,
        }


@dataclass
class StateStore:
    resources: Dict[str, ResourceRecord] = field(default_factory=dict)
    path: Path | None = None

    def get(self, key: str) -> ResourceRecord | None:
        return self.resources.get(key)

    def set(self, key: str, record: ResourceRecord) -> None:
        self.resources[key] = record
        self.save()

    def remove(self, key: str) -> bool:
        removed = self.resources.pop(key, None) is not None
        if removed:
            self.save()
        return removed

    def save(self) -> None:
        if self.path is not None:
            save_state(self, self.path)


def load_state(path: Path | None = None) -> StateStore:
    state_path = path or DEFAULT_STATE_PATH
    if not state_path.exists():
        return StateStore(path=state_path)
    data = json.loads(state_path.read_text())
    resources = {
        key: ResourceRecord(**record) for key, record in data.get("resources", {}).items()
    }
    return StateStore(resources=resources, path=state_path)


def save_state(state: StateStore, path: Path | None = None) -> None:
    state_path = path or state.path or DEFAULT_STATE_PATH
    state_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "version": STATE_VERSION,
        "resources": {key: record.to_dict() for key, record in state.resources.items()},
    }
    state_path.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n")
