from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class AutoDeployStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {AutoDeployStatus.COMPLETED, AutoDeployStatus.FAILED}


ALLOWED_TRANSITIONS: Dict[AutoDeployStatus, FrozenSet[AutoDeployStatus]] = {
    AutoDeployStatus.QUEUED: frozenset({AutoDeployStatus.RUNNING}),
    AutoDeployStatus.RUNNING: frozenset({AutoDeployStatus.COMPLETED, AutoDeployStatus.FAILED}),
    AutoDeployStatus.COMPLETED: frozenset(),
    AutoDeployStatus.FAILED: frozenset(),
}


def is_valid_transition(current: AutoDeployStatus, new: AutoDeployStatus) -> bool:
    """Jobs only move forward; re-marking the same status is a no-op."""
    if current == new:
        return True
    return new in ALLOWED_TRANSITIONS[current]
