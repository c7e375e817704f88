from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RedemptionSnapshot:
    decisions: Dict[str, int]
    commits: Dict[str, int]
    role_conflicts: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "decisions": dict(self.decisions),
            "commits": dict(self.commits),
            "roleConflicts": dict(self.role_conflicts),
        }


class RedemptionObservabilityStore:
    """Counters for redemption decisions, commit outcomes, and role conflicts."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._decisions: Dict[str, int] = defaultdict(int)
        self._commits: Dict[str, int] = defaultdict(int)
        self._role_conflicts: Dict[str, int] = defaultdict(int)

    def record_decision(self, outcome: str) -> None:
        with self._lock:
            self._decisions[outcome] += 1

    def record_commit(self, status: str, reason: str | None = None) -> None:
        with self._lock:
            self._commits[status] += 1
            if reason:
                self._commits[f"{status}:{reason}"] += 1

    def record_role_conflict(self, existing_role: str, intended_role: str) -> None:
        with self._lock:
            self._role_conflicts[f"{existing_role}->{intended_role}"] += 1

    def snapshot(self) -> RedemptionSnapshot:
        with self._lock:
            return RedemptionSnapshot(
                decisions=dict(self._decisions),
                commits=dict(self._commits),
                role_conflicts=dict(self._role_conflicts),
            )

    def reset(self) -> None:
        with self._lock:
            self._decisions.clear()
            self._commits.clear()
            self._role_conflicts.clear()


_STORE = RedemptionObservabilityStore()


def get_redemption_store() -> RedemptionObservabilityStore:
    return _STORE


__all__ = ["get_redemption_store", "RedemptionObservabilityStore", "RedemptionSnapshot"]
