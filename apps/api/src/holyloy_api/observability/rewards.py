from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RewardSnapshot:
    global_numbers: Dict[str, int]
    step_up: Dict[str, int]
    ripple: Dict[str, int]
    hooks: Dict[str, int]
    conflicts: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "global_numbers": dict(self.global_numbers),
            "step_up": dict(self.step_up),
            "ripple": dict(self.ripple),
            "hooks": dict(self.hooks),
            "conflicts": dict(self.conflicts),
        }


class RewardObservabilityStore:
    """Collect reward cascade telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._global_numbers: Dict[str, int] = defaultdict(int)
        self._step_up: Dict[str, int] = defaultdict(int)
        self._ripple: Dict[str, int] = defaultdict(int)
        self._hooks: Dict[str, int] = defaultdict(int)
        self._conflicts: Dict[str, int] = defaultdict(int)

    def record_global_number_issued(self, number: int) -> None:
        with self._lock:
            self._global_numbers["issued"] += 1
            self._global_numbers["last_issued"] = max(self._global_numbers["last_issued"], number)

    def record_step_up_award(self, multiplier: int, points: int) -> None:
        with self._lock:
            self._step_up["awarded"] += 1
            self._step_up["points"] += points
            self._step_up[f"multiplier:{multiplier}"] += 1

    def record_step_up_duplicate(self) -> None:
        with self._lock:
            self._step_up["duplicates_ignored"] += 1

    def record_ripple_award(self, points: int) -> None:
        with self._lock:
            self._ripple["awarded"] += 1
            self._ripple["points"] += points

    def record_ripple_duplicate(self) -> None:
        with self._lock:
            self._ripple["duplicates_ignored"] += 1

    def record_hook_dispatch(self, threshold: int) -> None:
        with self._lock:
            self._hooks["total"] += 1
            self._hooks[f"threshold:{threshold}"] += 1

    def record_conflict_retry(self, operation: str) -> None:
        with self._lock:
            self._conflicts["retried"] += 1
            self._conflicts[f"operation:{operation}"] += 1

    def snapshot(self) -> RewardSnapshot:
        with self._lock:
            return RewardSnapshot(
                global_numbers=dict(self._global_numbers),
                step_up=dict(self._step_up),
                ripple=dict(self._ripple),
                hooks=dict(self._hooks),
                conflicts=dict(self._conflicts),
            )

    def reset(self) -> None:
        with self._lock:
            self._global_numbers.clear()
            self._step_up.clear()
            self._ripple.clear()
            self._hooks.clear()
            self._conflicts.clear()


_STORE = RewardObservabilityStore()


def get_reward_store() -> RewardObservabilityStore:
    return _STORE


__all__ = ["get_reward_store", "RewardObservabilityStore", "RewardSnapshot"]
