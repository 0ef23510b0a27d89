import math
from dataclasses import replace
from typing import Dict, List, Protocol

from .domain import ParameterThreshold, utcnow
from .errors import NotFound, ValidationError
from .parameters import Severity, TankType, applicable_parameters, safe_range


class ThresholdStore(Protocol):
    def get_active_thresholds(self, tank_id: int) -> List[ParameterThreshold]:
        ...

    def upsert(self, threshold: ParameterThreshold) -> ParameterThreshold:
        ...


def validate_threshold(threshold: ParameterThreshold) -> None:
    lo, hi = threshold.min_value, threshold.max_value
    if lo is None and hi is None:
        raise ValidationError(f"{threshold.parameter.label} threshold needs a min or max bound")
    for bound in (lo, hi):
        if bound is not None and not math.isfinite(bound):
            raise ValidationError(f"{threshold.parameter.label} threshold bounds must be finite")
    if lo is not None and hi is not None and lo > hi:
        raise ValidationError(
            f"{threshold.parameter.label} threshold min ({lo}) is greater than max ({hi})"
        )


def check_same_target(current: ParameterThreshold, update: ParameterThreshold) -> None:
    """An update may retune bounds, severity or text but not move a threshold."""
    if current.tank_id != update.tank_id:
        raise NotFound(f"threshold {update.id} not found for tank {update.tank_id}")
    if current.parameter != update.parameter:
        raise ValidationError(
            f"threshold {update.id} watches {current.parameter.label}; "
            f"create a new threshold for {update.parameter.label}"
        )


class InMemoryThresholdStore:
    """Dict-backed store, used by callers that keep thresholds outside the database."""

    def __init__(self):
        self._items: Dict[int, ParameterThreshold] = {}
        self._next_id = 1

    def get_active_thresholds(self, tank_id: int) -> List[ParameterThreshold]:
        return [t for t in self._items.values() if t.tank_id == tank_id and t.enabled]

    def upsert(self, threshold: ParameterThreshold) -> ParameterThreshold:
        validate_threshold(threshold)
        if threshold.id is not None and threshold.id in self._items:
            check_same_target(self._items[threshold.id], threshold)
        stored = replace(threshold, updated_at=utcnow())
        if stored.id is None:
            stored.id = self._next_id
            self._next_id += 1
        else:
            self._next_id = max(self._next_id, stored.id + 1)
        self._items[stored.id] = stored
        return stored


def default_thresholds(tank_id: int, owner_id: str, tank_type: TankType) -> List[ParameterThreshold]:
    """Warning-level thresholds from the built-in safe ranges for a tank type."""
    thresholds = []
    for parameter in applicable_parameters(tank_type):
        bounds = safe_range(tank_type, parameter)
        if bounds is None:
            continue
        lo, hi = bounds
        thresholds.append(
            ParameterThreshold(
                tank_id=tank_id,
                parameter=parameter,
                min_value=lo,
                max_value=hi,
                severity=Severity.WARNING,
                owner_id=owner_id,
            )
        )
    return thresholds
