import logging
import math
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from .domain import EvaluationResult, ParameterThreshold, TriggeredAlert, WaterReading
from .errors import AquaHubError, InvalidReading, ValidationError
from .parameters import WaterParameter
from .thresholds import validate_threshold

logger = logging.getLogger(__name__)

Violation = Tuple[ParameterThreshold, str]


def validate_reading(reading: WaterReading) -> None:
    if reading.tank_id is None:
        raise InvalidReading(f"reading {reading.id} has no tank association")
    for parameter, value in reading.present().items():
        if not math.isfinite(value):
            raise ValidationError(f"{parameter.label} value {value} is not a finite number")


def select_violation(thresholds: Iterable[ParameterThreshold], value: float) -> Optional[Violation]:
    """
    Most severe threshold violated by `value`.

    Ties on severity go to the most recently updated threshold, then the
    highest id, so the choice is stable across calls.
    """
    violated = []
    for threshold in thresholds:
        which = threshold.violation(value)
        if which is not None:
            violated.append((threshold, which))
    if not violated:
        return None
    return max(violated, key=lambda v: (v[0].severity.rank, v[0].updated_at, v[0].id or 0))


def describe_violation(threshold: ParameterThreshold, which: str, value: float) -> str:
    if threshold.message:
        return threshold.message
    label = threshold.parameter.label
    if which == "min":
        return f"{label} {value:g} is below minimum {threshold.min_value:g}"
    return f"{label} {value:g} is above maximum {threshold.max_value:g}"


def _clear_of_bound(alert: TriggeredAlert, threshold: ParameterThreshold, value: float, margin: float) -> bool:
    if threshold.violation(value) is not None:
        return False
    if margin <= 0:
        return True
    if alert.violated_bound == "min" and threshold.min_value is not None:
        return value >= threshold.min_value + margin
    if alert.violated_bound == "max" and threshold.max_value is not None:
        return value <= threshold.max_value - margin
    return True


def _already_counted(alert: TriggeredAlert, reading: WaterReading) -> bool:
    # A retried evaluation of the same stored reading must not count twice.
    return reading.id is not None and reading.id in (alert.reading_id, alert.last_reading_id)


class AlertEvaluator:
    """
    Compares a reading with the active thresholds of its tank and works out
    which alerts to open, refresh and resolve.

    The evaluator mutates the open alerts it is given and returns new ones in
    the result; persisting them is the caller's job.
    """

    def __init__(self, resolve_margin: float = 0.0, log: Optional[logging.Logger] = None):
        self.resolve_margin = resolve_margin
        self.log = log or logger

    def evaluate(
        self,
        reading: WaterReading,
        thresholds: Iterable[ParameterThreshold],
        open_alerts: Iterable[TriggeredAlert],
    ) -> EvaluationResult:
        validate_reading(reading)
        result = EvaluationResult(reading_id=reading.id, tank_id=reading.tank_id)

        by_parameter: Dict[WaterParameter, List[ParameterThreshold]] = defaultdict(list)
        for threshold in thresholds:
            if threshold.enabled and threshold.tank_id == reading.tank_id:
                by_parameter[threshold.parameter].append(threshold)

        alerts_by_parameter: Dict[WaterParameter, List[TriggeredAlert]] = defaultdict(list)
        for alert in open_alerts:
            if alert.is_open and alert.tank_id == reading.tank_id:
                alerts_by_parameter[alert.parameter].append(alert)

        for parameter, value in reading.present().items():
            candidates = by_parameter.get(parameter)
            if not candidates:
                continue
            try:
                self._evaluate_parameter(
                    reading, parameter, value, candidates, alerts_by_parameter[parameter], result
                )
            except AquaHubError as exc:
                self.log.warning(
                    "tank=%s parameter=%s evaluation failed: %s", reading.tank_id, parameter.value, exc.message
                )
                result.failures[parameter] = exc.message

        self.log.info(
            "tank=%s reading=%s created=%d updated=%d resolved=%d failures=%d",
            reading.tank_id,
            reading.id,
            len(result.created),
            len(result.updated),
            len(result.resolved),
            len(result.failures),
        )
        return result

    def _evaluate_parameter(
        self,
        reading: WaterReading,
        parameter: WaterParameter,
        value: float,
        thresholds: List[ParameterThreshold],
        open_alerts: List[TriggeredAlert],
        result: EvaluationResult,
    ) -> None:
        for threshold in thresholds:
            validate_threshold(threshold)

        open_by_threshold = {a.threshold_id: a for a in open_alerts}
        chosen = select_violation(thresholds, value)

        if chosen is not None:
            threshold, which = chosen
            existing = open_by_threshold.get(threshold.id)
            if existing is not None:
                if not _already_counted(existing, reading):
                    existing.trigger_count += 1
                    existing.last_triggered_at = reading.taken_at
                    existing.last_reading_id = reading.id
                    result.updated.append(existing)
            else:
                alert = TriggeredAlert(
                    tank_id=reading.tank_id,
                    threshold_id=threshold.id,
                    parameter=parameter,
                    reading_id=reading.id,
                    actual_value=value,
                    violated_bound=which,
                    bound_value=threshold.bound(which),
                    severity=threshold.severity,
                    triggered_at=reading.taken_at,
                    owner_id=threshold.owner_id,
                    message=describe_violation(threshold, which, value),
                )
                others = [a for a in open_alerts if not a.resolved]
                if others and all(a.severity.rank < alert.severity.rank for a in others):
                    result.escalated.append(alert)
                result.created.append(alert)

        for threshold in thresholds:
            if chosen is not None and threshold is chosen[0]:
                continue
            alert = open_by_threshold.get(threshold.id)
            if alert is None or alert.resolved:
                continue
            if _clear_of_bound(alert, threshold, value, self.resolve_margin):
                alert.resolve(reading.taken_at, reading.id)
                result.resolved.append(alert)
