from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple, Union

from .alert_engine import select_violation
from .domain import InsufficientData, ParameterPrediction, ParameterThreshold, Trend
from .parameters import STABLE_EPSILON, WaterParameter

Point = Tuple[datetime, float]

MIN_POINTS = 2
DEFAULT_HORIZON_DAYS = 7.0
DEFAULT_MAX_POINTS = 120

# Confidence = fit * coverage
#   fit      = 1 / (1 + FIT_SENSITIVITY * rmse / scale)
#   scale    = max(|mean|, SCALE_FLOOR_STEPS * stable epsilon of the parameter)
#   coverage = n / (n + COVERAGE_HALF_POINT)
FIT_SENSITIVITY = 10.0
SCALE_FLOOR_STEPS = 20
COVERAGE_HALF_POINT = 3

# Backtest: how many of the latest readings are replayed per parameter.
DEFAULT_BACKTEST_CHECKS = 10
WITHIN_TOLERANCE_PERCENT = 10.0


class ReadingHistory(Protocol):
    def get_readings(self, tank_id: int, parameter: WaterParameter, limit: int) -> List[Point]:
        ...


@dataclass
class LinearFit:
    slope: float
    intercept: float
    r_squared: float
    rmse: float

    def at(self, x: float) -> float:
        return self.intercept + self.slope * x


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _days(delta: timedelta) -> float:
    return delta.total_seconds() / 86400.0


def _window(points: Iterable[Point], max_points: int) -> List[Point]:
    rows = sorted(points, key=lambda p: p[0])
    if max_points and len(rows) > max_points:
        rows = rows[-max_points:]
    return rows


def _linreg(xs: List[float], ys: List[float]) -> LinearFit:
    """
    Ordinary least squares fit of y = a + b*x.
    A degenerate x spread (all timestamps equal) gives a flat line at the mean.
    """
    n = len(xs)
    x_mean = sum(xs) / n
    y_mean = sum(ys) / n
    num = sum((x - x_mean) * (y - y_mean) for x, y in zip(xs, ys))
    den = sum((x - x_mean) ** 2 for x in xs)
    slope = num / den if den != 0 else 0.0
    intercept = y_mean - slope * x_mean

    ss_res = sum((y - (intercept + slope * x)) ** 2 for x, y in zip(xs, ys))
    ss_tot = sum((y - y_mean) ** 2 for y in ys)
    r_squared = _clamp(1.0 - ss_res / ss_tot, 0.0, 1.0) if ss_tot != 0 else 1.0
    return LinearFit(slope=slope, intercept=intercept, r_squared=r_squared, rmse=math.sqrt(ss_res / n))


def _epsilon(parameter: WaterParameter) -> float:
    return STABLE_EPSILON.get(parameter, 0.001)


def confidence_score(fit: LinearFit, ys: Sequence[float], parameter: WaterParameter) -> float:
    n = len(ys)
    scale = max(abs(sum(ys) / n), SCALE_FLOOR_STEPS * _epsilon(parameter))
    fit_factor = 1.0 / (1.0 + FIT_SENSITIVITY * fit.rmse / scale)
    coverage = n / (n + COVERAGE_HALF_POINT)
    return round(_clamp(fit_factor * coverage, 0.0, 1.0), 4)


def trend_label(parameter: WaterParameter, slope: float) -> Trend:
    if abs(slope) < _epsilon(parameter):
        return Trend.STABLE
    return Trend.RISING if slope > 0 else Trend.FALLING


def alert_level(is_warning: bool, confidence: float) -> str:
    if is_warning and confidence >= 0.7:
        return "danger"
    if is_warning and confidence >= 0.5:
        return "warning"
    if confidence >= 0.7:
        return "success"
    return "info"


def _message(
    parameter: WaterParameter,
    trend: Trend,
    breach: Optional[Tuple[ParameterThreshold, str]],
    predicted_date: datetime,
) -> str:
    label = parameter.label
    if breach is not None:
        threshold, which = breach
        when = predicted_date.date().isoformat()
        if which == "min":
            return f"{label} predicted to fall below minimum {threshold.min_value:g} by {when}"
        return f"{label} predicted to rise above maximum {threshold.max_value:g} by {when}"
    if trend == Trend.STABLE:
        return f"{label} is stable and within range."
    return f"{label} is {trend.value} but expected to remain within range."


def predict_series(
    tank_id: int,
    parameter: WaterParameter,
    points: Iterable[Point],
    thresholds: Iterable[ParameterThreshold] = (),
    horizon_days: float = DEFAULT_HORIZON_DAYS,
    max_points: int = DEFAULT_MAX_POINTS,
) -> Union[ParameterPrediction, InsufficientData]:
    """
    Project a parameter `horizon_days` past its latest reading.

    Points are sorted by timestamp (duplicates kept) and only the most recent
    `max_points` are fitted. The result depends on nothing but the arguments.
    """
    rows = _window(points, max_points)
    if len(rows) < MIN_POINTS:
        return InsufficientData(tank_id=tank_id, parameter=parameter, sample_count=len(rows), required=MIN_POINTS)

    t0 = rows[0][0]
    xs = [_days(t - t0) for t, _ in rows]
    ys = [float(v) for _, v in rows]
    fit = _linreg(xs, ys)

    last_at = rows[-1][0]
    predicted_date = last_at + timedelta(days=horizon_days)
    predicted_value = round(fit.at(xs[-1] + horizon_days), 4)
    trend = trend_label(parameter, fit.slope)
    confidence = confidence_score(fit, ys, parameter)

    relevant = [t for t in thresholds if t.enabled and t.parameter == parameter and t.tank_id == tank_id]
    breach = select_violation(relevant, predicted_value)
    is_warning = breach is not None

    return ParameterPrediction(
        tank_id=tank_id,
        parameter=parameter,
        current_value=ys[-1],
        predicted_value=predicted_value,
        predicted_date=predicted_date,
        horizon_days=horizon_days,
        confidence=confidence,
        trend=trend,
        rate_of_change=round(fit.slope, 4),
        r_squared=round(fit.r_squared, 4),
        sample_count=len(rows),
        is_warning=is_warning,
        message=_message(parameter, trend, breach, predicted_date),
        alert_level=alert_level(is_warning, confidence),
    )


def backtest_errors(
    points: Iterable[Point],
    max_points: int = DEFAULT_MAX_POINTS,
    checks: int = DEFAULT_BACKTEST_CHECKS,
) -> List[float]:
    """
    Percentage errors of one-step-ahead predictions over the latest `checks` readings.

    Each reading is predicted from the readings before it, at its own
    timestamp. Readings with an actual value of zero have no percentage error
    and are skipped.
    """
    rows = _window(points, max_points)
    if not rows:
        return []
    t0 = rows[0][0]
    errors = []
    for j in range(max(MIN_POINTS, len(rows) - checks), len(rows)):
        seen = rows[:j]
        fit = _linreg([_days(t - t0) for t, _ in seen], [float(v) for _, v in seen])
        taken_at, actual = rows[j]
        if actual == 0:
            continue
        predicted = fit.at(_days(taken_at - t0))
        errors.append(abs(predicted - actual) / abs(actual) * 100.0)
    return errors


def accuracy_rating(average_error_percentage: float) -> str:
    if average_error_percentage < 5:
        return "Excellent - Predictions are highly accurate"
    if average_error_percentage < 10:
        return "Good - Predictions are reliable"
    if average_error_percentage < 15:
        return "Fair - Predictions show trends but may not be precise"
    return "Poor - More data needed for accurate predictions"
