"""
Core alerting types.

These are plain dataclasses so the evaluator, lifecycle and predictor can run
without a database session; `repositories.py` maps them to and from the ORM.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidTransition
from .parameters import Severity, WaterParameter


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the DateTime columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AlertState(str, Enum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class Trend(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


@dataclass
class WaterReading:
    tank_id: Optional[int]
    taken_at: datetime
    values: Dict[WaterParameter, Optional[float]] = field(default_factory=dict)
    id: Optional[int] = None

    def present(self) -> Dict[WaterParameter, float]:
        """Parameters actually tested in this reading."""
        return {p: v for p, v in self.values.items() if v is not None}


@dataclass
class ParameterThreshold:
    tank_id: int
    parameter: WaterParameter
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    severity: Severity = Severity.WARNING
    enabled: bool = True
    message: Optional[str] = None
    owner_id: str = ""
    updated_at: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def violation(self, value: float) -> Optional[str]:
        """Return "min" or "max" when `value` falls outside this threshold."""
        if self.min_value is not None and value < self.min_value:
            return "min"
        if self.max_value is not None and value > self.max_value:
            return "max"
        return None

    def bound(self, which: str) -> Optional[float]:
        return self.min_value if which == "min" else self.max_value


@dataclass
class TriggeredAlert:
    tank_id: int
    threshold_id: Optional[int]
    parameter: WaterParameter
    reading_id: Optional[int]
    actual_value: float
    violated_bound: str
    bound_value: Optional[float]
    severity: Severity
    triggered_at: datetime
    owner_id: str = ""
    message: str = ""
    last_triggered_at: Optional[datetime] = None
    last_reading_id: Optional[int] = None
    trigger_count: int = 1
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolving_reading_id: Optional[int] = None
    id: Optional[int] = None

    def __post_init__(self):
        if self.last_triggered_at is None:
            self.last_triggered_at = self.triggered_at
        if self.last_reading_id is None:
            self.last_reading_id = self.reading_id

    @property
    def state(self) -> AlertState:
        if self.resolved:
            return AlertState.RESOLVED
        if self.acknowledged:
            return AlertState.ACKNOWLEDGED
        return AlertState.OPEN

    @property
    def is_open(self) -> bool:
        return not self.resolved

    def acknowledge(self, at: datetime) -> None:
        if self.resolved:
            raise InvalidTransition(f"alert {self.id} is resolved and cannot be acknowledged")
        if not self.acknowledged:
            self.acknowledged = True
            self.acknowledged_at = at

    def resolve(self, at: datetime, reading_id: Optional[int] = None) -> None:
        if self.resolved:
            raise InvalidTransition(f"alert {self.id} is already resolved")
        self.resolved = True
        self.resolved_at = at
        self.resolving_reading_id = reading_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tank_id": self.tank_id,
            "threshold_id": self.threshold_id,
            "parameter": self.parameter.value,
            "reading_id": self.reading_id,
            "actual_value": self.actual_value,
            "violated_bound": self.violated_bound,
            "bound_value": self.bound_value,
            "severity": self.severity.value,
            "message": self.message,
            "state": self.state.value,
            "trigger_count": self.trigger_count,
            "triggered_at": self.triggered_at.isoformat(),
            "last_triggered_at": self.last_triggered_at.isoformat() if self.last_triggered_at else None,
        }


@dataclass
class EvaluationResult:
    reading_id: Optional[int]
    tank_id: int
    created: List[TriggeredAlert] = field(default_factory=list)
    updated: List[TriggeredAlert] = field(default_factory=list)
    resolved: List[TriggeredAlert] = field(default_factory=list)
    escalated: List[TriggeredAlert] = field(default_factory=list)
    failures: Dict[WaterParameter, str] = field(default_factory=dict)

    @property
    def notify_worthy(self) -> List[TriggeredAlert]:
        return self.created

    def touched(self) -> List[TriggeredAlert]:
        return self.created + self.updated + self.resolved


@dataclass
class ParameterPrediction:
    tank_id: int
    parameter: WaterParameter
    current_value: float
    predicted_value: float
    predicted_date: datetime
    horizon_days: float
    confidence: float
    trend: Trend
    rate_of_change: float
    r_squared: float
    sample_count: int
    is_warning: bool = False
    message: str = ""
    alert_level: str = "info"
    method: str = "linear_regression"


@dataclass
class InsufficientData:
    tank_id: int
    parameter: WaterParameter
    sample_count: int
    required: int = 2
    message: str = ""

    def __post_init__(self):
        if not self.message:
            self.message = (
                f"Need at least {self.required} {self.parameter.label} readings to predict a trend; "
                f"found {self.sample_count}."
            )


@dataclass
class TankForecast:
    tank_id: int
    generated_at: datetime
    horizon_days: float
    predictions: List[ParameterPrediction] = field(default_factory=list)
    insufficient: List[InsufficientData] = field(default_factory=list)

    @property
    def warning_count(self) -> int:
        return sum(1 for p in self.predictions if p.is_warning)

    @property
    def average_confidence(self) -> float:
        if not self.predictions:
            return 0.0
        return round(sum(p.confidence for p in self.predictions) / len(self.predictions), 4)

    @property
    def overall(self) -> str:
        if not self.predictions:
            return "Insufficient Data"
        if self.warning_count == 0 and self.average_confidence >= 0.7:
            return "Excellent"
        if self.warning_count == 0:
            return "Good"
        if self.warning_count <= 2:
            return "Fair"
        return "Concerning"


@dataclass
class PredictionAccuracyReport:
    """Walk-forward backtest of the predictor against a tank's own history."""

    tank_id: int
    predictions_evaluated: int = 0
    average_error_percentage: float = 0.0
    accuracy_within_10_percent: float = 0.0
    accuracy_by_parameter: Dict[WaterParameter, float] = field(default_factory=dict)
    overall_rating: str = "No data available"
