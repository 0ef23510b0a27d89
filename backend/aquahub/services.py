import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Protocol, Union

from .alert_engine import AlertEvaluator, validate_reading
from .domain import (
    EvaluationResult,
    InsufficientData,
    ParameterPrediction,
    PredictionAccuracyReport,
    TankForecast,
    TriggeredAlert,
    WaterReading,
    utcnow,
)
from .errors import InvalidReading
from .forecast import (
    DEFAULT_HORIZON_DAYS,
    DEFAULT_MAX_POINTS,
    WITHIN_TOLERANCE_PERCENT,
    ReadingHistory,
    accuracy_rating,
    backtest_errors,
    predict_series,
)
from .lifecycle import AlertLifecycle, AlertRepository, ReadingLookup
from .notifications import Notifier
from .parameters import WaterParameter
from .thresholds import ThresholdStore

logger = logging.getLogger(__name__)


class Transaction(Protocol):
    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


class TankLock:
    """A plain mutex that can be referenced weakly."""

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info):
        self._lock.release()


class TankLocks:
    """
    One lock per tank so two readings for the same tank never evaluate together.

    Locks are held weakly; a tank nobody is evaluating drops out of the registry.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, TankLock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def lock_for(self, tank_id: int) -> TankLock:
        with self._guard:
            lock = self._locks.get(tank_id)
            if lock is None:
                lock = self._locks[tank_id] = TankLock()
            return lock

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, tank_id: int):
        lock = self.lock_for(tank_id)
        with lock:
            yield


tank_locks = TankLocks()


class AlertService:
    def __init__(
        self,
        thresholds: ThresholdStore,
        alerts: AlertRepository,
        notifier: Notifier,
        evaluator: Optional[AlertEvaluator] = None,
        transaction: Optional[Transaction] = None,
        locks: Optional[TankLocks] = None,
        log: Optional[logging.Logger] = None,
        readings: Optional[ReadingLookup] = None,
    ):
        self.thresholds = thresholds
        self.alerts = alerts
        self.notifier = notifier
        self.log = log or logger
        self.evaluator = evaluator or AlertEvaluator(log=self.log)
        self.transaction = transaction
        self.locks = locks or tank_locks
        self.lifecycle = AlertLifecycle(alerts, log=self.log, readings=readings)

    def evaluate(self, reading: WaterReading) -> EvaluationResult:
        try:
            validate_reading(reading)
        except InvalidReading as exc:
            self.log.warning("rejected reading=%s: %s", reading.id, exc.message)
            raise

        with self.locks.hold(reading.tank_id):
            with self._unit_of_work():
                thresholds = self.thresholds.get_active_thresholds(reading.tank_id)
                open_alerts = self.alerts.open_alerts(reading.tank_id)
                result = self.evaluator.evaluate(reading, thresholds, open_alerts)
                for alert in result.created:
                    self.alerts.add(alert)
                for alert in result.updated + result.resolved:
                    self.alerts.save(alert)

        for alert in result.notify_worthy:
            self._dispatch(alert)
        return result

    def acknowledge(self, alert_id: int) -> TriggeredAlert:
        with self._unit_of_work():
            return self.lifecycle.acknowledge(alert_id)

    def resolve(self, alert_id: int, reading_id: Optional[int] = None) -> TriggeredAlert:
        with self._unit_of_work():
            return self.lifecycle.resolve(alert_id, reading_id)

    def open_alerts_for_tank(self, tank_id: int):
        return self.lifecycle.open_alerts_for_tank(tank_id)

    @contextmanager
    def _unit_of_work(self):
        try:
            yield
            if self.transaction is not None:
                self.transaction.commit()
        except Exception:
            if self.transaction is not None:
                self.transaction.rollback()
            raise

    def _dispatch(self, alert: TriggeredAlert) -> None:
        # The alert is already committed; a failed delivery must not undo it.
        try:
            self.notifier.notify(alert.owner_id, alert)
        except Exception:
            self.log.exception("notification failed for alert=%s owner=%s", alert.id, alert.owner_id)


class PredictionService:
    def __init__(
        self,
        history: ReadingHistory,
        thresholds: ThresholdStore,
        max_points: int = DEFAULT_MAX_POINTS,
        log: Optional[logging.Logger] = None,
    ):
        self.history = history
        self.thresholds = thresholds
        self.max_points = max_points
        self.log = log or logger

    def predict(
        self,
        tank_id: int,
        parameter: WaterParameter,
        horizon_days: float = DEFAULT_HORIZON_DAYS,
    ) -> Union[ParameterPrediction, InsufficientData]:
        points = self.history.get_readings(tank_id, parameter, self.max_points)
        thresholds = self.thresholds.get_active_thresholds(tank_id)
        result = predict_series(
            tank_id,
            parameter,
            points,
            thresholds=thresholds,
            horizon_days=horizon_days,
            max_points=self.max_points,
        )
        if isinstance(result, InsufficientData):
            self.log.debug(
                "tank=%s parameter=%s insufficient data (%d points)", tank_id, parameter.value, result.sample_count
            )
        else:
            self.log.debug(
                "tank=%s parameter=%s %s -> %s (%s, confidence %.2f)",
                tank_id,
                parameter.value,
                result.current_value,
                result.predicted_value,
                result.trend.value,
                result.confidence,
            )
        return result

    def predict_tank(
        self,
        tank_id: int,
        parameters: Iterable[WaterParameter],
        horizon_days: float = DEFAULT_HORIZON_DAYS,
    ) -> TankForecast:
        forecast = TankForecast(tank_id=tank_id, generated_at=utcnow(), horizon_days=horizon_days)
        for parameter in parameters:
            result = self.predict(tank_id, parameter, horizon_days)
            if isinstance(result, InsufficientData):
                forecast.insufficient.append(result)
            else:
                forecast.predictions.append(result)
        self.log.info(
            "tank=%s forecast=%s predictions=%d warnings=%d",
            tank_id,
            forecast.overall,
            len(forecast.predictions),
            forecast.warning_count,
        )
        return forecast

    def accuracy_report(self, tank_id: int, parameters: Iterable[WaterParameter]) -> PredictionAccuracyReport:
        """Score the predictor by replaying each parameter's history one reading at a time."""
        report = PredictionAccuracyReport(tank_id=tank_id)
        by_parameter: Dict[WaterParameter, List[float]] = {}
        for parameter in parameters:
            errors = backtest_errors(self.history.get_readings(tank_id, parameter, self.max_points))
            if errors:
                by_parameter[parameter] = errors

        errors = [e for errs in by_parameter.values() for e in errs]
        if not errors:
            self.log.info("tank=%s accuracy: nothing to compare", tank_id)
            return report

        report.predictions_evaluated = len(errors)
        report.average_error_percentage = round(sum(errors) / len(errors), 2)
        report.accuracy_within_10_percent = round(100.0 * sum(1 for e in errors if e <= WITHIN_TOLERANCE_PERCENT) / len(errors), 1)
        report.accuracy_by_parameter = {p: round(sum(e) / len(e), 2) for p, e in by_parameter.items()}
        report.overall_rating = accuracy_rating(report.average_error_percentage)
        self.log.info(
            "tank=%s accuracy: %d predictions, %.2f%% average error",
            tank_id,
            report.predictions_evaluated,
            report.average_error_percentage,
        )
        return report
