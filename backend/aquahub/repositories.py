"""SQLAlchemy-backed collaborators for the alerting core. None of them commit."""

from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from . import domain, models
from .errors import NotFound
from .forecast import Point
from .parameters import Severity, WaterParameter
from .thresholds import check_same_target, validate_threshold


def reading_to_domain(row: models.WaterReading) -> domain.WaterReading:
    return domain.WaterReading(id=row.id, tank_id=row.tank_id, taken_at=row.taken_at, values=row.values())


def threshold_to_domain(row: models.ParameterThreshold) -> domain.ParameterThreshold:
    return domain.ParameterThreshold(
        id=row.id,
        tank_id=row.tank_id,
        owner_id=row.owner_id,
        parameter=WaterParameter(row.parameter),
        min_value=row.min_value,
        max_value=row.max_value,
        severity=Severity(row.severity),
        enabled=bool(row.enabled),
        message=row.message,
        updated_at=row.updated_at,
    )


def alert_to_domain(row: models.TriggeredAlert) -> domain.TriggeredAlert:
    return domain.TriggeredAlert(
        id=row.id,
        tank_id=row.tank_id,
        owner_id=row.owner_id,
        threshold_id=row.threshold_id,
        parameter=WaterParameter(row.parameter),
        reading_id=row.reading_id,
        last_reading_id=row.last_reading_id,
        actual_value=row.actual_value,
        violated_bound=row.violated_bound,
        bound_value=row.bound_value,
        severity=Severity(row.severity),
        message=row.message,
        triggered_at=row.triggered_at,
        last_triggered_at=row.last_triggered_at,
        trigger_count=row.trigger_count,
        acknowledged=bool(row.acknowledged),
        acknowledged_at=row.acknowledged_at,
        resolved=bool(row.resolved),
        resolved_at=row.resolved_at,
        resolving_reading_id=row.resolving_reading_id,
    )


class SqlThresholdStore:
    def __init__(self, db: Session):
        self.db = db

    def list_for_tank(self, tank_id: int) -> List[domain.ParameterThreshold]:
        rows = (
            self.db.query(models.ParameterThreshold)
            .filter(models.ParameterThreshold.tank_id == tank_id)
            .order_by(models.ParameterThreshold.id.asc())
            .all()
        )
        return [threshold_to_domain(r) for r in rows]

    def get_active_thresholds(self, tank_id: int) -> List[domain.ParameterThreshold]:
        return [t for t in self.list_for_tank(tank_id) if t.enabled]

    def upsert(self, threshold: domain.ParameterThreshold) -> domain.ParameterThreshold:
        validate_threshold(threshold)
        if threshold.id is not None:
            row = self.db.get(models.ParameterThreshold, threshold.id)
            if row is None:
                raise NotFound(f"threshold {threshold.id} not found for tank {threshold.tank_id}")
            check_same_target(threshold_to_domain(row), threshold)
        else:
            row = models.ParameterThreshold(tank_id=threshold.tank_id)
            self.db.add(row)

        row.owner_id = threshold.owner_id
        row.parameter = threshold.parameter.value
        row.min_value = threshold.min_value
        row.max_value = threshold.max_value
        row.severity = threshold.severity.value
        row.enabled = threshold.enabled
        row.message = threshold.message
        row.updated_at = domain.utcnow()
        self.db.flush()
        return threshold_to_domain(row)


class SqlAlertRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, alert_id: int) -> Optional[domain.TriggeredAlert]:
        row = self.db.get(models.TriggeredAlert, alert_id)
        return alert_to_domain(row) if row else None

    def open_alerts(self, tank_id: int) -> List[domain.TriggeredAlert]:
        rows = (
            self.db.query(models.TriggeredAlert)
            .filter(
                models.TriggeredAlert.tank_id == tank_id,
                models.TriggeredAlert.resolved == False,  # noqa: E712
            )
            .all()
        )
        return [alert_to_domain(r) for r in rows]

    def for_tank(self, tank_id: int, limit: int = 50) -> List[domain.TriggeredAlert]:
        rows = (
            self.db.query(models.TriggeredAlert)
            .filter(models.TriggeredAlert.tank_id == tank_id)
            .order_by(desc(models.TriggeredAlert.triggered_at))
            .limit(limit)
            .all()
        )
        return [alert_to_domain(r) for r in rows]

    def add(self, alert: domain.TriggeredAlert) -> domain.TriggeredAlert:
        row = models.TriggeredAlert(
            tank_id=alert.tank_id,
            owner_id=alert.owner_id,
            threshold_id=alert.threshold_id,
            parameter=alert.parameter.value,
            reading_id=alert.reading_id,
            actual_value=alert.actual_value,
            violated_bound=alert.violated_bound,
            bound_value=alert.bound_value,
            severity=alert.severity.value,
            message=alert.message,
            triggered_at=alert.triggered_at,
        )
        self._copy_lifecycle(alert, row)
        self.db.add(row)
        self.db.flush()
        alert.id = row.id
        return alert

    def save(self, alert: domain.TriggeredAlert) -> domain.TriggeredAlert:
        row = self.db.get(models.TriggeredAlert, alert.id)
        if row is None:
            raise NotFound(f"alert {alert.id} not found")
        self._copy_lifecycle(alert, row)
        self.db.flush()
        return alert

    @staticmethod
    def _copy_lifecycle(alert: domain.TriggeredAlert, row: models.TriggeredAlert) -> None:
        row.last_triggered_at = alert.last_triggered_at
        row.last_reading_id = alert.last_reading_id
        row.trigger_count = alert.trigger_count
        row.acknowledged = alert.acknowledged
        row.acknowledged_at = alert.acknowledged_at
        row.resolved = alert.resolved
        row.resolved_at = alert.resolved_at
        row.resolving_reading_id = alert.resolving_reading_id


class SqlReadingHistory:
    def __init__(self, db: Session):
        self.db = db

    def get_readings(self, tank_id: int, parameter: WaterParameter, limit: int) -> List[Point]:
        """Most recent `limit` non-null values for the parameter, oldest first."""
        column = getattr(models.WaterReading, parameter.value)
        rows = (
            self.db.query(models.WaterReading.taken_at, column)
            .filter(models.WaterReading.tank_id == tank_id, column.isnot(None))
            .order_by(desc(models.WaterReading.taken_at), desc(models.WaterReading.id))
            .limit(limit)
            .all()
        )
        return [(t, float(v)) for t, v in reversed(rows)]

    def tank_of(self, reading_id: int) -> Optional[int]:
        row = self.db.get(models.WaterReading, reading_id)
        return row.tank_id if row else None
