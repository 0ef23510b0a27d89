import logging
from typing import Callable, Dict, List, Optional, Protocol

from .domain import TriggeredAlert, utcnow
from .errors import NotFound, ValidationError

logger = logging.getLogger(__name__)


class AlertRepository(Protocol):
    def get(self, alert_id: int) -> Optional[TriggeredAlert]:
        ...

    def open_alerts(self, tank_id: int) -> List[TriggeredAlert]:
        ...

    def add(self, alert: TriggeredAlert) -> TriggeredAlert:
        ...

    def save(self, alert: TriggeredAlert) -> TriggeredAlert:
        ...


class ReadingLookup(Protocol):
    def tank_of(self, reading_id: int) -> Optional[int]:
        ...


def severity_order(alerts: List[TriggeredAlert]) -> List[TriggeredAlert]:
    """Most severe first; oldest first within a severity."""
    return sorted(alerts, key=lambda a: (-a.severity.rank, a.triggered_at, a.id or 0))


class AlertLifecycle:
    """
    Open -> Acknowledged -> Resolved, or Open -> Resolved directly.

    Acknowledging is idempotent; anything attempted on a resolved alert raises
    InvalidTransition.
    """

    def __init__(
        self,
        alerts: AlertRepository,
        clock: Callable = utcnow,
        log: Optional[logging.Logger] = None,
        readings: Optional[ReadingLookup] = None,
    ):
        self.alerts = alerts
        self.readings = readings
        self.clock = clock
        self.log = log or logger

    def _load(self, alert_id: int) -> TriggeredAlert:
        alert = self.alerts.get(alert_id)
        if alert is None:
            raise NotFound(f"alert {alert_id} not found")
        return alert

    def acknowledge(self, alert_id: int) -> TriggeredAlert:
        alert = self._load(alert_id)
        alert.acknowledge(self.clock())
        self.log.info("alert=%s acknowledged", alert_id)
        return self.alerts.save(alert)

    def resolve(self, alert_id: int, resolving_reading_id: Optional[int] = None) -> TriggeredAlert:
        alert = self._load(alert_id)
        if resolving_reading_id is not None:
            self._check_reading(alert, resolving_reading_id)
        alert.resolve(self.clock(), resolving_reading_id)
        self.log.info("alert=%s resolved reading=%s", alert_id, resolving_reading_id)
        return self.alerts.save(alert)

    def _check_reading(self, alert: TriggeredAlert, reading_id: int) -> None:
        if self.readings is None:
            return
        tank_id = self.readings.tank_of(reading_id)
        if tank_id is None:
            raise NotFound(f"reading {reading_id} not found")
        if tank_id != alert.tank_id:
            raise ValidationError(f"reading {reading_id} belongs to tank {tank_id}, not tank {alert.tank_id}")

    def open_alerts_for_tank(self, tank_id: int) -> List[TriggeredAlert]:
        return severity_order(self.alerts.open_alerts(tank_id))


class InMemoryAlertRepository:
    def __init__(self):
        self._items: Dict[int, TriggeredAlert] = {}
        self._next_id = 1

    def get(self, alert_id: int) -> Optional[TriggeredAlert]:
        return self._items.get(alert_id)

    def open_alerts(self, tank_id: int) -> List[TriggeredAlert]:
        return [a for a in self._items.values() if a.tank_id == tank_id and not a.resolved]

    def add(self, alert: TriggeredAlert) -> TriggeredAlert:
        alert.id = self._next_id
        self._next_id += 1
        self._items[alert.id] = alert
        return alert

    def save(self, alert: TriggeredAlert) -> TriggeredAlert:
        self._items[alert.id] = alert
        return alert
