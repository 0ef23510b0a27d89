import gc
import threading
from datetime import timedelta

import pytest

from aquahub.domain import AlertState, InsufficientData, ParameterPrediction
from aquahub.errors import InvalidReading, InvalidTransition
from aquahub.parameters import Severity, WaterParameter
from aquahub.services import AlertService, PredictionService, TankLocks

from conftest import T0, make_reading, make_threshold


class FakeTransaction:
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class BrokenNotifier:
    def notify(self, owner_id, alert):
        raise ConnectionError("gateway down")


@pytest.fixture
def tx():
    return FakeTransaction()


@pytest.fixture
def service(thresholds, alerts, notifier, tx):
    return AlertService(thresholds, alerts, notifier, transaction=tx, locks=TankLocks())


def test_evaluate_persists_commits_and_notifies(service, thresholds, alerts, notifier, tx):
    thresholds.upsert(make_threshold(min_value=7.8, owner_id="owner-9"))

    result = service.evaluate(make_reading(reading_id=1, ph=7.4))

    assert tx.commits == 1
    assert result.created[0].id is not None
    assert alerts.get(result.created[0].id) is result.created[0]
    assert [(owner, a.id) for owner, a in notifier.sent] == [("owner-9", result.created[0].id)]


def test_repeat_and_resolution_do_not_notify(service, thresholds, notifier):
    thresholds.upsert(make_threshold(min_value=7.8))
    service.evaluate(make_reading(reading_id=1, ph=7.4))
    service.evaluate(make_reading(reading_id=2, offset_days=1, ph=7.3))
    healed = service.evaluate(make_reading(reading_id=3, offset_days=2, ph=8.1))

    assert len(notifier.sent) == 1
    assert healed.resolved[0].state == AlertState.RESOLVED
    assert service.open_alerts_for_tank(1) == []


def test_escalation_notifies_again(service, thresholds, notifier):
    thresholds.upsert(make_threshold(min_value=7.8, severity=Severity.WARNING))
    thresholds.upsert(make_threshold(min_value=7.4, severity=Severity.CRITICAL))
    service.evaluate(make_reading(ph=7.6))
    service.evaluate(make_reading(offset_days=1, ph=7.1))

    assert [a.severity for _, a in notifier.sent] == [Severity.WARNING, Severity.CRITICAL]


def test_notifier_failure_keeps_the_alert(thresholds, alerts, tx):
    service = AlertService(thresholds, alerts, BrokenNotifier(), transaction=tx)
    thresholds.upsert(make_threshold(min_value=7.8))

    result = service.evaluate(make_reading(ph=7.0))

    assert tx.commits == 1
    assert tx.rollbacks == 0
    assert len(alerts.open_alerts(1)) == 1
    assert result.created


def test_invalid_reading_is_rejected_before_any_work(service, tx):
    reading = make_reading(ph=7.0)
    reading.tank_id = None
    with pytest.raises(InvalidReading):
        service.evaluate(reading)
    assert tx.commits == 0


def test_failed_transition_rolls_back(service, thresholds, tx):
    thresholds.upsert(make_threshold(min_value=7.8))
    alert = service.evaluate(make_reading(ph=7.0)).created[0]
    service.resolve(alert.id, None)

    with pytest.raises(InvalidTransition):
        service.acknowledge(alert.id)
    assert tx.rollbacks == 1


def test_tank_lock_is_shared_per_tank():
    locks = TankLocks()
    assert locks.lock_for(1) is locks.lock_for(1)
    assert locks.lock_for(1) is not locks.lock_for(2)


def test_concurrent_evaluations_for_one_tank_open_one_alert(service, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8))
    readings = [make_reading(reading_id=i, ph=7.0) for i in range(8)]
    workers = [threading.Thread(target=service.evaluate, args=(r,)) for r in readings]
    for w in workers:
        w.start()
    for w in workers:
        w.join()

    open_alerts = alerts.open_alerts(1)
    assert len(open_alerts) == 1
    assert open_alerts[0].trigger_count == 8


def test_prediction_service_uses_history_and_thresholds(history, thresholds):
    history.add(1, WaterParameter.PH, [(T0 + timedelta(days=i), 7.8 + 0.1 * i) for i in range(3)])
    thresholds.upsert(make_threshold(max_value=8.4))
    service = PredictionService(history, thresholds)

    result = service.predict(1, WaterParameter.PH, horizon_days=7)

    assert isinstance(result, ParameterPrediction)
    assert result.is_warning is True
    assert isinstance(service.predict(1, WaterParameter.NITRATE), InsufficientData)


def test_tank_forecast_summary(history, thresholds):
    for i in range(5):
        history.add(1, WaterParameter.PH, [(T0 + timedelta(days=i), 8.1)])
        history.add(1, WaterParameter.NITRATE, [(T0 + timedelta(days=i), 5.0 + 4.0 * i)])
    thresholds.upsert(make_threshold(WaterParameter.NITRATE, max_value=20.0))
    service = PredictionService(history, thresholds)

    forecast = service.predict_tank(1, [WaterParameter.PH, WaterParameter.NITRATE, WaterParameter.AMMONIA])

    assert {p.parameter for p in forecast.predictions} == {WaterParameter.PH, WaterParameter.NITRATE}
    assert [i.parameter for i in forecast.insufficient] == [WaterParameter.AMMONIA]
    assert forecast.warning_count == 1
    assert forecast.overall == "Fair"


def test_idle_tank_locks_are_released():
    locks = TankLocks()
    with locks.hold(1):
        assert len(locks) == 1
    gc.collect()
    assert len(locks) == 0


def test_retried_reading_is_not_counted_twice(service, thresholds, alerts, notifier):
    thresholds.upsert(make_threshold(min_value=7.8))
    reading = make_reading(reading_id=4, ph=7.0)
    service.evaluate(reading)
    retry = service.evaluate(reading)

    assert retry.touched() == []
    assert alerts.open_alerts(1)[0].trigger_count == 1
    assert len(notifier.sent) == 1


def test_accuracy_report_backtests_every_parameter(history, thresholds):
    history.add(1, WaterParameter.PH, [(T0 + timedelta(days=i), v) for i, v in enumerate([8.0, 8.0, 8.0, 8.8])])
    history.add(1, WaterParameter.NITRATE, [(T0 + timedelta(days=i), 5.0 + i) for i in range(4)])
    service = PredictionService(history, thresholds)

    report = service.accuracy_report(1, [WaterParameter.PH, WaterParameter.NITRATE, WaterParameter.AMMONIA])

    assert report.predictions_evaluated == 4
    assert report.accuracy_by_parameter[WaterParameter.PH] == 4.55
    assert report.accuracy_by_parameter[WaterParameter.NITRATE] == 0.0
    assert WaterParameter.AMMONIA not in report.accuracy_by_parameter
    assert report.accuracy_within_10_percent == 100.0
    assert report.average_error_percentage == pytest.approx(2.27, abs=0.01)
    assert report.overall_rating.startswith("Excellent")


def test_accuracy_report_without_history(history, thresholds):
    report = PredictionService(history, thresholds).accuracy_report(1, [WaterParameter.PH])
    assert report.predictions_evaluated == 0
    assert report.overall_rating == "No data available"
