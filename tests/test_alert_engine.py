import math
from datetime import timedelta

import pytest

from aquahub.alert_engine import AlertEvaluator, select_violation
from aquahub.domain import AlertState
from aquahub.errors import InvalidReading, ValidationError
from aquahub.parameters import Severity, WaterParameter

from conftest import T0, make_reading, make_threshold


def run(evaluator, thresholds, alerts, reading):
    """Evaluate and persist into the in-memory repositories, like AlertService does."""
    result = evaluator.evaluate(reading, thresholds.get_active_thresholds(reading.tank_id), alerts.open_alerts(reading.tank_id))
    for alert in result.created:
        alerts.add(alert)
    return result


@pytest.fixture
def evaluator():
    return AlertEvaluator()


def test_low_ph_opens_alert(evaluator, thresholds, alerts):
    th = thresholds.upsert(make_threshold(min_value=7.8, max_value=8.4))
    result = run(evaluator, thresholds, alerts, make_reading(reading_id=10, ph=7.5))

    assert len(result.created) == 1
    alert = result.created[0]
    assert alert.threshold_id == th.id
    assert alert.reading_id == 10
    assert alert.actual_value == 7.5
    assert alert.violated_bound == "min"
    assert alert.bound_value == 7.8
    assert alert.state == AlertState.OPEN
    assert alert.trigger_count == 1
    assert alert.owner_id == "user-1"
    assert "below minimum 7.8" in alert.message


def test_custom_message_is_used(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(WaterParameter.AMMONIA, max_value=0.25, message="Ammonia spike - water change now"))
    result = run(evaluator, thresholds, alerts, make_reading(ammonia=1.0))
    assert result.created[0].message == "Ammonia spike - water change now"
    assert result.created[0].violated_bound == "max"


def test_null_parameter_contributes_nothing(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8))
    first = run(evaluator, thresholds, alerts, make_reading(ph=7.0))
    assert len(first.created) == 1

    result = run(evaluator, thresholds, alerts, make_reading(offset_days=1, ph=None, nitrate=10.0))
    assert result.touched() == []
    assert alerts.open_alerts(1)[0].trigger_count == 1


def test_unmonitored_parameters_are_skipped(evaluator, thresholds, alerts):
    result = run(evaluator, thresholds, alerts, make_reading(ph=3.0, nitrate=500.0))
    assert result.touched() == []
    assert result.failures == {}


def test_evaluating_same_reading_twice_does_not_duplicate(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8))
    reading = make_reading(reading_id=1, ph=7.2)

    first = run(evaluator, thresholds, alerts, reading)
    second = run(evaluator, thresholds, alerts, reading)

    assert len(first.created) == 1
    assert second.touched() == []
    open_alerts = alerts.open_alerts(1)
    assert len(open_alerts) == 1
    assert open_alerts[0].trigger_count == 1


def test_retrying_a_refreshing_reading_counts_once(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8))
    run(evaluator, thresholds, alerts, make_reading(reading_id=1, ph=7.2))
    repeat = make_reading(reading_id=2, offset_days=1, ph=7.3)

    assert len(run(evaluator, thresholds, alerts, repeat).updated) == 1
    assert run(evaluator, thresholds, alerts, repeat).updated == []

    alert = alerts.open_alerts(1)[0]
    assert alert.trigger_count == 2
    assert alert.last_reading_id == 2
    assert alert.last_triggered_at == T0 + timedelta(days=1)


def test_repeat_violation_refreshes_without_changing_trigger_facts(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8))
    run(evaluator, thresholds, alerts, make_reading(reading_id=1, ph=7.5))
    result = run(evaluator, thresholds, alerts, make_reading(reading_id=2, offset_days=2, ph=7.1))

    alert = result.updated[0]
    assert alert.trigger_count == 2
    assert alert.last_triggered_at == T0 + timedelta(days=2)
    assert alert.triggered_at == T0
    assert alert.reading_id == 1
    assert alert.actual_value == 7.5


def test_in_range_reading_self_heals(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8))
    run(evaluator, thresholds, alerts, make_reading(reading_id=1, ph=7.5))

    result = run(evaluator, thresholds, alerts, make_reading(reading_id=2, offset_days=1, ph=8.0))

    assert result.created == []
    assert len(result.resolved) == 1
    healed = result.resolved[0]
    assert healed.state == AlertState.RESOLVED
    assert healed.resolving_reading_id == 2
    assert healed.resolved_at == T0 + timedelta(days=1)
    assert healed.acknowledged is False
    assert alerts.open_alerts(1) == []


def test_new_violation_after_resolution_opens_fresh_alert(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8))
    first = run(evaluator, thresholds, alerts, make_reading(reading_id=1, ph=7.5)).created[0]
    run(evaluator, thresholds, alerts, make_reading(reading_id=2, offset_days=1, ph=8.0))
    result = run(evaluator, thresholds, alerts, make_reading(reading_id=3, offset_days=2, ph=7.4))

    assert len(result.created) == 1
    assert result.created[0].id != first.id
    assert first.resolved is True


def test_most_severe_violation_wins(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8, severity=Severity.WARNING))
    critical = thresholds.upsert(make_threshold(min_value=7.6, severity=Severity.CRITICAL))

    result = run(evaluator, thresholds, alerts, make_reading(ph=7.0))

    assert len(result.created) == 1
    assert result.created[0].severity == Severity.CRITICAL
    assert result.created[0].threshold_id == critical.id


def test_severity_tie_goes_to_most_recently_updated():
    older = make_threshold(min_value=7.8, id=1, updated_at=T0)
    newer = make_threshold(min_value=7.5, id=2, updated_at=T0 + timedelta(hours=1))
    threshold, which = select_violation([newer, older], 7.0)
    assert threshold is newer
    assert which == "min"
    assert select_violation([older, newer], 8.0) is None


def test_escalation_is_reported(evaluator, thresholds, alerts):
    thresholds.upsert(make_threshold(min_value=7.8, severity=Severity.WARNING))
    first = run(evaluator, thresholds, alerts, make_reading(ph=7.7))
    assert first.escalated == []

    thresholds.upsert(make_threshold(min_value=7.5, severity=Severity.CRITICAL))
    second = run(evaluator, thresholds, alerts, make_reading(offset_days=1, ph=7.2))

    assert len(second.created) == 1
    assert second.escalated == second.created
    # the warning alert stays open while the parameter is still out of range
    assert len(alerts.open_alerts(1)) == 2


def test_resolve_margin_adds_hysteresis(thresholds, alerts):
    evaluator = AlertEvaluator(resolve_margin=0.1)
    thresholds.upsert(make_threshold(min_value=7.8))
    run(evaluator, thresholds, alerts, make_reading(ph=7.5))

    inside_band = run(evaluator, thresholds, alerts, make_reading(offset_days=1, ph=7.85))
    assert inside_band.touched() == []
    assert len(alerts.open_alerts(1)) == 1

    clear = run(evaluator, thresholds, alerts, make_reading(offset_days=2, ph=7.95))
    assert len(clear.resolved) == 1


def test_reading_without_tank_is_rejected(evaluator):
    reading = make_reading(ph=7.0)
    reading.tank_id = None
    with pytest.raises(InvalidReading):
        evaluator.evaluate(reading, [], [])


def test_non_finite_value_is_rejected(evaluator):
    with pytest.raises(ValidationError):
        evaluator.evaluate(make_reading(ph=math.nan), [], [])


def test_failure_on_one_parameter_does_not_stop_others(evaluator, alerts):
    broken = make_threshold(min_value=8.0, max_value=7.0, id=1)
    nitrate = make_threshold(WaterParameter.NITRATE, max_value=20.0, id=2)

    result = evaluator.evaluate(make_reading(ph=7.5, nitrate=40.0), [broken, nitrate], [])

    assert WaterParameter.PH in result.failures
    assert len(result.created) == 1
    assert result.created[0].parameter == WaterParameter.NITRATE
