import math

import pytest

from aquahub.errors import NotFound, ValidationError
from aquahub.parameters import Severity, TankType, WaterParameter, applicable_parameters
from aquahub.thresholds import default_thresholds

from conftest import make_threshold


@pytest.mark.parametrize("lo,hi", [(8.4, 7.8), (1.0, 0.0), (-1.0, -2.0)])
def test_upsert_rejects_min_above_max(thresholds, lo, hi):
    with pytest.raises(ValidationError):
        thresholds.upsert(make_threshold(min_value=lo, max_value=hi))
    assert thresholds.get_active_thresholds(1) == []


def test_upsert_accepts_equal_bounds_and_single_bound(thresholds):
    a = thresholds.upsert(make_threshold(min_value=8.0, max_value=8.0))
    b = thresholds.upsert(make_threshold(parameter=WaterParameter.NITRATE, max_value=20.0))
    assert a.id != b.id
    assert {t.id for t in thresholds.get_active_thresholds(1)} == {a.id, b.id}


def test_upsert_requires_a_finite_bound(thresholds):
    with pytest.raises(ValidationError):
        thresholds.upsert(make_threshold())
    with pytest.raises(ValidationError):
        thresholds.upsert(make_threshold(max_value=math.inf))


def test_upsert_updates_in_place(thresholds):
    saved = thresholds.upsert(make_threshold(min_value=7.8))
    saved.min_value = 7.9
    saved.severity = Severity.CRITICAL
    again = thresholds.upsert(saved)
    assert again.id == saved.id
    active = thresholds.get_active_thresholds(1)
    assert len(active) == 1
    assert active[0].min_value == 7.9
    assert active[0].severity == Severity.CRITICAL


def test_active_thresholds_skip_disabled_and_other_tanks(thresholds):
    thresholds.upsert(make_threshold(min_value=7.8, enabled=False))
    thresholds.upsert(make_threshold(min_value=7.8, tank_id=2))
    kept = thresholds.upsert(make_threshold(max_value=8.4))
    assert [t.id for t in thresholds.get_active_thresholds(1)] == [kept.id]


def test_default_thresholds_follow_tank_type():
    reef = {t.parameter: t for t in default_thresholds(5, "user-1", TankType.REEF)}
    assert reef[WaterParameter.CALCIUM].min_value == 400.0
    assert reef[WaterParameter.PH].min_value == 7.8
    assert WaterParameter.GH not in reef
    assert all(t.tank_id == 5 and t.owner_id == "user-1" for t in reef.values())

    planted = {t.parameter for t in default_thresholds(6, "user-1", TankType.PLANTED)}
    assert {WaterParameter.CO2, WaterParameter.IRON, WaterParameter.GH} <= planted
    assert WaterParameter.CALCIUM not in planted


def test_applicability_always_includes_core_parameters():
    for tank_type in TankType:
        params = applicable_parameters(tank_type)
        assert WaterParameter.PH in params
        assert WaterParameter.AMMONIA in params
    assert WaterParameter.SALINITY in applicable_parameters(TankType.BRACKISH)


def test_update_cannot_move_threshold_to_another_parameter(thresholds):
    saved = thresholds.upsert(make_threshold(min_value=7.8))
    moved = make_threshold(WaterParameter.NITRATE, max_value=20.0, id=saved.id)

    with pytest.raises(ValidationError):
        thresholds.upsert(moved)
    assert [t.parameter for t in thresholds.get_active_thresholds(1)] == [WaterParameter.PH]


def test_update_cannot_move_threshold_to_another_tank(thresholds):
    saved = thresholds.upsert(make_threshold(min_value=7.8))
    with pytest.raises(NotFound):
        thresholds.upsert(make_threshold(min_value=7.8, tank_id=2, id=saved.id))
    assert thresholds.get_active_thresholds(2) == []
