"""Pytest configuration and shared fixtures."""

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

# The database module refuses to import without a URL; point it at a scratch file.
_DB_DIR = tempfile.mkdtemp(prefix="aquahub-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from aquahub.domain import ParameterThreshold, WaterReading  # noqa: E402
from aquahub.lifecycle import InMemoryAlertRepository  # noqa: E402
from aquahub.parameters import Severity, WaterParameter  # noqa: E402
from aquahub.thresholds import InMemoryThresholdStore  # noqa: E402

T0 = datetime(2026, 3, 1, 9, 0, 0)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, owner_id, alert):
        self.sent.append((owner_id, alert))


class FakeHistory:
    def __init__(self):
        self.series: Dict[Tuple[int, WaterParameter], List[Tuple[datetime, float]]] = {}

    def add(self, tank_id, parameter, points):
        self.series.setdefault((tank_id, parameter), []).extend(points)

    def get_readings(self, tank_id, parameter, limit):
        return list(self.series.get((tank_id, parameter), []))[-limit:]


@pytest.fixture
def thresholds():
    return InMemoryThresholdStore()


@pytest.fixture
def alerts():
    return InMemoryAlertRepository()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def history():
    return FakeHistory()


def make_reading(tank_id=1, offset_days=0, reading_id=None, **values):
    return WaterReading(
        id=reading_id,
        tank_id=tank_id,
        taken_at=T0 + timedelta(days=offset_days),
        values={WaterParameter(k): v for k, v in values.items()},
    )


def make_threshold(parameter=WaterParameter.PH, tank_id=1, severity=Severity.WARNING, **kwargs):
    return ParameterThreshold(
        tank_id=tank_id,
        parameter=parameter,
        severity=severity,
        owner_id=kwargs.pop("owner_id", "user-1"),
        **kwargs,
    )
