import logging

import pytest
import requests

from aquahub.domain import TriggeredAlert
from aquahub.notifications import LoggingNotifier, WebhookNotifier
from aquahub.parameters import Severity, WaterParameter

from conftest import T0


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, status_code=202):
        self.status_code = status_code
        self.calls = []

    def post(self, url, json=None, timeout=None):
        self.calls.append((url, json, timeout))
        return FakeResponse(self.status_code)


@pytest.fixture
def alert():
    return TriggeredAlert(
        id=3,
        tank_id=1,
        threshold_id=2,
        parameter=WaterParameter.AMMONIA,
        reading_id=9,
        actual_value=1.0,
        violated_bound="max",
        bound_value=0.25,
        severity=Severity.CRITICAL,
        triggered_at=T0,
        owner_id="user-1",
        message="Ammonia 1 is above maximum 0.25",
    )


def test_webhook_posts_alert_json(alert):
    session = FakeSession()
    WebhookNotifier("http://hooks.local/alerts", timeout=2.5, session=session).notify("user-1", alert)

    url, body, timeout = session.calls[0]
    assert url == "http://hooks.local/alerts"
    assert timeout == 2.5
    assert body["owner_id"] == "user-1"
    assert body["alert"]["parameter"] == "ammonia"
    assert body["alert"]["severity"] == "critical"
    assert body["alert"]["state"] == "open"


def test_webhook_raises_on_http_error(alert):
    with pytest.raises(requests.HTTPError):
        WebhookNotifier("http://hooks.local/alerts", session=FakeSession(500)).notify("user-1", alert)


def test_logging_notifier(alert, caplog):
    with caplog.at_level(logging.INFO, logger="aquahub.notifications"):
        LoggingNotifier().notify("user-1", alert)
    assert "owner=user-1" in caplog.text
    assert "severity=critical" in caplog.text
