import logging
from typing import Optional, Protocol

import requests

from .domain import TriggeredAlert

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, owner_id: str, alert: TriggeredAlert) -> None:
        ...


class LoggingNotifier:
    """Default dispatcher: records notify-worthy alerts in the log only."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def notify(self, owner_id: str, alert: TriggeredAlert) -> None:
        self.log.info(
            "notify owner=%s alert=%s severity=%s message=%s",
            owner_id,
            alert.id,
            alert.severity.value,
            alert.message,
        )


class WebhookNotifier:
    """POSTs each alert as JSON to a webhook (mail/push gateways live behind it)."""

    def __init__(self, url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def notify(self, owner_id: str, alert: TriggeredAlert) -> None:
        payload = {"owner_id": owner_id, "alert": alert.to_dict()}
        resp = self.session.post(self.url, json=payload, timeout=self.timeout)
        resp.raise_for_status()

