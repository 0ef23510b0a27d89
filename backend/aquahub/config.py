import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _parse_origins(raw: str) -> list[str]:
    if not raw:
        return ["*"]
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    return parts or ["*"]


@dataclass(frozen=True)
class Settings:
    # DB
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Web
    CORS_ORIGINS: list[str] = field(default_factory=lambda: _parse_origins(os.getenv("CORS_ORIGINS", "")))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Alerting
    ALERT_RESOLVE_MARGIN: float = float(os.getenv("ALERT_RESOLVE_MARGIN", "0"))
    NOTIFY_WEBHOOK_URL: str | None = os.getenv("NOTIFY_WEBHOOK_URL") or None
    NOTIFY_TIMEOUT_SEC: float = float(os.getenv("NOTIFY_TIMEOUT_SEC", "5"))

    # Prediction
    PREDICTION_MAX_POINTS: int = int(os.getenv("PREDICTION_MAX_POINTS", "120"))
    PREDICTION_HORIZON_DAYS: float = float(os.getenv("PREDICTION_HORIZON_DAYS", "7"))


settings = Settings()


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
