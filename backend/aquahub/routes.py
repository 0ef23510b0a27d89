import logging
from datetime import timezone
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session

from . import domain
from .alert_engine import AlertEvaluator
from .config import settings
from .database import get_db
from .errors import InvalidReading, NotFound
from .models import Livestock, Tank, WaterReading
from .notifications import LoggingNotifier, Notifier, WebhookNotifier
from .parameters import TankType, WaterParameter, applicable_parameters
from .repositories import SqlAlertRepository, SqlReadingHistory, SqlThresholdStore, reading_to_domain
from .schemas import (
    AlertOut,
    EvaluationOut,
    InsufficientDataOut,
    LivestockCreate,
    LivestockOut,
    PredictionAccuracyOut,
    PredictionOut,
    ReadingCreate,
    ReadingOut,
    ResolveRequest,
    TankCreate,
    TankForecastOut,
    TankOut,
    ThresholdIn,
    ThresholdOut,
)
from .services import AlertService, PredictionService
from .thresholds import default_thresholds

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


def get_notifier() -> Notifier:
    if settings.NOTIFY_WEBHOOK_URL:
        return WebhookNotifier(settings.NOTIFY_WEBHOOK_URL, timeout=settings.NOTIFY_TIMEOUT_SEC)
    return LoggingNotifier()


def get_alert_service(db: Session = Depends(get_db), notifier: Notifier = Depends(get_notifier)) -> AlertService:
    return AlertService(
        thresholds=SqlThresholdStore(db),
        alerts=SqlAlertRepository(db),
        notifier=notifier,
        evaluator=AlertEvaluator(resolve_margin=settings.ALERT_RESOLVE_MARGIN),
        transaction=db,
        readings=SqlReadingHistory(db),
    )


def get_prediction_service(db: Session = Depends(get_db)) -> PredictionService:
    return PredictionService(
        history=SqlReadingHistory(db),
        thresholds=SqlThresholdStore(db),
        max_points=settings.PREDICTION_MAX_POINTS,
    )


def _ensure_tank(db: Session, tank_id: int) -> Tank:
    tank = db.query(Tank).filter(Tank.id == tank_id).first()
    if not tank:
        raise NotFound("Tank not found")
    return tank


def _tank_out(tank: Tank) -> TankOut:
    out = TankOut.model_validate(tank)
    out.parameters = applicable_parameters(TankType(tank.tank_type))
    return out


def _prediction_out(result: Union[domain.ParameterPrediction, domain.InsufficientData]):
    if isinstance(result, domain.InsufficientData):
        return InsufficientDataOut.model_validate(result)
    return PredictionOut.model_validate(result)


# -----------------------------
# Tanks
# -----------------------------
@router.get("/tanks", response_model=list[TankOut])
def list_tanks(owner_id: Optional[str] = None, db: Session = Depends(get_db)):
    q = db.query(Tank)
    if owner_id:
        q = q.filter(Tank.owner_id == owner_id)
    return [_tank_out(t) for t in q.order_by(Tank.id.asc()).all()]


@router.post("/tanks", response_model=TankOut, status_code=201)
def create_tank(payload: TankCreate, db: Session = Depends(get_db)):
    tank = Tank(
        owner_id=payload.owner_id,
        name=payload.name,
        tank_type=payload.tank_type.value,
        volume_gallons=payload.volume_gallons,
    )
    db.add(tank)
    db.commit()
    db.refresh(tank)
    logger.info("tank=%s created owner=%s type=%s", tank.id, tank.owner_id, tank.tank_type)
    return _tank_out(tank)


@router.get("/tanks/{tank_id}", response_model=TankOut)
def get_tank(tank_id: int, db: Session = Depends(get_db)):
    return _tank_out(_ensure_tank(db, tank_id))


# -----------------------------
# Thresholds
# -----------------------------
@router.get("/tanks/{tank_id}/thresholds", response_model=list[ThresholdOut])
def list_thresholds(tank_id: int, db: Session = Depends(get_db)):
    _ensure_tank(db, tank_id)
    return [ThresholdOut.model_validate(t) for t in SqlThresholdStore(db).list_for_tank(tank_id)]


@router.post("/tanks/{tank_id}/thresholds", response_model=ThresholdOut)
def upsert_threshold(tank_id: int, payload: ThresholdIn, db: Session = Depends(get_db)):
    tank = _ensure_tank(db, tank_id)
    threshold = domain.ParameterThreshold(
        id=payload.id,
        tank_id=tank_id,
        owner_id=tank.owner_id,
        parameter=payload.parameter,
        min_value=payload.min_value,
        max_value=payload.max_value,
        severity=payload.severity,
        enabled=payload.enabled,
        message=payload.message,
    )
    saved = SqlThresholdStore(db).upsert(threshold)
    db.commit()
    return ThresholdOut.model_validate(saved)


@router.post("/tanks/{tank_id}/thresholds/defaults", response_model=list[ThresholdOut])
def seed_default_thresholds(tank_id: int, db: Session = Depends(get_db)):
    """Create warning thresholds from built-in safe ranges for parameters not yet configured."""
    tank = _ensure_tank(db, tank_id)
    store = SqlThresholdStore(db)
    configured = {t.parameter for t in store.list_for_tank(tank_id)}
    saved = []
    for threshold in default_thresholds(tank_id, tank.owner_id, TankType(tank.tank_type)):
        if threshold.parameter not in configured:
            saved.append(ThresholdOut.model_validate(store.upsert(threshold)))
    db.commit()
    return saved


# -----------------------------
# Readings
# -----------------------------
@router.post("/readings", response_model=EvaluationOut, status_code=201)
def record_reading(
    payload: ReadingCreate,
    db: Session = Depends(get_db),
    service: AlertService = Depends(get_alert_service),
):
    if payload.tank_id is None:
        logger.warning("rejected reading without tank association")
        raise InvalidReading("reading has no tank association")
    _ensure_tank(db, payload.tank_id)

    taken_at = payload.taken_at or domain.utcnow()
    if taken_at.tzinfo is not None:
        taken_at = taken_at.astimezone(timezone.utc).replace(tzinfo=None)

    reading = WaterReading(tank_id=payload.tank_id, notes=payload.notes, taken_at=taken_at)
    for parameter, value in payload.values().items():
        setattr(reading, parameter.value, value)
    db.add(reading)
    db.flush()

    # Evaluation commits the reading together with its alert changes.
    result = service.evaluate(reading_to_domain(reading))
    return EvaluationOut(
        reading_id=result.reading_id,
        tank_id=result.tank_id,
        created=[AlertOut.model_validate(a) for a in result.created],
        updated=[AlertOut.model_validate(a) for a in result.updated],
        resolved=[AlertOut.model_validate(a) for a in result.resolved],
        escalated=[AlertOut.model_validate(a) for a in result.escalated],
        failures=result.failures,
    )


@router.get("/tanks/{tank_id}/readings", response_model=list[ReadingOut])
def list_readings(
    tank_id: int,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    _ensure_tank(db, tank_id)
    rows = (
        db.query(WaterReading)
        .filter(WaterReading.tank_id == tank_id)
        .order_by(desc(WaterReading.taken_at))
        .limit(limit)
        .all()
    )
    return [ReadingOut.model_validate(r) for r in rows]


# -----------------------------
# Alerts
# -----------------------------
@router.get("/tanks/{tank_id}/alerts", response_model=list[AlertOut])
def tank_alerts(
    tank_id: int,
    include_resolved: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    service: AlertService = Depends(get_alert_service),
):
    _ensure_tank(db, tank_id)
    if include_resolved:
        alerts = SqlAlertRepository(db).for_tank(tank_id, limit=limit)
    else:
        alerts = service.open_alerts_for_tank(tank_id)[:limit]
    return [AlertOut.model_validate(a) for a in alerts]


@router.post("/alerts/{alert_id}/acknowledge", response_model=AlertOut)
def acknowledge_alert(alert_id: int, service: AlertService = Depends(get_alert_service)):
    return AlertOut.model_validate(service.acknowledge(alert_id))


@router.post("/alerts/{alert_id}/resolve", response_model=AlertOut)
def resolve_alert(
    alert_id: int,
    payload: Optional[ResolveRequest] = None,
    service: AlertService = Depends(get_alert_service),
):
    return AlertOut.model_validate(service.resolve(alert_id, payload.reading_id if payload else None))


# -----------------------------
# Predictions
# -----------------------------
@router.get("/tanks/{tank_id}/predictions", response_model=TankForecastOut)
def tank_predictions(
    tank_id: int,
    horizon_days: float = Query(settings.PREDICTION_HORIZON_DAYS, gt=0, le=90),
    db: Session = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
):
    tank = _ensure_tank(db, tank_id)
    forecast = service.predict_tank(tank_id, applicable_parameters(TankType(tank.tank_type)), horizon_days)
    return TankForecastOut(
        tank_id=tank_id,
        generated_at=forecast.generated_at,
        horizon_days=horizon_days,
        overall=forecast.overall,
        warning_count=forecast.warning_count,
        average_confidence=forecast.average_confidence,
        predictions=[PredictionOut.model_validate(p) for p in forecast.predictions],
        insufficient=[InsufficientDataOut.model_validate(i) for i in forecast.insufficient],
    )


@router.get("/tanks/{tank_id}/predictions/accuracy", response_model=PredictionAccuracyOut)
def prediction_accuracy(
    tank_id: int,
    db: Session = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
):
    """Backtest the predictor on this tank's own reading history."""
    tank = _ensure_tank(db, tank_id)
    report = service.accuracy_report(tank_id, applicable_parameters(TankType(tank.tank_type)))
    return PredictionAccuracyOut.model_validate(report)


@router.get("/tanks/{tank_id}/predictions/{parameter}", response_model=Union[PredictionOut, InsufficientDataOut])
def parameter_prediction(
    tank_id: int,
    parameter: WaterParameter,
    horizon_days: float = Query(settings.PREDICTION_HORIZON_DAYS, gt=0, le=90),
    db: Session = Depends(get_db),
    service: PredictionService = Depends(get_prediction_service),
):
    _ensure_tank(db, tank_id)
    return _prediction_out(service.predict(tank_id, parameter, horizon_days))


# -----------------------------
# Livestock
# -----------------------------
@router.get("/tanks/{tank_id}/livestock", response_model=List[LivestockOut])
def list_livestock(tank_id: int, db: Session = Depends(get_db)):
    _ensure_tank(db, tank_id)
    rows = db.query(Livestock).filter(Livestock.tank_id == tank_id).order_by(Livestock.id.asc()).all()
    return [LivestockOut.model_validate(r) for r in rows]


@router.post("/tanks/{tank_id}/livestock", response_model=LivestockOut, status_code=201)
def add_livestock(tank_id: int, payload: LivestockCreate, db: Session = Depends(get_db)):
    _ensure_tank(db, tank_id)
    item = Livestock(
        tank_id=tank_id,
        kind=payload.details.kind,
        name=payload.name,
        species=payload.species,
        quantity=payload.quantity,
        notes=payload.notes,
        details=payload.details.model_dump(),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return LivestockOut.model_validate(item)
