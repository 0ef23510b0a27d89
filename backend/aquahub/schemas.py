from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional, Union

from .domain import AlertState, Trend
from .parameters import Severity, TankType, WaterParameter


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TankCreate(BaseModel):
    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    tank_type: TankType = TankType.FRESHWATER
    volume_gallons: Optional[float] = Field(None, gt=0)


class TankOut(ORMModel):
    id: int
    owner_id: str
    name: str
    tank_type: TankType
    volume_gallons: Optional[float] = None
    created_at: datetime
    parameters: List[WaterParameter] = []


class ThresholdIn(BaseModel):
    id: Optional[int] = None
    parameter: WaterParameter
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    severity: Severity = Severity.WARNING
    enabled: bool = True
    message: Optional[str] = Field(None, max_length=500)


class ThresholdOut(ORMModel):
    id: int
    tank_id: int
    owner_id: str
    parameter: WaterParameter
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    severity: Severity
    enabled: bool
    message: Optional[str] = None
    updated_at: datetime


class ReadingCreate(BaseModel):
    tank_id: Optional[int] = None
    taken_at: Optional[datetime] = None
    notes: Optional[str] = None

    ph: Optional[float] = Field(None, ge=0, le=14)
    temperature: Optional[float] = None
    ammonia: Optional[float] = Field(None, ge=0)
    nitrite: Optional[float] = Field(None, ge=0)
    nitrate: Optional[float] = Field(None, ge=0)
    gh: Optional[float] = Field(None, ge=0)
    kh: Optional[float] = Field(None, ge=0)
    tds: Optional[float] = Field(None, ge=0)
    salinity: Optional[float] = Field(None, ge=0)
    alkalinity: Optional[float] = Field(None, ge=0)
    calcium: Optional[float] = Field(None, ge=0)
    magnesium: Optional[float] = Field(None, ge=0)
    phosphate: Optional[float] = Field(None, ge=0)
    co2: Optional[float] = Field(None, ge=0)
    iron: Optional[float] = Field(None, ge=0)
    potassium: Optional[float] = Field(None, ge=0)

    def values(self) -> Dict[WaterParameter, Optional[float]]:
        return {p: getattr(self, p.value) for p in WaterParameter}


class ReadingOut(ORMModel):
    id: int
    tank_id: int
    taken_at: datetime
    notes: Optional[str] = None
    ph: Optional[float] = None
    temperature: Optional[float] = None
    ammonia: Optional[float] = None
    nitrite: Optional[float] = None
    nitrate: Optional[float] = None
    gh: Optional[float] = None
    kh: Optional[float] = None
    tds: Optional[float] = None
    salinity: Optional[float] = None
    alkalinity: Optional[float] = None
    calcium: Optional[float] = None
    magnesium: Optional[float] = None
    phosphate: Optional[float] = None
    co2: Optional[float] = None
    iron: Optional[float] = None
    potassium: Optional[float] = None


class AlertOut(ORMModel):
    id: int
    tank_id: int
    threshold_id: Optional[int] = None
    parameter: WaterParameter
    reading_id: Optional[int] = None
    actual_value: float
    violated_bound: Literal["min", "max"]
    bound_value: Optional[float] = None
    severity: Severity
    message: str
    state: AlertState
    trigger_count: int
    triggered_at: datetime
    last_triggered_at: datetime
    last_reading_id: Optional[int] = None
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolving_reading_id: Optional[int] = None


class ResolveRequest(BaseModel):
    reading_id: Optional[int] = None


class EvaluationOut(BaseModel):
    reading_id: int
    tank_id: int
    created: List[AlertOut]
    updated: List[AlertOut]
    resolved: List[AlertOut]
    escalated: List[AlertOut]
    failures: Dict[WaterParameter, str]


class PredictionOut(ORMModel):
    status: Literal["ok"] = "ok"
    tank_id: int
    parameter: WaterParameter
    current_value: float
    predicted_value: float
    predicted_date: datetime
    horizon_days: float
    confidence: float
    trend: Trend
    rate_of_change: float
    r_squared: float
    sample_count: int
    is_warning: bool
    message: str
    alert_level: str
    method: str


class InsufficientDataOut(ORMModel):
    status: Literal["insufficient_data"] = "insufficient_data"
    tank_id: int
    parameter: WaterParameter
    sample_count: int
    required: int
    message: str


class TankForecastOut(BaseModel):
    tank_id: int
    generated_at: datetime
    horizon_days: float
    overall: str
    warning_count: int
    average_confidence: float
    predictions: List[PredictionOut]
    insufficient: List[InsufficientDataOut]


class PredictionAccuracyOut(ORMModel):
    tank_id: int
    predictions_evaluated: int
    average_error_percentage: float
    accuracy_within_10_percent: float
    accuracy_by_parameter: Dict[WaterParameter, float]
    overall_rating: str



# Livestock: one row per animal/plant, subtype fields carried in a tagged payload.

class CoralDetails(BaseModel):
    kind: Literal["coral"]
    coral_type: Literal["sps", "lps", "soft", "zoanthid", "anemone"] = "soft"
    lighting_needs: Optional[str] = None
    flow_needs: Optional[str] = None
    placement: Optional[str] = None


class FreshwaterFishDetails(BaseModel):
    kind: Literal["freshwater_fish"]
    aggression_level: Optional[str] = None
    diet: Optional[str] = None
    min_tank_gallons: Optional[float] = Field(None, gt=0)
    schooling: bool = False


class SaltwaterFishDetails(BaseModel):
    kind: Literal["saltwater_fish"]
    aggression_level: Optional[str] = None
    diet: Optional[str] = None
    reef_safe: bool = True
    min_tank_gallons: Optional[float] = Field(None, gt=0)


class InvertebrateDetails(BaseModel):
    kind: Literal["invertebrate"]
    invertebrate_type: Optional[str] = None
    reef_safe: bool = True
    molting: bool = False


class PlantDetails(BaseModel):
    kind: Literal["plant"]
    plant_type: Optional[str] = None
    lighting_needs: Optional[str] = None
    placement: Optional[str] = None
    co2_required: bool = False


LivestockDetails = Annotated[
    Union[CoralDetails, FreshwaterFishDetails, SaltwaterFishDetails, InvertebrateDetails, PlantDetails],
    Field(discriminator="kind"),
]


class LivestockCreate(BaseModel):
    name: str = Field(..., min_length=1)
    species: str = ""
    quantity: int = Field(1, ge=1)
    notes: Optional[str] = None
    details: LivestockDetails


class LivestockOut(ORMModel):
    id: int
    tank_id: int
    kind: str
    name: str
    species: str
    quantity: int
    added_on: datetime
    notes: Optional[str] = None
    details: LivestockDetails
