from enum import Enum
from typing import Dict, List, Optional, Tuple


class WaterParameter(str, Enum):
    """Water chemistry parameters; values double as reading column names."""
    PH = "ph"
    TEMPERATURE = "temperature"
    AMMONIA = "ammonia"
    NITRITE = "nitrite"
    NITRATE = "nitrate"
    GH = "gh"
    KH = "kh"
    TDS = "tds"
    SALINITY = "salinity"
    ALKALINITY = "alkalinity"
    CALCIUM = "calcium"
    MAGNESIUM = "magnesium"
    PHOSPHATE = "phosphate"
    CO2 = "co2"
    IRON = "iron"
    POTASSIUM = "potassium"

    @property
    def label(self) -> str:
        return LABELS[self]


class TankType(str, Enum):
    FRESHWATER = "freshwater"
    SALTWATER = "saltwater"
    BRACKISH = "brackish"
    PLANTED = "planted"
    REEF = "reef"
    CICHLID = "cichlid"
    BETTA = "betta"
    GOLDFISH = "goldfish"
    SHRIMP = "shrimp"
    TURTLE = "turtle"
    OTHER = "other"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.INFO: 0, Severity.WARNING: 1, Severity.CRITICAL: 2}

LABELS: Dict[WaterParameter, str] = {
    WaterParameter.PH: "pH",
    WaterParameter.TEMPERATURE: "Temperature",
    WaterParameter.AMMONIA: "Ammonia",
    WaterParameter.NITRITE: "Nitrite",
    WaterParameter.NITRATE: "Nitrate",
    WaterParameter.GH: "GH",
    WaterParameter.KH: "KH",
    WaterParameter.TDS: "TDS",
    WaterParameter.SALINITY: "Salinity",
    WaterParameter.ALKALINITY: "Alkalinity",
    WaterParameter.CALCIUM: "Calcium",
    WaterParameter.MAGNESIUM: "Magnesium",
    WaterParameter.PHOSPHATE: "Phosphate",
    WaterParameter.CO2: "CO2",
    WaterParameter.IRON: "Iron",
    WaterParameter.POTASSIUM: "Potassium",
}

CORE_PARAMETERS: List[WaterParameter] = [
    WaterParameter.PH,
    WaterParameter.TEMPERATURE,
    WaterParameter.AMMONIA,
    WaterParameter.NITRITE,
    WaterParameter.NITRATE,
]

MARINE_PARAMETERS: List[WaterParameter] = [
    WaterParameter.SALINITY,
    WaterParameter.ALKALINITY,
    WaterParameter.CALCIUM,
    WaterParameter.MAGNESIUM,
    WaterParameter.PHOSPHATE,
]

HARDNESS_PARAMETERS: List[WaterParameter] = [
    WaterParameter.GH,
    WaterParameter.KH,
    WaterParameter.TDS,
]

PLANT_PARAMETERS: List[WaterParameter] = [
    WaterParameter.CO2,
    WaterParameter.IRON,
    WaterParameter.POTASSIUM,
]

MARINE_TANKS = {TankType.SALTWATER, TankType.REEF}
FRESHWATER_TANKS = {
    TankType.FRESHWATER,
    TankType.PLANTED,
    TankType.CICHLID,
    TankType.BETTA,
    TankType.GOLDFISH,
    TankType.SHRIMP,
}


def applicable_parameters(tank_type: TankType) -> List[WaterParameter]:
    params = list(CORE_PARAMETERS)
    if tank_type in MARINE_TANKS:
        params.extend(MARINE_PARAMETERS)
    if tank_type == TankType.BRACKISH:
        params.append(WaterParameter.SALINITY)
    if tank_type in FRESHWATER_TANKS:
        params.extend(HARDNESS_PARAMETERS)
    if tank_type == TankType.PLANTED:
        params.extend(PLANT_PARAMETERS)
    return params


# Slope (units/day) below which a trend counts as stable.
STABLE_EPSILON: Dict[WaterParameter, float] = {
    WaterParameter.PH: 0.01,
    WaterParameter.TEMPERATURE: 0.05,
    WaterParameter.AMMONIA: 0.005,
    WaterParameter.NITRITE: 0.005,
    WaterParameter.NITRATE: 0.1,
    WaterParameter.GH: 0.05,
    WaterParameter.KH: 0.05,
    WaterParameter.TDS: 1.0,
    WaterParameter.SALINITY: 0.0001,
    WaterParameter.ALKALINITY: 0.05,
    WaterParameter.CALCIUM: 1.0,
    WaterParameter.MAGNESIUM: 2.0,
    WaterParameter.PHOSPHATE: 0.002,
    WaterParameter.CO2: 0.1,
    WaterParameter.IRON: 0.005,
    WaterParameter.POTASSIUM: 0.1,
}

Range = Tuple[Optional[float], Optional[float]]

# Hobbyist safe ranges (temperature in Fahrenheit, salinity as specific gravity).
_COMMON_RANGES: Dict[WaterParameter, Range] = {
    WaterParameter.TEMPERATURE: (75.0, 82.0),
    WaterParameter.AMMONIA: (None, 0.25),
    WaterParameter.NITRITE: (None, 0.25),
}

_MARINE_RANGES: Dict[WaterParameter, Range] = {
    WaterParameter.PH: (7.8, 8.4),
    WaterParameter.NITRATE: (None, 20.0),
    WaterParameter.SALINITY: (1.023, 1.026),
    WaterParameter.ALKALINITY: (8.0, 12.0),
    WaterParameter.CALCIUM: (400.0, 450.0),
    WaterParameter.MAGNESIUM: (1250.0, 1350.0),
    WaterParameter.PHOSPHATE: (None, 0.1),
}

_FRESHWATER_RANGES: Dict[WaterParameter, Range] = {
    WaterParameter.PH: (6.5, 7.8),
    WaterParameter.NITRATE: (None, 40.0),
    WaterParameter.GH: (4.0, 8.0),
    WaterParameter.KH: (3.0, 6.0),
    WaterParameter.TDS: (150.0, 250.0),
    WaterParameter.CO2: (15.0, 30.0),
    WaterParameter.IRON: (0.05, 0.5),
    WaterParameter.POTASSIUM: (5.0, 20.0),
}

_BRACKISH_RANGES: Dict[WaterParameter, Range] = {
    WaterParameter.PH: (7.5, 8.4),
    WaterParameter.NITRATE: (None, 20.0),
    WaterParameter.SALINITY: (1.005, 1.015),
}


def safe_range(tank_type: TankType, parameter: WaterParameter) -> Optional[Range]:
    if tank_type in MARINE_TANKS:
        table = _MARINE_RANGES
    elif tank_type == TankType.BRACKISH:
        table = _BRACKISH_RANGES
    else:
        table = _FRESHWATER_RANGES
    return table.get(parameter) or _COMMON_RANGES.get(parameter)
