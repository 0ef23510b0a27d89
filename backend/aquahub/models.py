from sqlalchemy import Column, Integer, Float, String, DateTime, Boolean, ForeignKey, Index, JSON, Text
from sqlalchemy.orm import relationship

from .database import Base
from .domain import utcnow
from .parameters import WaterParameter


class Tank(Base):
    __tablename__ = "tanks"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    tank_type = Column(String, nullable=False, default="freshwater")
    volume_gallons = Column(Float, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    readings = relationship("WaterReading", back_populates="tank", cascade="all, delete-orphan")
    thresholds = relationship("ParameterThreshold", back_populates="tank", cascade="all, delete-orphan")
    alerts = relationship("TriggeredAlert", back_populates="tank", cascade="all, delete-orphan")
    livestock = relationship("Livestock", back_populates="tank", cascade="all, delete-orphan")


class WaterReading(Base):
    __tablename__ = "water_readings"

    id = Column(Integer, primary_key=True)
    tank_id = Column(Integer, ForeignKey("tanks.id"), nullable=False, index=True)
    taken_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    ph = Column(Float, nullable=True)
    temperature = Column(Float, nullable=True)
    ammonia = Column(Float, nullable=True)
    nitrite = Column(Float, nullable=True)
    nitrate = Column(Float, nullable=True)
    gh = Column(Float, nullable=True)
    kh = Column(Float, nullable=True)
    tds = Column(Float, nullable=True)
    salinity = Column(Float, nullable=True)
    alkalinity = Column(Float, nullable=True)
    calcium = Column(Float, nullable=True)
    magnesium = Column(Float, nullable=True)
    phosphate = Column(Float, nullable=True)
    co2 = Column(Float, nullable=True)
    iron = Column(Float, nullable=True)
    potassium = Column(Float, nullable=True)

    tank = relationship("Tank", back_populates="readings")

    def values(self) -> dict:
        return {p: getattr(self, p.value) for p in WaterParameter}


Index("idx_water_readings_tank_time", WaterReading.tank_id, WaterReading.taken_at)


class ParameterThreshold(Base):
    __tablename__ = "parameter_thresholds"

    id = Column(Integer, primary_key=True)
    tank_id = Column(Integer, ForeignKey("tanks.id"), nullable=False, index=True)
    owner_id = Column(String, nullable=False)
    parameter = Column(String, nullable=False)
    min_value = Column(Float, nullable=True)
    max_value = Column(Float, nullable=True)
    severity = Column(String, nullable=False, default="warning")  # info | warning | critical
    enabled = Column(Boolean, default=True, index=True)
    message = Column(String, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    tank = relationship("Tank", back_populates="thresholds")


class TriggeredAlert(Base):
    __tablename__ = "triggered_alerts"

    id = Column(Integer, primary_key=True)
    tank_id = Column(Integer, ForeignKey("tanks.id"), nullable=False, index=True)
    owner_id = Column(String, nullable=False)
    threshold_id = Column(Integer, ForeignKey("parameter_thresholds.id"), nullable=True, index=True)
    parameter = Column(String, nullable=False)
    reading_id = Column(Integer, ForeignKey("water_readings.id"), nullable=True)

    actual_value = Column(Float, nullable=False)
    violated_bound = Column(String, nullable=False)  # min | max
    bound_value = Column(Float, nullable=True)
    severity = Column(String, nullable=False)
    message = Column(String, nullable=False, default="")

    triggered_at = Column(DateTime, nullable=False, index=True)
    last_triggered_at = Column(DateTime, nullable=False)
    last_reading_id = Column(Integer, ForeignKey("water_readings.id"), nullable=True)
    trigger_count = Column(Integer, nullable=False, default=1)

    acknowledged = Column(Boolean, default=False)
    acknowledged_at = Column(DateTime, nullable=True)
    resolved = Column(Boolean, default=False, index=True)
    resolved_at = Column(DateTime, nullable=True)
    resolving_reading_id = Column(Integer, ForeignKey("water_readings.id"), nullable=True)

    tank = relationship("Tank", back_populates="alerts")


Index("idx_triggered_alerts_open", TriggeredAlert.tank_id, TriggeredAlert.parameter, TriggeredAlert.resolved)


class Livestock(Base):
    __tablename__ = "livestock"

    id = Column(Integer, primary_key=True)
    tank_id = Column(Integer, ForeignKey("tanks.id"), nullable=False, index=True)
    kind = Column(String, nullable=False)  # coral | freshwater_fish | saltwater_fish | invertebrate | plant
    name = Column(String, nullable=False)
    species = Column(String, nullable=False, default="")
    quantity = Column(Integer, nullable=False, default=1)
    added_on = Column(DateTime, default=utcnow)
    notes = Column(Text, nullable=True)
    details = Column(JSON, nullable=False, default=dict)

    tank = relationship("Tank", back_populates="livestock")
