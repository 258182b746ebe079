"""Cycle log model for storing watering cycle history."""
from sqlalchemy import Column, Integer, String, Float, DateTime, Enum
from sqlalchemy.sql import func
from irrigation_engine.config.database import Base
import enum


class CycleStatus(enum.Enum):
    """Cycle status enumeration."""
    STARTED = "started"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TANK_EMPTY = "tank_empty"


class CycleLog(Base):
    """Model for storing watering cycle events."""
    __tablename__ = 'cycle_logs'

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    mode = Column(String(20), nullable=False, index=True)  # manual / auto / scheduled
    trigger = Column(String(20), nullable=False)  # operator / evaluator
    status = Column(Enum(CycleStatus), nullable=False, index=True)
    planned_duration = Column(Float, nullable=True)  # Seconds
    duration = Column(Float, nullable=True)  # Seconds actually watered
    water_used = Column(Float, nullable=True)  # Liters drawn from the tank
    notes = Column(String(500), nullable=True)

    def __repr__(self):
        return f"<CycleLog(id={self.id}, mode={self.mode}, status={self.status.value})>"
