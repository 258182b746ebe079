"""Domain records exchanged through the shared state store.

Store values use the camelCase field names shared with the operator UI and
the hardware bridge; timestamps travel as UTC epoch seconds.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import enum

from irrigation_engine.config.config import (
    KEY_IRRIGATION_CONFIG, KEY_TANK_LEVEL, KEY_VALVE_COMMAND, KEY_VALVE_CONFIRMATION,
    DEFAULT_IRRIGATION_MODE, DEFAULT_IRRIGATION_ACTIVE, DEFAULT_CYCLE_DURATION_MINUTES,
    DEFAULT_AUTO_FREQUENCY_HOURS, DEFAULT_SCHEDULED_TIME_OF_DAY,
    DEFAULT_MOISTURE_MIN_PERCENT, DEFAULT_MOISTURE_MAX_PERCENT,
    DEFAULT_TANK_CAPACITY_LITERS, DEFAULT_TANK_CURRENT_LITERS, DEFAULT_TANK_LOW_THRESHOLD_PERCENT
)
from irrigation_engine.exceptions import InvalidStoreValue
from irrigation_engine.utils.time_utils import to_epoch, from_epoch

# Float residue below this counts as an empty tank
EMPTY_TOLERANCE_LITERS = 1e-9

# Raised by the parsers below on a malformed stored value
_PARSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError, OverflowError, OSError)


def _require_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected a boolean, got {value!r}")
    return value


class IrrigationMode(enum.Enum):
    """Operating mode selected by the operator."""
    MANUAL = "manual"
    AUTOMATIC = "auto"
    SCHEDULED = "scheduled"


class Phase(enum.Enum):
    """Whether a watering cycle is in progress."""
    IDLE = "idle"
    WATERING = "watering"


class Decision(enum.Enum):
    """Outcome of a trigger evaluation."""
    START_CYCLE = "start_cycle"
    NO_ACTION = "no_action"


class TriggerSource(enum.Enum):
    """What started a cycle."""
    OPERATOR = "operator"
    EVALUATOR = "evaluator"


@dataclass
class IrrigationConfig:
    """Operator intent."""
    mode: IrrigationMode = IrrigationMode(DEFAULT_IRRIGATION_MODE)
    active: bool = DEFAULT_IRRIGATION_ACTIVE
    cycle_duration_minutes: float = DEFAULT_CYCLE_DURATION_MINUTES
    auto_frequency_hours: float = DEFAULT_AUTO_FREQUENCY_HOURS
    scheduled_time_of_day: str = DEFAULT_SCHEDULED_TIME_OF_DAY
    # Display-only thresholds, never consulted by the scheduler
    moisture_min: float = DEFAULT_MOISTURE_MIN_PERCENT
    moisture_max: float = DEFAULT_MOISTURE_MAX_PERCENT
    updated_at: Optional[datetime] = None

    @property
    def cycle_duration_seconds(self) -> int:
        return int(round(self.cycle_duration_minutes * 60))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mode': self.mode.value,
            'active': self.active,
            'cycleDurationMinutes': self.cycle_duration_minutes,
            'autoFrequencyHours': self.auto_frequency_hours,
            'scheduledTimeOfDay': self.scheduled_time_of_day,
            'moistureMin': self.moisture_min,
            'moistureMax': self.moisture_max,
            'updatedAt': to_epoch(self.updated_at) if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'IrrigationConfig':
        """
        Build a config from a stored value; missing fields take defaults.

        Raises:
            InvalidStoreValue: if a stored field has the wrong type or value
        """
        if not data:
            return cls()
        defaults = cls()
        try:
            return cls(
                mode=IrrigationMode(data.get('mode', defaults.mode.value)),
                active=_require_bool(data.get('active', defaults.active)),
                cycle_duration_minutes=float(data.get('cycleDurationMinutes', defaults.cycle_duration_minutes)),
                auto_frequency_hours=float(data.get('autoFrequencyHours', defaults.auto_frequency_hours)),
                scheduled_time_of_day=str(data.get('scheduledTimeOfDay', defaults.scheduled_time_of_day)),
                moisture_min=float(data.get('moistureMin', defaults.moisture_min)),
                moisture_max=float(data.get('moistureMax', defaults.moisture_max)),
                updated_at=from_epoch(data.get('updatedAt')),
            )
        except _PARSE_ERRORS as e:
            raise InvalidStoreValue(KEY_IRRIGATION_CONFIG, data, e) from e


@dataclass
class TankLevel:
    """Remaining water estimate, always clamped to [0, capacity]."""
    current_liters: float = DEFAULT_TANK_CURRENT_LITERS
    capacity_liters: float = DEFAULT_TANK_CAPACITY_LITERS
    low_threshold_pct: float = DEFAULT_TANK_LOW_THRESHOLD_PERCENT

    def __post_init__(self):
        self.current_liters = max(0.0, min(float(self.capacity_liters), float(self.current_liters)))

    @property
    def percent(self) -> float:
        if self.capacity_liters <= 0:
            return 0.0
        return (self.current_liters / self.capacity_liters) * 100.0

    @property
    def is_empty(self) -> bool:
        return self.current_liters <= EMPTY_TOLERANCE_LITERS

    @property
    def is_low(self) -> bool:
        return self.percent < self.low_threshold_pct

    def consume(self, liters: float) -> float:
        """Draw water from the tank and return how much was actually drawn."""
        drawn = min(self.current_liters, max(0.0, liters))
        self.current_liters -= drawn
        if self.current_liters <= EMPTY_TOLERANCE_LITERS:
            drawn += self.current_liters
            self.current_liters = 0.0
        return drawn

    def refill(self, percent: float) -> float:
        """Add a percentage of capacity, clamped to capacity; returns liters added."""
        before = self.current_liters
        self.current_liters = min(self.capacity_liters, self.current_liters + self.capacity_liters * (percent / 100.0))
        return self.current_liters - before

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currentLiters': self.current_liters,
            'capacityLiters': self.capacity_liters,
            'lowThresholdPct': self.low_threshold_pct,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'TankLevel':
        if not data:
            return cls()
        defaults = cls()
        try:
            return cls(
                current_liters=float(data.get('currentLiters', defaults.current_liters)),
                capacity_liters=float(data.get('capacityLiters', defaults.capacity_liters)),
                low_threshold_pct=float(data.get('lowThresholdPct', defaults.low_threshold_pct)),
            )
        except _PARSE_ERRORS as e:
            raise InvalidStoreValue(KEY_TANK_LEVEL, data, e) from e


@dataclass
class ValveCommand:
    """Desired physical valve state."""
    open: bool
    issued_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {'open': self.open, 'issuedAt': to_epoch(self.issued_at)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['ValveCommand']:
        if not data:
            return None
        try:
            return cls(open=_require_bool(data['open']), issued_at=from_epoch(data.get('issuedAt', 0.0)))
        except _PARSE_ERRORS as e:
            raise InvalidStoreValue(KEY_VALVE_COMMAND, data, e) from e


@dataclass
class ValveConfirmation:
    """Valve state as last reported by the hardware bridge."""
    open: bool
    reported_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {'open': self.open, 'reportedAt': to_epoch(self.reported_at)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['ValveConfirmation']:
        if not data:
            return None
        try:
            return cls(open=_require_bool(data['open']), reported_at=from_epoch(data.get('reportedAt', 0.0)))
        except _PARSE_ERRORS as e:
            raise InvalidStoreValue(KEY_VALVE_CONFIRMATION, data, e) from e


@dataclass
class CycleSession:
    """One in-progress watering cycle."""
    started_at: datetime
    duration_seconds: int
    remaining_seconds: float  # Counted down by the tick length, which may be fractional
    mode: IrrigationMode
    trigger: TriggerSource
    water_used: float = 0.0

    @property
    def elapsed_seconds(self) -> float:
        return self.duration_seconds - self.remaining_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            'startedAt': self.started_at.isoformat(),
            'durationSeconds': self.duration_seconds,
            'remainingSeconds': round(self.remaining_seconds, 3),
            'mode': self.mode.value,
            'trigger': self.trigger.value,
            'waterUsed': round(self.water_used, 3),
        }


@dataclass
class DecisionRecord:
    """One entry of the decision log."""
    timestamp: datetime
    mode: IrrigationMode
    decision: Decision
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'mode': self.mode.value,
            'decision': self.decision.value,
            'reason': self.reason,
            'details': self.details,
        }
