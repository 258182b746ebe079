"""Watering cycle timer."""
import logging
from datetime import datetime
from typing import Callable, Dict, Optional, Any, Tuple

from irrigation_engine.config.config import KEY_TANK_LEVEL, TICK_INTERVAL_SEC
from irrigation_engine.exceptions import StoreUnavailable, InvalidStoreValue
from irrigation_engine.hardware.valve_command_channel import ValveCommandChannel
from irrigation_engine.models.cycle_log import CycleLog, CycleStatus
from irrigation_engine.models.irrigation_state import (
    CycleSession, IrrigationConfig, TankLevel, TriggerSource
)
from irrigation_engine.models.system_log import SystemLog, LogLevel
from irrigation_engine.services.state_store import StateStore

logger = logging.getLogger(__name__)

# Rounding residue left after summing fractional ticks
REMAINING_TOLERANCE_SEC = 1e-6


class CycleTimer:
    """Owns the single active watering cycle: countdown, tank draw and valve commands."""

    def __init__(self, command_channel: ValveCommandChannel, store: StateStore,
                 nominal_flow_lpm: Optional[float] = None,
                 tick_seconds: float = TICK_INTERVAL_SEC,
                 db_session_factory: Optional[Callable] = None):
        """
        Initialize cycle timer.

        Args:
            command_channel: Valve command channel (the timer is its only caller)
            store: Shared state store holding the tank level
            nominal_flow_lpm: Valve flow in L/min; None drains a full tank over one cycle
            tick_seconds: Seconds represented by one tick
            db_session_factory: Function that returns a database session, for cycle history
        """
        self.command_channel = command_channel
        self.store = store
        self.nominal_flow_lpm = nominal_flow_lpm
        self.tick_seconds = tick_seconds
        self.db_session_factory = db_session_factory

        self.session: Optional[CycleSession] = None
        self.tank: Optional[TankLevel] = None  # Last known tank level
        self._desired_open = False
        self._command_pending = False  # Last command write was not acknowledged
        self._unsynced_liters = 0.0  # Drawn while the store was unreachable

    @property
    def is_watering(self) -> bool:
        return self.session is not None

    def start(self, now: datetime, config: IrrigationConfig, trigger: TriggerSource) -> bool:
        """
        Start a cycle and command the valve open.

        Args:
            now: Cycle start time
            config: Configuration the cycle runs under
            trigger: What started the cycle

        Returns:
            True if a cycle was started, False if one already runs or the tank is empty
        """
        if self.session is not None:
            logger.warning("Cycle start ignored: a cycle is already in progress")
            return False

        tank = self.read_tank()
        if tank.is_empty:
            logger.warning("Cycle start refused: tank is empty")
            self._log_system(LogLevel.WARNING, 'Cycle start refused: tank is empty')
            return False

        duration = config.cycle_duration_seconds
        self.session = CycleSession(
            started_at=now,
            duration_seconds=duration,
            remaining_seconds=float(duration),
            mode=config.mode,
            trigger=trigger
        )
        self._issue(True, now)

        logger.info(f"Cycle started ({config.mode.value}, {trigger.value}) for {duration}s")
        self._log_cycle(CycleStatus.STARTED, self.session)
        return True

    def tick(self, now: datetime, config: IrrigationConfig) -> Optional[CycleStatus]:
        """
        Advance the active cycle by one tick.

        Args:
            now: Tick time
            config: Current operator configuration

        Returns:
            Termination status if the cycle ended on this tick, else None
        """
        session = self.session
        if session is None:
            if self._command_pending:
                self._issue(self._desired_open, now)
            return None

        if not config.active:
            self._terminate(now, CycleStatus.CANCELLED, 'irrigation switched off')
            return CycleStatus.CANCELLED
        if config.mode != session.mode:
            self._terminate(now, CycleStatus.CANCELLED, f'mode changed to {config.mode.value}')
            return CycleStatus.CANCELLED

        tank = self.read_tank()
        drawn = tank.consume(self._liters_per_tick(tank, session))
        session.water_used += drawn
        session.remaining_seconds = max(0.0, session.remaining_seconds - self.tick_seconds)
        self._write_tank(tank, drawn)

        if tank.is_empty:
            self._terminate(now, CycleStatus.TANK_EMPTY, 'tank empty')
            return CycleStatus.TANK_EMPTY
        if session.remaining_seconds <= REMAINING_TOLERANCE_SEC:
            self._terminate(now, CycleStatus.COMPLETED, 'duration elapsed')
            return CycleStatus.COMPLETED

        if self._command_pending:
            self._issue(self._desired_open, now)
        return None

    def cancel(self, now: datetime, reason: str) -> bool:
        """
        Cancel the active cycle. Calling it with no active cycle is a no-op.

        Returns:
            True if a cycle was cancelled
        """
        return self._terminate(now, CycleStatus.CANCELLED, reason)

    def _terminate(self, now: datetime, status: CycleStatus, reason: str) -> bool:
        session = self.session
        if session is None:
            return False

        self.session = None
        self._issue(False, now)

        logger.info(f"Cycle ended ({status.value}): {reason}; watered {session.elapsed_seconds:g}s, "
                    f"used {session.water_used:.2f}L")
        self._log_cycle(status, session, notes=reason)
        if status == CycleStatus.TANK_EMPTY:
            self._log_system(LogLevel.WARNING, 'Cycle stopped early: tank empty')
        return True

    def _issue(self, desired_open: bool, now: datetime):
        self._desired_open = desired_open
        self._command_pending = not self.command_channel.issue(desired_open, now)

    def _liters_per_tick(self, tank: TankLevel, session: CycleSession) -> float:
        if self.nominal_flow_lpm is not None:
            return self.nominal_flow_lpm / 60.0 * self.tick_seconds
        if session.duration_seconds <= 0:
            return 0.0
        return tank.capacity_liters / session.duration_seconds * self.tick_seconds

    def _load_tank(self) -> TankLevel:
        """
        Read the tank level with any unpersisted draw applied.

        Raises:
            StoreUnavailable: if the store cannot be reached
            InvalidStoreValue: if the stored level is malformed
        """
        tank = TankLevel.from_dict(self.store.get(KEY_TANK_LEVEL))
        if self._unsynced_liters:
            tank.consume(self._unsynced_liters)
        return tank

    def read_tank(self) -> TankLevel:
        """Fresh tank level from the store, falling back to the last known value."""
        try:
            tank = self._load_tank()
        except (StoreUnavailable, InvalidStoreValue) as e:
            logger.warning(f"Using last known tank level: {e.message}")
            if self.tank is None:
                self.tank = TankLevel()
            return self.tank

        self.tank = tank
        return tank

    def refill_tank(self, percent: float) -> Tuple[TankLevel, float]:
        """
        Add a percentage of capacity to the stored tank level.

        Must not interleave with ``tick``; callers hold the scheduler lock.

        Returns:
            (tank after the refill, liters added)
        """
        tank = self._load_tank()
        added = tank.refill(percent)
        self._save_tank(tank)
        return tank, added

    def update_tank_settings(self, settings: Dict[str, float]) -> TankLevel:
        """Apply capacity or threshold changes; the level is re-clamped to the new capacity."""
        data = self._load_tank().to_dict()
        data.update(settings)
        tank = TankLevel.from_dict(data)
        self._save_tank(tank)
        return tank

    def _save_tank(self, tank: TankLevel):
        self.store.set(KEY_TANK_LEVEL, tank.to_dict())
        self._unsynced_liters = 0.0
        self.tank = tank

    def _write_tank(self, tank: TankLevel, drawn: float):
        try:
            self.store.set(KEY_TANK_LEVEL, tank.to_dict())
        except StoreUnavailable as e:
            self._unsynced_liters += drawn
            logger.warning(f"Tank level not persisted: {e.message}")
            return
        self._unsynced_liters = 0.0

    def get_status(self) -> Dict[str, Any]:
        """Get cycle timer status."""
        return {
            'is_watering': self.is_watering,
            'session': self.session.to_dict() if self.session else None,
            'desired_open': self._desired_open,
            'command_pending': self._command_pending,
        }

    def _log_cycle(self, status: CycleStatus, session: CycleSession, notes: str = None):
        """Log cycle event to database."""
        if self.db_session_factory is None:
            return
        db = None
        try:
            db = next(self.db_session_factory())
            log = CycleLog(
                mode=session.mode.value,
                trigger=session.trigger.value,
                status=status,
                planned_duration=float(session.duration_seconds),
                duration=float(session.elapsed_seconds),
                water_used=session.water_used,
                notes=notes
            )
            db.add(log)
            db.commit()
        except Exception as e:
            logger.error(f"Error logging cycle event: {str(e)}")
        finally:
            if db:
                db.close()

    def _log_system(self, level: LogLevel, message: str):
        """Log system event."""
        if self.db_session_factory is None:
            return
        db = None
        try:
            db = next(self.db_session_factory())
            db.add(SystemLog(log_level=level, component='cycle_timer', message=message))
            db.commit()
        except Exception as e:
            logger.error(f"Error logging system event: {str(e)}")
        finally:
            if db:
                db.close()
