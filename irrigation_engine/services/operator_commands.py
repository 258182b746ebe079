"""Operator-facing commands: configuration edits, the manual switch and tank upkeep."""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from irrigation_engine.config.config import KEY_IRRIGATION_CONFIG, KEY_TANK_LEVEL
from irrigation_engine.exceptions import PermissionDenied, InvalidStoreValue
from irrigation_engine.models.irrigation_state import IrrigationConfig, TankLevel
from irrigation_engine.services.access_control import can_mutate
from irrigation_engine.services.state_store import StateStore
from irrigation_engine.utils.time_utils import utcnow
from irrigation_engine.utils.validator import (
    validate_config_changes, validate_refill_percent, validate_tank_settings
)

logger = logging.getLogger(__name__)


class OperatorCommands:
    """
    Entry point for every state change an operator can make.

    Configuration is written to the store only; the scheduler picks it up
    through its subscription, so a change made here and one made by another
    dashboard instance take the same path.
    """

    def __init__(self, store: StateStore, scheduler):
        """
        Initialize operator commands.

        Args:
            store: Shared state store
            scheduler: IrrigationScheduler handling the manual switch
        """
        self.store = store
        self.scheduler = scheduler

    def _require_mutate(self, role: Optional[str]):
        if not can_mutate(role):
            logger.warning(f"Rejected irrigation change from role '{role}'")
            raise PermissionDenied(role)

    def get_config(self) -> Dict[str, Any]:
        return IrrigationConfig.from_dict(self.store.get(KEY_IRRIGATION_CONFIG)).to_dict()

    def save_config(self, role: Optional[str], changes: Dict[str, Any],
                    now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Validate and persist a partial configuration update.

        Args:
            role: Caller's role
            changes: Store-named fields to change
            now: Update time (defaults to current time)

        Returns:
            The full configuration as saved
        """
        self._require_mutate(role)
        validated = validate_config_changes(changes)

        try:
            current = IrrigationConfig.from_dict(self.store.get(KEY_IRRIGATION_CONFIG)).to_dict()
        except InvalidStoreValue as e:
            logger.warning(f"Replacing malformed stored config: {e.message}")
            current = IrrigationConfig().to_dict()
        current.update(validated)
        config = IrrigationConfig.from_dict(current)
        config.updated_at = now or utcnow()

        self.store.set(KEY_IRRIGATION_CONFIG, config.to_dict())
        logger.info(f"Irrigation config saved by {role}: {validated}")
        return config.to_dict()

    def set_manual_switch(self, role: Optional[str], on: bool,
                          now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Turn manual watering on or off.

        Raises:
            PermissionDenied: if the role may not operate the valve
            OperationRejected: if watering cannot start in the current state
        """
        self._require_mutate(role)
        if on:
            session = self.scheduler.manual_start(now)
            return {'watering': True, 'session': session}

        cancelled = self.scheduler.manual_stop(now)
        return {'watering': False, 'cancelled': cancelled}

    def get_tank(self) -> Dict[str, Any]:
        return self._tank_view(TankLevel.from_dict(self.store.get(KEY_TANK_LEVEL)))

    @staticmethod
    def _tank_view(tank: TankLevel) -> Dict[str, Any]:
        return dict(tank.to_dict(), percent=round(tank.percent, 1), isLow=tank.is_low)

    def refill_tank(self, role: Optional[str], percent: Any) -> Dict[str, Any]:
        """
        Add a percentage of capacity to the tank, clamped to capacity.

        Returns:
            Tank level after the refill plus the liters added
        """
        self._require_mutate(role)
        percent = validate_refill_percent(percent)

        tank, added = self.scheduler.refill_tank(percent)

        logger.info(f"Tank refilled by {percent:g}% ({added:.1f}L added, now {tank.current_liters:.1f}L)")
        return dict(self._tank_view(tank), addedLiters=round(added, 3))

    def update_tank(self, role: Optional[str], changes: Dict[str, Any]) -> Dict[str, Any]:
        """Change tank capacity or low-water threshold; the level is re-clamped."""
        self._require_mutate(role)
        validated = validate_tank_settings(changes)

        tank = self.scheduler.update_tank_settings(validated)

        logger.info(f"Tank settings updated: {validated}")
        return self._tank_view(tank)
