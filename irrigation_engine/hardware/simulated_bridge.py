"""Simulated hardware bridge for development without a valve controller."""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from irrigation_engine.config.config import KEY_VALVE_COMMAND, KEY_VALVE_CONFIRMATION
from irrigation_engine.exceptions import StoreUnavailable, InvalidStoreValue
from irrigation_engine.models.irrigation_state import ValveCommand, ValveConfirmation
from irrigation_engine.services.state_store import StateStore
from irrigation_engine.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class SimulatedValveBridge:
    """Mock bridge that reads ``valveCommand`` and reports ``valveConfirmation``."""

    def __init__(self, store: StateStore, delay_seconds: float = 0.0,
                 clock: Callable[[], datetime] = utcnow):
        """
        Initialize simulated bridge.

        Args:
            store: Shared state store
            delay_seconds: How long the simulated valve takes to actuate
            clock: Time source
        """
        self.store = store
        self.delay_seconds = delay_seconds
        self.clock = clock
        self.valve_open = False
        self.responding = True  # False simulates a dead controller
        self._pending: List[ValveCommand] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self):
        """Start listening for commands."""
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(KEY_VALVE_COMMAND, self._on_command)

    def stop(self):
        """Stop listening for commands."""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def set_responding(self, responding: bool):
        """Manually make the simulated hardware stop or resume reporting."""
        self.responding = responding

    def _on_command(self, key: str, value):
        try:
            command = ValveCommand.from_dict(value)
        except InvalidStoreValue as e:
            logger.warning(f"Simulated bridge ignoring command: {e.message}")
            return
        if command is None:
            return
        self._pending.append(command)
        if self.delay_seconds <= 0:
            self.process(self.clock())

    def process(self, now: Optional[datetime] = None):
        """Actuate commands whose simulated delay has passed."""
        if not self.responding:
            return
        now = now or self.clock()
        due = [c for c in self._pending if now - c.issued_at >= timedelta(seconds=self.delay_seconds)]
        if not due:
            return
        self.valve_open = due[-1].open
        confirmation = ValveConfirmation(open=self.valve_open, reported_at=now)
        try:
            self.store.set(KEY_VALVE_CONFIRMATION, confirmation.to_dict())
        except StoreUnavailable as e:
            logger.warning(f"Simulated bridge could not report valve state: {e.message}")
            return
        self._pending = [c for c in self._pending if c not in due]
        logger.debug(f"Simulated valve now {'open' if self.valve_open else 'closed'}")
