"""Commanded vs. confirmed valve state reconciliation."""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from irrigation_engine.config.config import (
    KEY_VALVE_COMMAND, KEY_VALVE_CONFIRMATION, CONFIRMATION_TIMEOUT_SEC
)
from irrigation_engine.exceptions import StoreUnavailable, InvalidStoreValue
from irrigation_engine.hardware.valve_command_channel import ValveCommandChannel
from irrigation_engine.models.irrigation_state import ValveCommand, ValveConfirmation
from irrigation_engine.models.system_log import SystemLog, LogLevel
from irrigation_engine.services.state_store import StateStore

logger = logging.getLogger(__name__)


class ConfirmationReconciler:
    """
    Watches the hardware-reported valve state and flags staleness.

    The valve is stale when the confirmed state differs from the commanded
    one for longer than ``timeout_seconds``. The divergence clock starts at
    the later of the command time and the last confirmation time. Staleness
    is a warning only; the command is left untouched unless
    ``resend_on_stale`` is enabled, in which case it is re-issued once per
    stale episode.
    """

    def __init__(self, store: StateStore, timeout_seconds: float = CONFIRMATION_TIMEOUT_SEC,
                 resend_on_stale: bool = False,
                 command_channel: Optional[ValveCommandChannel] = None,
                 db_session_factory: Optional[Callable] = None):
        """
        Initialize reconciler.

        Args:
            store: Shared state store
            timeout_seconds: How long a divergence may persist before it is stale
            resend_on_stale: Re-issue the commanded state when it goes stale
            command_channel: Required when ``resend_on_stale`` is enabled
            db_session_factory: Function that returns a database session, for system logs
        """
        if resend_on_stale and command_channel is None:
            raise ValueError("resend_on_stale requires a command channel")

        self.store = store
        self.timeout = timedelta(seconds=timeout_seconds)
        self.resend_on_stale = resend_on_stale
        self.command_channel = command_channel
        self.db_session_factory = db_session_factory

        self.commanded: Optional[ValveCommand] = None
        self.confirmed: Optional[ValveConfirmation] = None
        self.stale = False
        self.stale_since: Optional[datetime] = None
        self._resent_for: Optional[ValveCommand] = None
        self._unsubscribers = []

    def start(self):
        """Subscribe to command and confirmation changes and load current values."""
        if not self._unsubscribers:
            self._unsubscribers = [
                self.store.subscribe(KEY_VALVE_COMMAND, self._on_command),
                self.store.subscribe(KEY_VALVE_CONFIRMATION, self._on_confirmation),
            ]
        try:
            self._on_command(KEY_VALVE_COMMAND, self.store.get(KEY_VALVE_COMMAND))
            self._on_confirmation(KEY_VALVE_CONFIRMATION, self.store.get(KEY_VALVE_CONFIRMATION))
        except StoreUnavailable as e:
            logger.warning(f"Reconciler could not load valve state: {e.message}")

    def stop(self):
        """Remove store subscriptions."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_command(self, key: str, value):
        try:
            self.commanded = ValveCommand.from_dict(value)
        except InvalidStoreValue as e:
            logger.warning(f"Ignoring valve command, keeping last good value: {e.message}")

    def _on_confirmation(self, key: str, value):
        try:
            self.confirmed = ValveConfirmation.from_dict(value)
        except InvalidStoreValue as e:
            logger.warning(f"Ignoring valve confirmation, keeping last good value: {e.message}")

    def diverged(self) -> bool:
        """Whether the confirmed state differs from the commanded one."""
        if self.commanded is None:
            return False
        if self.confirmed is None:
            return True
        return self.confirmed.open != self.commanded.open

    def divergence_started_at(self) -> Optional[datetime]:
        if not self.diverged():
            return None
        if self.confirmed is None:
            return self.commanded.issued_at
        return max(self.commanded.issued_at, self.confirmed.reported_at)

    def is_stale(self, now: datetime) -> bool:
        """Compute staleness at ``now`` without changing any state."""
        started = self.divergence_started_at()
        return started is not None and now - started > self.timeout

    def check(self, now: datetime) -> bool:
        """
        Re-evaluate staleness and record transitions.

        Returns:
            Current stale flag
        """
        stale = self.is_stale(now)
        if stale and not self.stale:
            self.stale_since = now
            message = (f"Valve confirmation stale: commanded "
                       f"{'open' if self.commanded.open else 'closed'}, hardware reports "
                       f"{self._confirmed_label()}")
            logger.warning(message)
            self._log_system(LogLevel.WARNING, message)
        elif not stale and self.stale:
            logger.info("Valve confirmation caught up with command")
            self.stale_since = None
        self.stale = stale

        if stale and self.resend_on_stale and self._resent_for != self.commanded:
            self._resent_for = self.commanded
            logger.info("Re-issuing stale valve command")
            self.command_channel.issue(self.commanded.open, now)

        return stale

    def _confirmed_label(self) -> str:
        if self.confirmed is None:
            return 'nothing'
        return 'open' if self.confirmed.open else 'closed'

    def get_status(self) -> Dict[str, Any]:
        """Get reconciler status for display."""
        return {
            'stale': self.stale,
            'stale_since': self.stale_since.isoformat() if self.stale_since else None,
            'commanded': self.commanded.to_dict() if self.commanded else None,
            'confirmed': self.confirmed.to_dict() if self.confirmed else None,
            'timeout_seconds': self.timeout.total_seconds(),
            'resend_on_stale': self.resend_on_stale,
        }

    def _log_system(self, level: LogLevel, message: str):
        """Log system event."""
        if self.db_session_factory is None:
            return
        db = None
        try:
            db = next(self.db_session_factory())
            db.add(SystemLog(log_level=level, component='confirmation_reconciler', message=message))
            db.commit()
        except Exception as e:
            logger.error(f"Error logging system event: {str(e)}")
        finally:
            if db:
                db.close()
