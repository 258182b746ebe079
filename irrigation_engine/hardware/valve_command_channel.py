"""Valve command channel: the only writer of the desired valve state."""
import logging
from datetime import datetime
from typing import Optional

from irrigation_engine.config.config import KEY_VALVE_COMMAND
from irrigation_engine.exceptions import StoreUnavailable, CommandWriteFailed
from irrigation_engine.models.irrigation_state import ValveCommand
from irrigation_engine.services.state_store import StateStore
from irrigation_engine.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class ValveCommandChannel:
    """Fire-and-forget writer of ``valveCommand`` to the shared store."""

    def __init__(self, store: StateStore):
        """
        Initialize command channel.

        Args:
            store: Shared state store read by the hardware bridge
        """
        self.store = store
        self.last_issued: Optional[ValveCommand] = None
        self.last_error: Optional[CommandWriteFailed] = None

    def issue(self, desired_open: bool, now: Optional[datetime] = None) -> bool:
        """
        Write the desired valve state.

        Never blocks on the hardware and never raises: a failed write is
        logged and reported through the return value.

        Args:
            desired_open: True to open the valve, False to close it
            now: Command timestamp (defaults to the current time)

        Returns:
            True if the store acknowledged the write, False otherwise
        """
        command = ValveCommand(open=desired_open, issued_at=now or utcnow())
        try:
            self.store.set(KEY_VALVE_COMMAND, command.to_dict())
        except StoreUnavailable as e:
            self.last_error = CommandWriteFailed(desired_open, e)
            logger.warning(f"Valve command {'open' if desired_open else 'close'} not written: {e.message}")
            return False

        self.last_issued = command
        self.last_error = None
        logger.info(f"Valve command issued: {'open' if desired_open else 'close'}")
        return True

    def read_commanded(self) -> Optional[ValveCommand]:
        """Read the commanded state back from the store."""
        return ValveCommand.from_dict(self.store.get(KEY_VALVE_COMMAND))
