"""Per-mode trigger evaluators deciding when a watering cycle should start."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from irrigation_engine.config.config import KEY_LAST_AUTO_TRIGGER_MARK, SCHEDULE_CATCH_UP_SEC
from irrigation_engine.exceptions import InvalidConfigurationError, InvalidStoreValue
from irrigation_engine.models.irrigation_state import IrrigationConfig, IrrigationMode, Decision
from irrigation_engine.services.state_store import StateStore
from irrigation_engine.utils.time_utils import to_epoch, from_epoch
from irrigation_engine.utils.validator import parse_time_of_day

logger = logging.getLogger(__name__)


@dataclass
class StateSnapshot:
    """Durable state as read at the start of one poll."""
    config: IrrigationConfig
    last_auto_trigger_mark: Optional[Dict[str, Any]] = None
    watering: bool = False
    previous_poll_at: Optional[datetime] = None  # None on the first poll of a process

    @property
    def last_auto_trigger_at(self) -> Optional[datetime]:
        if not self.last_auto_trigger_mark:
            return None
        try:
            return from_epoch(self.last_auto_trigger_mark['timestamp'])
        except (KeyError, TypeError, ValueError, OverflowError, OSError) as e:
            raise InvalidStoreValue(KEY_LAST_AUTO_TRIGGER_MARK, self.last_auto_trigger_mark, e) from e


def _decision(decision: Decision, reason: str, **details) -> Dict[str, Any]:
    return {'decision': decision, 'reason': reason, 'details': details}


class TriggerEvaluator(ABC):
    """Base evaluator: ``evaluate`` is pure, ``claim`` performs the start-side write."""

    mode: IrrigationMode

    def evaluate(self, now: datetime, snapshot: StateSnapshot) -> Dict[str, Any]:
        """
        Decide whether a cycle should start.

        Args:
            now: Current time (timezone-aware)
            snapshot: Durable state read for this poll

        Returns:
            Dictionary with 'decision', 'reason' and 'details'
        """
        if not snapshot.config.active:
            return _decision(Decision.NO_ACTION, 'Irrigation is switched off')
        if snapshot.watering:
            return _decision(Decision.NO_ACTION, 'A cycle is already in progress')
        return self._evaluate(now, snapshot)

    @abstractmethod
    def _evaluate(self, now: datetime, snapshot: StateSnapshot) -> Dict[str, Any]:
        pass

    def claim(self, now: datetime, store: StateStore, snapshot: StateSnapshot) -> bool:
        """
        Record a StartCycle decision before any actuation.

        Returns:
            True if this evaluator owns the trigger and the cycle may start
        """
        return True


class ManualEvaluator(TriggerEvaluator):
    """Manual mode never starts cycles on its own."""

    mode = IrrigationMode.MANUAL

    def _evaluate(self, now: datetime, snapshot: StateSnapshot) -> Dict[str, Any]:
        return _decision(Decision.NO_ACTION, 'Manual mode waits for the operator switch')


class AutomaticEvaluator(TriggerEvaluator):
    """Fixed-frequency cycles fenced by the durable ``lastAutoTriggerMark``."""

    mode = IrrigationMode.AUTOMATIC

    def __init__(self, use_compare_and_set: bool = True):
        """
        Initialize automatic evaluator.

        Args:
            use_compare_and_set: Claim the fence atomically instead of a plain write
        """
        self.use_compare_and_set = use_compare_and_set

    def _evaluate(self, now: datetime, snapshot: StateSnapshot) -> Dict[str, Any]:
        frequency = timedelta(hours=snapshot.config.auto_frequency_hours)
        last_trigger = snapshot.last_auto_trigger_at

        if last_trigger is None:
            return _decision(Decision.START_CYCLE, 'No automatic cycle has run yet')

        elapsed = now - last_trigger
        if elapsed < timedelta(0):
            # Never move the fence backwards
            return _decision(Decision.NO_ACTION, 'Last automatic trigger is later than the current time',
                             last_trigger=last_trigger.isoformat())

        if elapsed >= frequency:
            return _decision(Decision.START_CYCLE,
                             f'{elapsed.total_seconds() / 3600:.2f}h since last automatic cycle '
                             f'(every {snapshot.config.auto_frequency_hours:g}h)',
                             last_trigger=last_trigger.isoformat())

        return _decision(Decision.NO_ACTION, 'Automatic cycle not due yet',
                         last_trigger=last_trigger.isoformat(),
                         next_due=(last_trigger + frequency).isoformat())

    def claim(self, now: datetime, store: StateStore, snapshot: StateSnapshot) -> bool:
        """
        Move the trigger fence to ``now`` before the valve is opened.

        With compare-and-set, a concurrent evaluator that moved the fence
        after our snapshot wins and this claim fails. Without it, the write
        narrows but does not close the window between two readers.
        """
        new_mark = {'timestamp': to_epoch(now)}
        if not self.use_compare_and_set:
            store.set(KEY_LAST_AUTO_TRIGGER_MARK, new_mark)
            return True

        claimed = store.compare_and_set(KEY_LAST_AUTO_TRIGGER_MARK, snapshot.last_auto_trigger_mark, new_mark)
        if not claimed:
            logger.info("Automatic trigger already claimed by another session")
        return claimed


class ScheduledEvaluator(TriggerEvaluator):
    """
    Once-a-day cycle at ``scheduledTimeOfDay``, to minute precision.

    A poll inside the scheduled minute fires. So does the first poll after
    it when the previous poll came before the minute, as long as it is no
    more than ``catch_up_seconds`` late; poll periods that straddle the
    minute would otherwise skip the day.
    """

    mode = IrrigationMode.SCHEDULED

    def __init__(self, timezone: Optional[str] = None, catch_up_seconds: float = SCHEDULE_CATCH_UP_SEC):
        """
        Initialize scheduled evaluator.

        Args:
            timezone: IANA zone for the wall clock (None = system local time)
            catch_up_seconds: Latest a missed scheduled minute may still fire
        """
        self.timezone = ZoneInfo(timezone) if timezone else None
        self.catch_up = timedelta(seconds=catch_up_seconds)
        self._fired_minute: Optional[str] = None  # In-process, not durable

    def _local(self, now: datetime) -> datetime:
        if self.timezone is not None:
            return now.astimezone(self.timezone)
        return now.astimezone()

    def _occurrence(self, now: datetime, scheduled: time) -> datetime:
        """Start of the most recent scheduled minute at or before ``now``."""
        local_now = self._local(now)
        occurrence = local_now.replace(hour=scheduled.hour, minute=scheduled.minute, second=0, microsecond=0)
        if occurrence > local_now:
            occurrence -= timedelta(days=1)
        return occurrence

    @staticmethod
    def _minute_key(occurrence: datetime) -> str:
        return occurrence.strftime('%Y-%m-%d %H:%M')

    def has_fired_this_minute(self, now: datetime) -> bool:
        return self._fired_minute == self._minute_key(self._local(now))

    def _evaluate(self, now: datetime, snapshot: StateSnapshot) -> Dict[str, Any]:
        scheduled_time = snapshot.config.scheduled_time_of_day
        try:
            scheduled = parse_time_of_day(scheduled_time)
        except InvalidConfigurationError as e:
            return _decision(Decision.NO_ACTION, e.message)

        occurrence = self._occurrence(now, scheduled)
        late = now - occurrence
        if late >= timedelta(minutes=1):
            previous = snapshot.previous_poll_at
            missed = previous is not None and previous < occurrence and late <= self.catch_up
            if not missed:
                return _decision(Decision.NO_ACTION, 'Not the scheduled time', scheduled_time=scheduled_time)

        if self._fired_minute == self._minute_key(occurrence):
            return _decision(Decision.NO_ACTION, 'Scheduled cycle already ran this minute',
                             scheduled_time=scheduled_time)

        if late >= timedelta(minutes=1):
            return _decision(Decision.START_CYCLE,
                             f'Scheduled time {scheduled_time} passed since the previous poll',
                             scheduled_time=scheduled_time, late_seconds=round(late.total_seconds(), 1))
        return _decision(Decision.START_CYCLE, f'Scheduled time {scheduled_time} reached',
                         scheduled_time=scheduled_time)

    def claim(self, now: datetime, store: StateStore, snapshot: StateSnapshot) -> bool:
        scheduled = parse_time_of_day(snapshot.config.scheduled_time_of_day)
        self._fired_minute = self._minute_key(self._occurrence(now, scheduled))
        return True


def build_evaluators(timezone: Optional[str] = None, use_compare_and_set: bool = True,
                     catch_up_seconds: float = SCHEDULE_CATCH_UP_SEC) -> Dict[IrrigationMode, TriggerEvaluator]:
    """Create one evaluator per irrigation mode."""
    return {
        IrrigationMode.MANUAL: ManualEvaluator(),
        IrrigationMode.AUTOMATIC: AutomaticEvaluator(use_compare_and_set=use_compare_and_set),
        IrrigationMode.SCHEDULED: ScheduledEvaluator(timezone=timezone, catch_up_seconds=catch_up_seconds),
    }
