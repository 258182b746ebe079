"""Mode state machine coordinating trigger evaluators and the cycle timer."""
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from irrigation_engine.config.config import (
    KEY_IRRIGATION_CONFIG, KEY_LAST_AUTO_TRIGGER_MARK,
    POLL_INTERVAL_SEC, TICK_INTERVAL_SEC, DECISION_LOG_SIZE, MIN_MANUAL_START_LITERS
)
from irrigation_engine.controllers.cycle_timer import CycleTimer
from irrigation_engine.decision_engine.trigger_evaluator import (
    StateSnapshot, TriggerEvaluator, build_evaluators
)
from irrigation_engine.exceptions import StoreUnavailable, OperationRejected, InvalidStoreValue
from irrigation_engine.models.irrigation_state import (
    Decision, DecisionRecord, IrrigationConfig, IrrigationMode, Phase, TankLevel, TriggerSource
)
from irrigation_engine.safety.confirmation_reconciler import ConfirmationReconciler
from irrigation_engine.scheduler.timers import RepeatingTimer
from irrigation_engine.services.state_store import StateStore
from irrigation_engine.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class IrrigationScheduler:
    """
    Top-level coordinator for one valve.

    States are ``{Manual, Automatic, Scheduled} x {Idle, Watering}``. The
    active mode's evaluator is polled at startup and every
    ``poll_interval`` seconds; the cycle timer and the reconciler advance
    every ``tick_interval`` seconds. Store failures are absorbed at the
    poll/tick boundary and retried on the next call.
    """

    def __init__(self, store: StateStore, cycle_timer: CycleTimer,
                 reconciler: ConfirmationReconciler,
                 evaluators: Optional[Dict[IrrigationMode, TriggerEvaluator]] = None,
                 clock: Callable[[], datetime] = utcnow,
                 poll_interval: float = POLL_INTERVAL_SEC,
                 tick_interval: float = TICK_INTERVAL_SEC,
                 decision_log_size: int = DECISION_LOG_SIZE,
                 min_manual_start_liters: float = MIN_MANUAL_START_LITERS):
        """
        Initialize scheduler.

        Args:
            store: Shared state store
            cycle_timer: Cycle timer owning the active cycle
            reconciler: Confirmation reconciler
            evaluators: Evaluator per mode (defaults to ``build_evaluators()``)
            clock: Time source returning timezone-aware datetimes
            poll_interval: Seconds between evaluator polls
            tick_interval: Seconds between cycle timer ticks
            decision_log_size: Number of decisions kept in memory
            min_manual_start_liters: Manual start is refused below this tank level
        """
        self.store = store
        self.cycle_timer = cycle_timer
        self.reconciler = reconciler
        self.evaluators = evaluators or build_evaluators()
        self.clock = clock
        self.poll_interval = poll_interval
        self.tick_interval = tick_interval
        self.min_manual_start_liters = min_manual_start_liters

        self.config = IrrigationConfig()
        self.decision_log: deque = deque(maxlen=decision_log_size)
        self._lock = threading.RLock()
        self._handles: List[RepeatingTimer] = []
        self._unsubscribe_config: Optional[Callable[[], None]] = None
        self._last_poll_at: Optional[datetime] = None  # Last poll that reached an evaluator

    @property
    def mode(self) -> IrrigationMode:
        return self.config.mode

    @property
    def phase(self) -> Phase:
        return Phase.WATERING if self.cycle_timer.is_watering else Phase.IDLE

    @property
    def is_running(self) -> bool:
        return bool(self._handles)

    def attach(self):
        """Subscribe to config and valve changes without starting any timer."""
        self.reconciler.start()
        if self._unsubscribe_config is None:
            self._unsubscribe_config = self.store.subscribe(KEY_IRRIGATION_CONFIG, self._on_config_change)

    def start(self):
        """Subscribe to config changes, poll once, then start the timers."""
        if self._handles:
            return

        self.attach()
        self.poll()

        self._handles = [
            RepeatingTimer(self.tick_interval, self.tick, name='irrigation-tick'),
            RepeatingTimer(self.poll_interval, self.poll, name='irrigation-poll'),
        ]
        for handle in self._handles:
            handle.start()
        logger.info(f"Irrigation scheduler started (poll every {self.poll_interval:g}s, "
                    f"tick every {self.tick_interval:g}s)")

    def stop(self):
        """Cancel the timers and subscriptions. An active cycle is cancelled."""
        for handle in self._handles:
            handle.cancel()
        self._handles = []

        if self._unsubscribe_config:
            self._unsubscribe_config()
            self._unsubscribe_config = None
        self.reconciler.stop()

        with self._lock:
            self.cycle_timer.cancel(self.clock(), 'scheduler stopped')
        logger.info("Irrigation scheduler stopped")

    def poll(self, now: Optional[datetime] = None) -> DecisionRecord:
        """
        Run the active mode's evaluator once.

        Returns:
            The decision recorded for this poll
        """
        with self._lock:
            now = now or self.clock()
            try:
                config = IrrigationConfig.from_dict(self.store.get(KEY_IRRIGATION_CONFIG))
                mark = self.store.get(KEY_LAST_AUTO_TRIGGER_MARK)
            except StoreUnavailable as e:
                logger.warning(f"Skipping poll: {e.message}")
                return self._record(now, self.config.mode, Decision.NO_ACTION, 'store_unavailable')
            except InvalidStoreValue as e:
                logger.warning(f"Skipping poll, keeping last good config: {e.message}")
                return self._record(now, self.config.mode, Decision.NO_ACTION, 'invalid_store_value', e.details)

            self._apply_config(config, now)

            evaluator = self.evaluators[config.mode]
            snapshot = StateSnapshot(config=config, last_auto_trigger_mark=mark,
                                     watering=self.cycle_timer.is_watering,
                                     previous_poll_at=self._last_poll_at)
            try:
                result = evaluator.evaluate(now, snapshot)
            except InvalidStoreValue as e:
                logger.warning(f"Trigger not evaluated: {e.message}")
                return self._record(now, config.mode, Decision.NO_ACTION, 'invalid_store_value', e.details)
            finally:
                self._last_poll_at = now

            if result['decision'] != Decision.START_CYCLE:
                return self._record(now, config.mode, Decision.NO_ACTION, result['reason'], result['details'])

            try:
                claimed = evaluator.claim(now, self.store, snapshot)
            except StoreUnavailable as e:
                logger.warning(f"Trigger not claimed: {e.message}")
                return self._record(now, config.mode, Decision.NO_ACTION, 'store_unavailable')

            if not claimed:
                return self._record(now, config.mode, Decision.NO_ACTION,
                                    'Trigger already claimed by another session')

            started = self.cycle_timer.start(now, config, TriggerSource.EVALUATOR)
            details = dict(result['details'], started=started)
            return self._record(now, config.mode, Decision.START_CYCLE, result['reason'], details)

    def tick(self, now: Optional[datetime] = None):
        """Advance the cycle timer and re-check valve confirmation."""
        with self._lock:
            now = now or self.clock()
            try:
                self.store.poll_changes()
            except StoreUnavailable as e:
                logger.debug(f"Change poll skipped: {e.message}")

            self.cycle_timer.tick(now, self.config)
            self.reconciler.check(now)

    def manual_start(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Operator switch on. Only accepted in Manual mode while irrigation is active.

        Raises:
            OperationRejected: if the current state does not allow a manual cycle
        """
        with self._lock:
            now = now or self.clock()
            config = self.config
            if config.mode != IrrigationMode.MANUAL:
                raise OperationRejected(f'Manual watering is only available in manual mode (current: {config.mode.value})')
            if not config.active:
                raise OperationRejected('Irrigation is switched off')
            if self.cycle_timer.is_watering:
                raise OperationRejected('A cycle is already in progress')

            tank = self.cycle_timer.read_tank()
            if tank.current_liters < self.min_manual_start_liters:
                raise OperationRejected(
                    f'Tank level {tank.current_liters:.1f}L is below the {self.min_manual_start_liters:g}L minimum',
                    {'current_liters': tank.current_liters})

            if not self.cycle_timer.start(now, config, TriggerSource.OPERATOR):
                raise OperationRejected('Cycle could not be started')

            self._record(now, config.mode, Decision.START_CYCLE, 'Operator switched watering on')
            return self.cycle_timer.session.to_dict()

    def manual_stop(self, now: Optional[datetime] = None) -> bool:
        """
        Operator switch off. Works in every mode.

        Returns:
            True if a cycle was cancelled
        """
        with self._lock:
            return self.cycle_timer.cancel(now or self.clock(), 'operator switched watering off')

    def refill_tank(self, percent: float) -> Tuple[TankLevel, float]:
        """Refill the tank without racing a tick's read-consume-write of the same level."""
        with self._lock:
            return self.cycle_timer.refill_tank(percent)

    def update_tank_settings(self, settings: Dict[str, float]) -> TankLevel:
        """Change tank capacity or threshold without racing a tick."""
        with self._lock:
            return self.cycle_timer.update_tank_settings(settings)

    def _on_config_change(self, key: str, value):
        with self._lock:
            try:
                config = IrrigationConfig.from_dict(value)
            except InvalidStoreValue as e:
                logger.warning(f"Ignoring config change, keeping last good config: {e.message}")
                return
            self._apply_config(config, self.clock())

    def _apply_config(self, config: IrrigationConfig, now: datetime):
        """Adopt a new config; an active cycle it no longer permits is cancelled."""
        previous = self.config
        self.config = config
        if previous.mode != config.mode:
            logger.info(f"Irrigation mode changed: {previous.mode.value} -> {config.mode.value}")

        session = self.cycle_timer.session
        if session is None:
            return
        if not config.active:
            self.cycle_timer.cancel(now, 'irrigation switched off')
        elif config.mode != session.mode:
            self.cycle_timer.cancel(now, f'mode changed to {config.mode.value}')

    def _record(self, now: datetime, mode: IrrigationMode, decision: Decision, reason: str,
                details: Optional[Dict[str, Any]] = None) -> DecisionRecord:
        record = DecisionRecord(timestamp=now, mode=mode, decision=decision, reason=reason,
                                details=details or {})
        self.decision_log.append(record)
        if decision == Decision.START_CYCLE:
            logger.info(f"[{mode.value}] StartCycle: {reason}")
        else:
            logger.debug(f"[{mode.value}] NoAction: {reason}")
        return record

    def get_decisions(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Most recent decisions first."""
        records = list(self.decision_log)[::-1]
        if limit is not None:
            records = records[:limit]
        return [r.to_dict() for r in records]

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status for display."""
        with self._lock:
            tank = self.cycle_timer.tank
            return {
                'mode': self.config.mode.value,
                'phase': self.phase.value,
                'active': self.config.active,
                'scheduler_running': self.is_running,
                'session': self.cycle_timer.session.to_dict() if self.cycle_timer.session else None,
                'tank': dict(tank.to_dict(), percent=round(tank.percent, 1), is_low=tank.is_low) if tank else None,
                'stale': self.reconciler.stale,
                'valve': self.reconciler.get_status(),
                'config': self.config.to_dict(),
            }
