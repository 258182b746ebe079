from flask import Flask, jsonify
from flask_cors import CORS
import logging

from irrigation_engine import __version__
from irrigation_engine.api import api_bp, irrigation, valve, logs, system
from irrigation_engine.config.config import (
    USE_MEMORY_STORE, SIMULATE_HARDWARE, SIMULATED_CONFIRMATION_DELAY_SEC,
    NOMINAL_FLOW_LPM, TICK_INTERVAL_SEC, POLL_INTERVAL_SEC, DECISION_LOG_SIZE,
    CONFIRMATION_TIMEOUT_SEC, RESEND_ON_STALE, USE_FENCE_COMPARE_AND_SET,
    SCHEDULE_TIMEZONE, MIN_MANUAL_START_LITERS, API_HOST, API_PORT
)
from irrigation_engine.config.database import init_db, get_db
from irrigation_engine.controllers.cycle_timer import CycleTimer
from irrigation_engine.decision_engine.trigger_evaluator import build_evaluators
from irrigation_engine.hardware.simulated_bridge import SimulatedValveBridge
from irrigation_engine.hardware.valve_command_channel import ValveCommandChannel
from irrigation_engine.safety.confirmation_reconciler import ConfirmationReconciler
from irrigation_engine.scheduler.irrigation_scheduler import IrrigationScheduler
from irrigation_engine.scheduler.timers import RepeatingTimer
from irrigation_engine.services.operator_commands import OperatorCommands
from irrigation_engine.services.state_store import SqlStateStore, InMemoryStateStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_controllers(store=None, db_session_factory=get_db, simulate_hardware=SIMULATE_HARDWARE):
    """Wire the store, cycle timer, reconciler and scheduler together."""
    if store is None:
        store = InMemoryStateStore() if USE_MEMORY_STORE else SqlStateStore(db_session_factory)

    channel = ValveCommandChannel(store)
    cycle_timer = CycleTimer(
        channel, store,
        nominal_flow_lpm=NOMINAL_FLOW_LPM,
        tick_seconds=TICK_INTERVAL_SEC,
        db_session_factory=db_session_factory
    )
    reconciler = ConfirmationReconciler(
        store,
        timeout_seconds=CONFIRMATION_TIMEOUT_SEC,
        resend_on_stale=RESEND_ON_STALE,
        command_channel=channel,
        db_session_factory=db_session_factory
    )
    scheduler = IrrigationScheduler(
        store, cycle_timer, reconciler,
        evaluators=build_evaluators(SCHEDULE_TIMEZONE, USE_FENCE_COMPARE_AND_SET),
        poll_interval=POLL_INTERVAL_SEC,
        tick_interval=TICK_INTERVAL_SEC,
        decision_log_size=DECISION_LOG_SIZE,
        min_manual_start_liters=MIN_MANUAL_START_LITERS
    )

    controllers = {
        'store': store,
        'channel': channel,
        'scheduler': scheduler,
        'reconciler': reconciler,
        'commands': OperatorCommands(store, scheduler),
        'db_session_factory': db_session_factory,
        'bridge': None,
    }

    if simulate_hardware:
        controllers['bridge'] = SimulatedValveBridge(store, delay_seconds=SIMULATED_CONFIRMATION_DELAY_SEC)
    return controllers


def create_app(controllers):
    """Create the Flask app around already-wired controllers."""
    app = Flask(__name__)

    # Enable CORS for all routes
    CORS(app)

    # Set controllers in API modules
    irrigation.controllers = controllers
    valve.controllers = controllers
    logs.controllers = controllers
    system.system_state['controllers'] = controllers

    app.register_blueprint(api_bp)

    @app.route('/')
    def home():
        return jsonify("Irrigation engine running")

    @app.route('/health', methods=['GET'])
    def api_health():
        """API health check endpoint"""
        scheduler = controllers.get('scheduler')
        return jsonify({
            'status': 'healthy',
            'service': 'irrigation-engine',
            'version': __version__,
            'scheduler': 'running' if scheduler and scheduler.is_running else 'stopped'
        }), 200

    return app


def start_background(controllers):
    """Start the hardware bridge (if simulated) and the scheduler."""
    handles = []
    bridge = controllers.get('bridge')
    if bridge:
        bridge.start()
        if bridge.delay_seconds > 0:
            handles.append(RepeatingTimer(TICK_INTERVAL_SEC, bridge.process, name='simulated-bridge'))
        logger.info("✓ Simulated hardware bridge started")

    controllers['scheduler'].start()
    for handle in handles:
        handle.start()
    return handles


if __name__ == '__main__':
    if not USE_MEMORY_STORE:
        init_db()

    controllers = build_controllers()
    app = create_app(controllers)
    handles = start_background(controllers)
    try:
        app.run(host=API_HOST, port=API_PORT, debug=False)
    finally:
        for handle in handles:
            handle.cancel()
        controllers['scheduler'].stop()
