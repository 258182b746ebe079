"""Shared pytest fixtures for testing."""
import pytest
import os
import tempfile
import shutil
from datetime import datetime, timedelta, timezone
from irrigation_engine.config.config import KEY_IRRIGATION_CONFIG, KEY_TANK_LEVEL
from irrigation_engine.controllers.cycle_timer import CycleTimer
from irrigation_engine.decision_engine.trigger_evaluator import build_evaluators
from irrigation_engine.hardware.valve_command_channel import ValveCommandChannel
from irrigation_engine.models.irrigation_state import IrrigationConfig, TankLevel
from irrigation_engine.safety.confirmation_reconciler import ConfirmationReconciler
from irrigation_engine.scheduler.irrigation_scheduler import IrrigationScheduler
from irrigation_engine.services.state_store import InMemoryStateStore, SqlStateStore


class FakeClock:
    """Controllable time source."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def save_config(store, **fields):
    """Write an IrrigationConfig to the store, bypassing operator checks."""
    store.set(KEY_IRRIGATION_CONFIG, IrrigationConfig(**fields).to_dict())


def save_tank(store, current_liters, capacity_liters=500.0, low_threshold_pct=20.0):
    """Write a TankLevel to the store."""
    store.set(KEY_TANK_LEVEL, TankLevel(current_liters, capacity_liters, low_threshold_pct).to_dict())


@pytest.fixture(scope='function')
def temp_db():
    """Create a temporary database for testing."""
    # Create temporary directory
    temp_dir = tempfile.mkdtemp()
    db_path = os.path.join(temp_dir, 'test_irrigation.db')

    # Create new engine with test database
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker, scoped_session
    from irrigation_engine.config.database import init_db

    test_engine = create_engine(f'sqlite:///{db_path}', connect_args={'check_same_thread': False}, echo=False)
    TestSessionLocal = scoped_session(sessionmaker(autocommit=False, autoflush=False, bind=test_engine))

    # Initialize database tables
    init_db(bind=test_engine)

    # Create a custom get_db that uses test database
    def test_get_db():
        """Get test database session."""
        db = TestSessionLocal()
        try:
            yield db
        finally:
            db.close()

    yield test_get_db

    # Cleanup
    TestSessionLocal.remove()
    test_engine.dispose()
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clock():
    """Clock fixed at 2026-03-01 06:00 UTC."""
    return FakeClock(datetime(2026, 3, 1, 6, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def memory_store():
    """Create an empty in-memory state store."""
    return InMemoryStateStore()


@pytest.fixture
def sql_store(temp_db):
    """Create a SQL state store on the temporary database."""
    return SqlStateStore(temp_db)


@pytest.fixture
def channel(memory_store):
    """Create a valve command channel."""
    return ValveCommandChannel(memory_store)


@pytest.fixture
def cycle_timer(channel, memory_store, temp_db):
    """Create a cycle timer draining a full tank over one cycle."""
    return CycleTimer(channel, memory_store, tick_seconds=1, db_session_factory=temp_db)


@pytest.fixture
def reconciler(memory_store, temp_db):
    """Create a started confirmation reconciler with a 15 s timeout."""
    reconciler = ConfirmationReconciler(memory_store, timeout_seconds=15, db_session_factory=temp_db)
    reconciler.start()
    yield reconciler
    reconciler.stop()


def make_scheduler(store, clock, db_session_factory=None, nominal_flow_lpm=None):
    """Wire a scheduler with its own cycle timer and reconciler on a shared store."""
    channel = ValveCommandChannel(store)
    timer = CycleTimer(channel, store, nominal_flow_lpm=nominal_flow_lpm, tick_seconds=1,
                       db_session_factory=db_session_factory)
    reconciler = ConfirmationReconciler(store, timeout_seconds=15, db_session_factory=db_session_factory)
    scheduler = IrrigationScheduler(
        store, timer, reconciler,
        evaluators=build_evaluators(timezone='UTC', use_compare_and_set=True),
        clock=clock, poll_interval=60, tick_interval=1
    )
    scheduler.attach()
    return scheduler


@pytest.fixture
def scheduler(memory_store, clock, temp_db):
    """Create a scheduler with subscriptions but no running timers."""
    scheduler = make_scheduler(memory_store, clock, db_session_factory=temp_db)
    yield scheduler
    scheduler.stop()


@pytest.fixture
def app(memory_store, temp_db):
    """Create Flask app for testing."""
    from main import build_controllers, create_app

    controllers = build_controllers(store=memory_store, db_session_factory=temp_db, simulate_hardware=False)
    # Subscriptions only; no background timers in tests
    controllers['scheduler'].attach()

    flask_app = create_app(controllers)
    flask_app.config['TESTING'] = True
    flask_app.extensions['irrigation_controllers'] = controllers

    yield flask_app

    controllers['scheduler'].stop()


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()
