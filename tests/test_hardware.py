"""Tests for the valve command channel and the simulated bridge."""
import pytest
from irrigation_engine.config.config import KEY_VALVE_COMMAND, KEY_VALVE_CONFIRMATION
from irrigation_engine.exceptions import CommandWriteFailed
from irrigation_engine.hardware.simulated_bridge import SimulatedValveBridge
from irrigation_engine.utils.time_utils import to_epoch


class TestValveCommandChannel:
    """Test writing valve commands."""

    def test_issue_writes_command(self, channel, memory_store, clock):
        """Test that the desired state and time are written."""
        assert channel.issue(True, clock()) is True
        assert memory_store.get(KEY_VALVE_COMMAND) == {'open': True, 'issuedAt': to_epoch(clock())}
        assert channel.read_commanded().open is True

    def test_issue_failure_is_reported(self, channel, memory_store, clock):
        """Test that an unreachable store returns False instead of raising."""
        memory_store.set_available(False)
        assert channel.issue(False, clock()) is False
        assert isinstance(channel.last_error, CommandWriteFailed)
        assert channel.last_error.desired_open is False

        memory_store.set_available(True)
        assert channel.issue(False, clock()) is True
        assert channel.last_error is None


class TestSimulatedBridge:
    """Test the development stand-in for the hardware bridge."""

    @pytest.fixture
    def bridge(self, memory_store, clock):
        bridge = SimulatedValveBridge(memory_store, delay_seconds=0.0, clock=clock)
        bridge.start()
        yield bridge
        bridge.stop()

    def test_immediate_confirmation(self, bridge, channel, memory_store, clock):
        """Test that a zero-delay bridge confirms every command at once."""
        channel.issue(True, clock())
        assert memory_store.get(KEY_VALVE_CONFIRMATION) == {'open': True, 'reportedAt': to_epoch(clock())}
        assert bridge.valve_open is True

    def test_confirmation_keeps_reconciler_fresh(self, bridge, channel, reconciler, clock):
        """Test that a responding bridge never lets the valve go stale."""
        channel.issue(True, clock())
        assert reconciler.check(clock.advance(60)) is False

    def test_unresponsive_bridge(self, bridge, channel, reconciler, memory_store, clock):
        """Test that a dead controller leaves the command unconfirmed."""
        bridge.set_responding(False)
        channel.issue(True, clock())
        assert memory_store.get(KEY_VALVE_CONFIRMATION) is None
        assert reconciler.check(clock.advance(20)) is True

    def test_delayed_confirmation(self, memory_store, channel, clock):
        """Test that a delayed bridge reports only once the delay has passed."""
        bridge = SimulatedValveBridge(memory_store, delay_seconds=5.0, clock=clock)
        bridge.start()
        channel.issue(True, clock())

        bridge.process(clock.advance(3))
        assert memory_store.get(KEY_VALVE_CONFIRMATION) is None

        bridge.process(clock.advance(2))
        assert memory_store.get(KEY_VALVE_CONFIRMATION)['open'] is True
        bridge.stop()

    def test_pending_command_survives_outage(self, memory_store, channel, clock):
        """Test that a report that could not be written is retried."""
        bridge = SimulatedValveBridge(memory_store, delay_seconds=1.0, clock=clock)
        bridge.start()
        channel.issue(True, clock())

        memory_store.set_available(False)
        bridge.process(clock.advance(2))
        memory_store.set_available(True)
        bridge.process(clock.advance(1))

        assert memory_store.get(KEY_VALVE_CONFIRMATION)['open'] is True
        bridge.stop()
