"""Valve command path and hardware stand-ins."""
from irrigation_engine.hardware.valve_command_channel import ValveCommandChannel
from irrigation_engine.hardware.simulated_bridge import SimulatedValveBridge

__all__ = [
    'ValveCommandChannel',
    'SimulatedValveBridge',
]
