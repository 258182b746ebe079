"""Scheduling package."""
from irrigation_engine.scheduler.irrigation_scheduler import IrrigationScheduler
from irrigation_engine.scheduler.timers import RepeatingTimer

__all__ = [
    'IrrigationScheduler',
    'RepeatingTimer',
]
