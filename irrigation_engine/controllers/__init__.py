"""Controllers package."""
from irrigation_engine.controllers.cycle_timer import CycleTimer

__all__ = [
    'CycleTimer',
]
