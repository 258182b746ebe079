"""Database models and domain records package."""
from irrigation_engine.models.state_entry import StateEntry
from irrigation_engine.models.cycle_log import CycleLog, CycleStatus
from irrigation_engine.models.system_log import SystemLog, LogLevel
from irrigation_engine.models.irrigation_state import (
    IrrigationMode, Phase, Decision, TriggerSource,
    IrrigationConfig, TankLevel, ValveCommand, ValveConfirmation,
    CycleSession, DecisionRecord
)

__all__ = [
    'StateEntry',
    'CycleLog',
    'CycleStatus',
    'SystemLog',
    'LogLevel',
    'IrrigationMode',
    'Phase',
    'Decision',
    'TriggerSource',
    'IrrigationConfig',
    'TankLevel',
    'ValveCommand',
    'ValveConfirmation',
    'CycleSession',
    'DecisionRecord',
]
