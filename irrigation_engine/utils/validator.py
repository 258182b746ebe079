"""Validation of operator-supplied irrigation settings."""
from datetime import time as dt_time
from typing import Any, Dict
from irrigation_engine.config.config import (
    MIN_CYCLE_DURATION_MINUTES, MAX_CYCLE_DURATION_MINUTES, MAX_AUTO_FREQUENCY_HOURS
)
from irrigation_engine.exceptions import InvalidConfigurationError
from irrigation_engine.models.irrigation_state import IrrigationMode

# Fields of IrrigationConfig an operator may change, keyed by store name
CONFIG_FIELDS = {
    'mode', 'active', 'cycleDurationMinutes', 'autoFrequencyHours',
    'scheduledTimeOfDay', 'moistureMin', 'moistureMax'
}


def parse_time_of_day(value: str) -> dt_time:
    """
    Parse a 24-hour ``HH:MM`` string.

    Raises:
        InvalidConfigurationError: if the value is not a valid time of day
    """
    if not isinstance(value, str):
        raise InvalidConfigurationError('scheduledTimeOfDay must be a string in HH:MM format', 'scheduledTimeOfDay')
    parts = value.strip().split(':')
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        raise InvalidConfigurationError(f"'{value}' is not in HH:MM format", 'scheduledTimeOfDay')
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59:
        raise InvalidConfigurationError(f"'{value}' is not a valid time of day", 'scheduledTimeOfDay')
    return dt_time(hour, minute)


def _as_number(data: Dict[str, Any], name: str) -> float:
    value = data[name]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigurationError(f'{name} must be a number', name)
    return float(value)


def validate_config_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a partial IrrigationConfig update.

    Args:
        changes: Store-named fields to change

    Returns:
        Normalized copy of the changes

    Raises:
        InvalidConfigurationError: on unknown fields or out-of-range values
    """
    if not isinstance(changes, dict) or not changes:
        raise InvalidConfigurationError('at least one setting is required')

    unknown = set(changes) - CONFIG_FIELDS
    if unknown:
        raise InvalidConfigurationError(f"unknown settings: {', '.join(sorted(unknown))}")

    result = {}
    if 'mode' in changes:
        try:
            result['mode'] = IrrigationMode(changes['mode']).value
        except ValueError:
            raise InvalidConfigurationError(
                f"mode must be one of {', '.join(m.value for m in IrrigationMode)}", 'mode')

    if 'active' in changes:
        if not isinstance(changes['active'], bool):
            raise InvalidConfigurationError('active must be true or false', 'active')
        result['active'] = changes['active']

    if 'cycleDurationMinutes' in changes:
        minutes = _as_number(changes, 'cycleDurationMinutes')
        if not MIN_CYCLE_DURATION_MINUTES <= minutes <= MAX_CYCLE_DURATION_MINUTES:
            raise InvalidConfigurationError(
                f'cycleDurationMinutes must be between {MIN_CYCLE_DURATION_MINUTES:g} and {MAX_CYCLE_DURATION_MINUTES:g}',
                'cycleDurationMinutes')
        result['cycleDurationMinutes'] = minutes

    if 'autoFrequencyHours' in changes:
        hours = _as_number(changes, 'autoFrequencyHours')
        if not 0 < hours <= MAX_AUTO_FREQUENCY_HOURS:
            raise InvalidConfigurationError(
                f'autoFrequencyHours must be greater than 0 and at most {MAX_AUTO_FREQUENCY_HOURS:g}',
                'autoFrequencyHours')
        result['autoFrequencyHours'] = hours

    if 'scheduledTimeOfDay' in changes:
        result['scheduledTimeOfDay'] = parse_time_of_day(changes['scheduledTimeOfDay']).strftime('%H:%M')

    for name in ('moistureMin', 'moistureMax'):
        if name in changes:
            value = _as_number(changes, name)
            if not 0.0 <= value <= 100.0:
                raise InvalidConfigurationError(f'{name} must be between 0 and 100', name)
            result[name] = value

    return result


def validate_refill_percent(percent: Any) -> float:
    """Validate a manual refill amount as a percentage of capacity."""
    if isinstance(percent, bool) or not isinstance(percent, (int, float)):
        raise InvalidConfigurationError('percent must be a number', 'percent')
    if not 0 < percent <= 100:
        raise InvalidConfigurationError('percent must be greater than 0 and at most 100', 'percent')
    return float(percent)


def validate_tank_settings(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Validate tank capacity / low-water threshold edits."""
    if not isinstance(changes, dict) or not changes:
        raise InvalidConfigurationError('at least one tank setting is required')

    unknown = set(changes) - {'capacityLiters', 'lowThresholdPct'}
    if unknown:
        raise InvalidConfigurationError(f"unknown tank settings: {', '.join(sorted(unknown))}")

    result = {}
    if 'capacityLiters' in changes:
        capacity = _as_number(changes, 'capacityLiters')
        if capacity <= 0:
            raise InvalidConfigurationError('capacityLiters must be greater than 0', 'capacityLiters')
        result['capacityLiters'] = capacity
    if 'lowThresholdPct' in changes:
        threshold = _as_number(changes, 'lowThresholdPct')
        if not 0 <= threshold <= 100:
            raise InvalidConfigurationError('lowThresholdPct must be between 0 and 100', 'lowThresholdPct')
        result['lowThresholdPct'] = threshold
    return result
