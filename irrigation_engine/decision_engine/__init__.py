"""Decision engine package."""
from irrigation_engine.decision_engine.trigger_evaluator import (
    StateSnapshot,
    TriggerEvaluator,
    ManualEvaluator,
    AutomaticEvaluator,
    ScheduledEvaluator,
    build_evaluators
)

__all__ = [
    'StateSnapshot',
    'TriggerEvaluator',
    'ManualEvaluator',
    'AutomaticEvaluator',
    'ScheduledEvaluator',
    'build_evaluators',
]
