"""Valve confirmation safety package."""
from irrigation_engine.safety.confirmation_reconciler import ConfirmationReconciler

__all__ = [
    'ConfirmationReconciler',
]
