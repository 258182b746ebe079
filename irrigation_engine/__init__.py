"""Irrigation scheduling and valve coordination engine."""

__version__ = '1.0.0'
