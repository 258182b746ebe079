"""Utility functions package."""
