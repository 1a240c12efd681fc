"""Wasteplan - versioned waste collection plans with plan/actual reconciliation."""

__version__ = "0.1.0"
