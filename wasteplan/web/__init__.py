"""Wasteplan web API."""
