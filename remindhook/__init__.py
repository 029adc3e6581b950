"""Scheduled webhook reminders for team chat platforms."""

__version__ = "0.1.0"
