"""
Service layer for reminders: lifecycle, dispatch, execution log and stats.
"""
