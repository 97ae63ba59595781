"""Notification scheduling and delivery engine for the calendar app."""

__version__ = "1.0.0"
