"""Notification engine services: store, generator, dispatcher, retry policy and user actions."""
