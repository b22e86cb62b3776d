"""Relay realtime backend application."""
