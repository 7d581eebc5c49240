"""Shared utilities: logging, time, console output."""
