"""Theia - agent orchestration core for interactive code review."""

__version__ = "0.1.0"
