"""Protocols the orchestration core depends on."""
