"""Orchestration core (no I/O beyond the injected protocols)."""
