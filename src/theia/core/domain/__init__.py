"""Core domain: events, models and orchestration components."""
