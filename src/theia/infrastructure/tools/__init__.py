"""Tool implementations for the gateway."""
