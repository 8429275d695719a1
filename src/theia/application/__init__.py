"""Application layer: settings and wiring."""
