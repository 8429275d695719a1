"""Persistence adapters: session store and flight recorder."""
