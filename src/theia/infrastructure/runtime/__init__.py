"""Sandboxed command runtimes."""
