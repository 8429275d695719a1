"""Outer surfaces of Theia."""
