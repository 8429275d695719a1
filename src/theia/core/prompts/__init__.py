"""Directive templates for the reasoning service."""
