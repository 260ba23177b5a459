"""Diagnostics for kubelog (structlog)."""
