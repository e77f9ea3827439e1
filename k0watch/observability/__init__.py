"""Logging and metrics for k0watch."""
