"""Encoders for diagnostics data."""
