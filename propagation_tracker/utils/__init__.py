"""Shared helpers for the propagation tracker core."""
