"""Geometry, report and overlay helpers."""
