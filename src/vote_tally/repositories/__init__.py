"""Data access helpers."""
