"""Goalix progression engine."""
