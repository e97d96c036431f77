"""Shared filesystem helpers."""
