"""Core types, errors and helpers."""
