"""Utility helpers: schema validation, output normalization, JSON parsing, language tags."""
