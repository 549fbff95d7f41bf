"""API layer helpers."""
