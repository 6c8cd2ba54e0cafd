"""Pydantic models grouped by concern."""
