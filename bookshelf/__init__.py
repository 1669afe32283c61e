"""Bookshelf: personal book tracker with LLM-backed genres and recommendations."""

__version__ = "1.0.0"
