"""Persistence repositories (SQLAlchemy)."""
