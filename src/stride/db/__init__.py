"""Persistence: SQLAlchemy models and the repository."""
