"""Persistence: SQLAlchemy engine, catalog models and repositories."""
