"""Idempotent reconciler for a PostgreSQL server installation."""

__version__ = "0.1.0"
