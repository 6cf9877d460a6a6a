"""Lifecycle services — one module per PostgreSQL tool we drive."""
