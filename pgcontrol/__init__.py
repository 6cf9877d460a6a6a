"""pgcontrol — lifecycle control for a managed PostgreSQL instance."""

__version__ = "0.1.0"
