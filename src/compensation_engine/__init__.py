"""Staff compensation and quarterly bonus lifecycle engine."""

__version__ = "0.1.0"
