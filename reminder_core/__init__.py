"""Reminder Core - Motor de programación, cancelación y reconciliación de recordatorios."""

__version__ = "1.0.0"
