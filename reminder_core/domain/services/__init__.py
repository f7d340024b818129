"""
Domain Services - Lógica pura del núcleo de recordatorios.
"""

from reminder_core.domain.services.registry import ReconcileReport, ReminderRegistry
from reminder_core.domain.services.time_resolution import apply_offset, iter_occurrences, resolve

__all__ = [
    "ReconcileReport",
    "ReminderRegistry",
    "apply_offset",
    "iter_occurrences",
    "resolve",
]
