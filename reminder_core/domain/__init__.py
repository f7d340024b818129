"""
Domain module - Entidades y servicios del dominio de recordatorios.

Estructura:
    - entities/: Dataclasses que representan el dominio
    - services/: Resolución de tiempos y registro de recordatorios
"""

from reminder_core.domain.entities import (
    EntityKind,
    ReminderConfig,
    ReminderEntity,
    ScheduledReminder,
)

__all__ = [
    "EntityKind",
    "ReminderConfig",
    "ReminderEntity",
    "ScheduledReminder",
]
