"""
Domain Entities - Modelos de dominio del núcleo de recordatorios.
"""

from reminder_core.domain.entities.reminder import (
    CustomOffset,
    Daily,
    EntityKind,
    NoRecurrence,
    Offset,
    Recurrence,
    ReminderConfig,
    ReminderContent,
    ReminderKey,
    ReminderPriority,
    ReminderState,
    ScheduledReminder,
    StandardOffset,
    WeeklyOnDays,
)
from reminder_core.domain.entities.item import ReminderEntity, ReminderSetting

__all__ = [
    "CustomOffset",
    "Daily",
    "EntityKind",
    "NoRecurrence",
    "Offset",
    "Recurrence",
    "ReminderConfig",
    "ReminderContent",
    "ReminderEntity",
    "ReminderKey",
    "ReminderPriority",
    "ReminderSetting",
    "ReminderState",
    "ScheduledReminder",
    "StandardOffset",
    "WeeklyOnDays",
]
