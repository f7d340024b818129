"""
Contenido y presentación de recordatorios.

Textos de notificación por tipo de entidad, etiquetas de offsets y las
opciones del selector de recordatorios.
"""

from datetime import timedelta
from typing import Any

from reminder_core.domain.entities.reminder import (
    EntityKind,
    Offset,
    ReminderConfig,
    ReminderContent,
    StandardOffset,
)

CATEGORIES = {
    EntityKind.TASK: "task-reminders",
    EntityKind.EVENT: "event-reminders",
    EntityKind.HABIT: "habit-reminders",
}

DEFAULT_OFFSETS = {
    EntityKind.TASK: StandardOffset.MINUTES_30,
    EntityKind.EVENT: StandardOffset.MINUTES_5,
    EntityKind.HABIT: StandardOffset.MINUTES_5,
}

PICKER_OFFSETS = [
    StandardOffset.MINUTES_5,
    StandardOffset.MINUTES_15,
    StandardOffset.MINUTES_30,
    StandardOffset.HOUR_1,
    StandardOffset.DAY_1,
]


def _with_description(text: str, description: str) -> str:
    if description:
        return f"{text}\n{description}"
    return text


def build_content(config: ReminderConfig) -> ReminderContent:
    """
    Construye el snapshot de contenido para una configuración.

    Args:
        config: Configuración del recordatorio

    Returns:
        ReminderContent listo para el canal de entrega
    """
    if config.entity_kind == EntityKind.TASK:
        title = "📋 Task Reminder"
        body = _with_description(config.title, config.description)
        body += "\n\n📅 Task deadline approaching!"
    elif config.entity_kind == EntityKind.EVENT:
        title = "🗓️ Event Reminder"
        body = _with_description(config.title, config.description)
        body += "\n\n🕐 Event starting soon!"
    else:
        title = "🏃 Habit Reminder"
        body = _with_description(f"Time for: {config.title}", config.description)

    return ReminderContent(
        title=title,
        body=body,
        category=CATEGORIES[config.entity_kind],
        priority=config.priority,
        data={
            "type": config.entity_kind.value,
            "entity_id": config.entity_id,
            "priority": config.priority.value,
            "offset_minutes": int(config.offset.total.total_seconds() // 60),
        },
    )


def _plural(amount: int, unit: str) -> str:
    return f"{amount} {unit}{'s' if amount != 1 else ''}"


def format_duration(duration: timedelta) -> str:
    """Duración legible: '1 day 2 hours', '45 minutes', '30 seconds'."""
    total_seconds = int(duration.total_seconds())
    days, rest = divmod(total_seconds, 24 * 3600)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)

    parts = []
    if days:
        parts.append(_plural(days, "day"))
    if hours:
        parts.append(_plural(hours, "hour"))
    if minutes or (not parts and not seconds):
        parts.append(_plural(minutes, "minute"))
    if seconds:
        parts.append(_plural(seconds, "second"))
    return " ".join(parts)


def format_offset(offset: Offset | None) -> str:
    """Etiqueta para mostrar un offset en la UI."""
    if offset is None:
        return "Off"
    return f"{format_duration(offset.total)} before"


def default_offset(kind: EntityKind) -> StandardOffset:
    """Offset por defecto al crear una entidad."""
    return DEFAULT_OFFSETS[kind]


def reminder_options(kind: EntityKind) -> list[dict[str, Any]]:
    """
    Opciones del selector de recordatorios.

    Lista cerrada de offsets estándar, más la entrada personalizada
    y la opción para apagar recordatorios.
    """
    options = [
        {
            "label": format_offset(offset),
            "value": offset,
            "icon": "time-outline",
            "default": offset == DEFAULT_OFFSETS[kind],
        }
        for offset in PICKER_OFFSETS
    ]
    options.append({"label": "Custom…", "value": "custom", "icon": "create-outline", "default": False})
    options.append(
        {
            "label": "Turn off reminders",
            "value": None,
            "icon": "notifications-off-outline",
            "default": False,
        }
    )
    return options
