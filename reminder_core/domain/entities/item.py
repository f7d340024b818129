"""
Item Entity - Vista mínima de una tarea/evento/hábito del host.

El núcleo no es dueño de estos registros; el subsistema de tareas los
entrega en cada alta, edición, borrado o completado.
"""

from dataclasses import dataclass, field
from datetime import datetime

from reminder_core.domain.entities.reminder import (
    EntityKind,
    NoRecurrence,
    Offset,
    Recurrence,
    ReminderConfig,
    ReminderPriority,
)


@dataclass(frozen=True)
class ReminderSetting:
    """Un offset configurado en la entidad y si está activo."""

    offset: Offset
    enabled: bool = True


@dataclass
class ReminderEntity:
    """
    Entidad con recordatorios.

    Para tareas el ancla es la fecha límite, para eventos la hora de inicio
    y para hábitos la próxima ocurrencia (se usa su hora local).
    """

    kind: EntityKind
    entity_id: str | int
    title: str
    anchor_instant: datetime
    reminders: list[ReminderSetting] = field(default_factory=list)
    description: str = ""
    recurrence: Recurrence = field(default_factory=NoRecurrence)
    reminders_enabled: bool = True
    priority: ReminderPriority = ReminderPriority.MEDIUM

    @property
    def enabled_settings(self) -> list[ReminderSetting]:
        """Settings activos, sin offsets duplicados."""
        seen = set()
        result = []
        for setting in self.reminders:
            if not setting.enabled or setting.offset.total in seen:
                continue
            seen.add(setting.offset.total)
            result.append(setting)
        return result

    def to_configs(self) -> list[ReminderConfig]:
        """Una configuración por cada offset activo."""
        return [
            ReminderConfig(
                entity_kind=self.kind,
                entity_id=self.entity_id,
                anchor_instant=self.anchor_instant,
                offset=setting.offset,
                recurrence=self.recurrence,
                enabled=True,
                title=self.title,
                description=self.description,
                priority=self.priority,
            )
            for setting in self.enabled_settings
        ]
