"""
Reminder Entities - Configuración y registros de recordatorios programados.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, NamedTuple

from reminder_core.utils.errors import InvalidReminderConfig


class EntityKind(str, Enum):
    """Tipo de entidad dueña del recordatorio."""
    TASK = "task"
    EVENT = "event"
    HABIT = "habit"


class ReminderState(str, Enum):
    """Estados de un recordatorio programado."""
    PENDING = "pending"
    FIRED = "fired"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ReminderPriority(str, Enum):
    """Prioridad del recordatorio."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ==================== OFFSETS ====================


class StandardOffset(Enum):
    """Offsets estándar que ofrece el selector."""

    MINUTES_5 = timedelta(minutes=5)
    MINUTES_15 = timedelta(minutes=15)
    MINUTES_30 = timedelta(minutes=30)
    HOUR_1 = timedelta(hours=1)
    DAY_1 = timedelta(days=1)

    @property
    def total(self) -> timedelta:
        return self.value

    @property
    def days(self) -> int:
        return self.value.days

    @property
    def remainder(self) -> timedelta:
        return self.value - timedelta(days=self.value.days)


@dataclass(frozen=True)
class CustomOffset:
    """Duración personalizada antes del ancla."""

    duration: timedelta

    def __post_init__(self):
        if self.duration <= timedelta(0):
            raise InvalidReminderConfig(
                f"El offset debe ser positivo: {self.duration}", field="offset"
            )

    @property
    def total(self) -> timedelta:
        return self.duration

    @property
    def days(self) -> int:
        return self.duration.days

    @property
    def remainder(self) -> timedelta:
        return self.duration - timedelta(days=self.duration.days)


Offset = StandardOffset | CustomOffset


def offset_to_dict(offset: Offset) -> dict[str, Any]:
    if isinstance(offset, StandardOffset):
        return {"standard": offset.name}
    return {"custom_seconds": int(offset.duration.total_seconds())}


def offset_from_dict(data: dict[str, Any]) -> Offset:
    if "standard" in data:
        return StandardOffset[data["standard"]]
    return CustomOffset(timedelta(seconds=data["custom_seconds"]))


# ==================== RECURRENCIA ====================


@dataclass(frozen=True)
class NoRecurrence:
    """Sin recurrencia."""

    is_recurring = False


@dataclass(frozen=True)
class Daily:
    """Todos los días a la hora del ancla."""

    is_recurring = True


@dataclass(frozen=True)
class WeeklyOnDays:
    """Ciertos días de la semana (0=lunes ... 6=domingo) a la hora del ancla."""

    weekdays: frozenset[int]
    is_recurring = True

    def __post_init__(self):
        if not self.weekdays:
            raise InvalidReminderConfig("WeeklyOnDays requiere al menos un día", field="recurrence")
        if any(day not in range(7) for day in self.weekdays):
            raise InvalidReminderConfig(
                f"Días inválidos: {sorted(self.weekdays)}", field="recurrence"
            )
        object.__setattr__(self, "weekdays", frozenset(self.weekdays))


Recurrence = NoRecurrence | Daily | WeeklyOnDays


def recurrence_to_dict(recurrence: Recurrence) -> dict[str, Any]:
    if isinstance(recurrence, WeeklyOnDays):
        return {"type": "weekly", "weekdays": sorted(recurrence.weekdays)}
    if isinstance(recurrence, Daily):
        return {"type": "daily"}
    return {"type": "none"}


def recurrence_from_dict(data: dict[str, Any]) -> Recurrence:
    kind = data.get("type", "none")
    if kind == "weekly":
        return WeeklyOnDays(frozenset(data["weekdays"]))
    if kind == "daily":
        return Daily()
    return NoRecurrence()


# ==================== CONFIG ====================


class ReminderKey(NamedTuple):
    """Clave única de un recordatorio: (tipo, entidad, offset)."""

    entity_kind: EntityKind
    entity_id: str | int
    offset: timedelta


@dataclass(frozen=True)
class ReminderConfig:
    """
    Qué recordar y cuándo, relativo a una entidad.

    El contenido (título/descripción) se copia aquí para que el registro
    nunca necesite volver a leer la entidad después de programar.
    """

    entity_kind: EntityKind
    entity_id: str | int
    anchor_instant: datetime
    offset: Offset
    recurrence: Recurrence = field(default_factory=NoRecurrence)
    enabled: bool = True
    title: str = ""
    description: str = ""
    priority: ReminderPriority = ReminderPriority.MEDIUM

    def __post_init__(self):
        if self.anchor_instant.tzinfo is None:
            raise InvalidReminderConfig(
                "anchor_instant debe incluir zona horaria", field="anchor_instant"
            )
        if self.recurrence.is_recurring and self.entity_kind != EntityKind.HABIT:
            raise InvalidReminderConfig(
                f"La recurrencia solo aplica a hábitos, no a {self.entity_kind.value}",
                field="recurrence",
            )

    @property
    def key(self) -> ReminderKey:
        return ReminderKey(self.entity_kind, self.entity_id, self.offset.total)

    @property
    def is_recurring(self) -> bool:
        return self.recurrence.is_recurring

    def to_dict(self) -> dict[str, Any]:
        """Convierte a diccionario."""
        return {
            "entity_kind": self.entity_kind.value,
            "entity_id": self.entity_id,
            "anchor_instant": self.anchor_instant.isoformat(),
            "offset": offset_to_dict(self.offset),
            "recurrence": recurrence_to_dict(self.recurrence),
            "enabled": self.enabled,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReminderConfig":
        return cls(
            entity_kind=EntityKind(data["entity_kind"]),
            entity_id=data["entity_id"],
            anchor_instant=datetime.fromisoformat(data["anchor_instant"]),
            offset=offset_from_dict(data["offset"]),
            recurrence=recurrence_from_dict(data.get("recurrence", {})),
            enabled=data.get("enabled", True),
            title=data.get("title", ""),
            description=data.get("description", ""),
            priority=ReminderPriority(data.get("priority", ReminderPriority.MEDIUM.value)),
        )


@dataclass(frozen=True)
class ReminderContent:
    """Snapshot del contenido de la notificación al momento de programar."""

    title: str
    body: str
    category: str = "default"
    priority: ReminderPriority = ReminderPriority.MEDIUM
    sound: str = "default"
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "body": self.body,
            "category": self.category,
            "priority": self.priority.value,
            "sound": self.sound,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReminderContent":
        return cls(
            title=data["title"],
            body=data["body"],
            category=data.get("category", "default"),
            priority=ReminderPriority(data.get("priority", ReminderPriority.MEDIUM.value)),
            sound=data.get("sound", "default"),
            data=dict(data.get("data", {})),
        )


# ==================== REGISTRO EN RUNTIME ====================


@dataclass
class ScheduledReminder:
    """
    Recordatorio aceptado por el canal de entrega.

    Solo el registro y el scheduler cambian su estado.
    """

    handle: str
    fire_instant: datetime
    content: ReminderContent
    source_config: ReminderConfig
    state: ReminderState = ReminderState.PENDING
    created_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def key(self) -> ReminderKey:
        return self.source_config.key

    @property
    def is_pending(self) -> bool:
        return self.state == ReminderState.PENDING

    def to_dict(self) -> dict[str, Any]:
        """Convierte a diccionario."""
        return {
            "handle": self.handle,
            "fire_instant": self.fire_instant.isoformat(),
            "state": self.state.value,
            "content": self.content.to_dict(),
            "config": self.source_config.to_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScheduledReminder":
        return cls(
            handle=data["handle"],
            fire_instant=datetime.fromisoformat(data["fire_instant"]),
            content=ReminderContent.from_dict(data["content"]),
            source_config=ReminderConfig.from_dict(data["config"]),
            state=ReminderState(data.get("state", ReminderState.PENDING.value)),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else None,
            closed_at=datetime.fromisoformat(data["closed_at"]) if data.get("closed_at") else None,
        )
