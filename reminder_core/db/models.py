"""Modelos SQLAlchemy del snapshot de recordatorios."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from reminder_core.db.database import Base


class ScheduledReminderModel(Base):
    """Recordatorio programado persistido por el host."""

    __tablename__ = "scheduled_reminders"

    handle: Mapped[str] = mapped_column(String(100), primary_key=True)

    entity_kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    offset_seconds: Mapped[int] = mapped_column(Integer, nullable=False)

    # Siempre UTC naive: SQLite no guarda la zona
    fire_instant: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    state: Mapped[str] = mapped_column(String(20), default="pending")

    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime | None] = mapped_column(DateTime)
    saved_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class FlaggedReminderConfigModel(Base):
    """Configuración rechazada o perdida, en espera de reintento."""

    __tablename__ = "flagged_reminder_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    entity_kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    offset_seconds: Mapped[int] = mapped_column(Integer, nullable=False)

    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    saved_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
