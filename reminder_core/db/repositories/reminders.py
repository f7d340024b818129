"""Repository para el snapshot de recordatorios programados."""

import logging
from datetime import datetime

import pytz
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from reminder_core.db.models import FlaggedReminderConfigModel, ScheduledReminderModel
from reminder_core.domain.entities.reminder import (
    ReminderConfig,
    ReminderContent,
    ReminderState,
    ScheduledReminder,
)

logger = logging.getLogger(__name__)


def _to_utc_naive(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return value.astimezone(pytz.utc).replace(tzinfo=None)


def _from_utc_naive(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value


class ReminderSnapshotRepository:
    """Repository para guardar y cargar el snapshot del registro."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def save_snapshot(
        self,
        records: list[ScheduledReminder],
        flagged: list[ReminderConfig] | None = None,
    ) -> int:
        """
        Reemplaza el snapshot guardado por los recordatorios dados.

        Args:
            records: Recordatorios PENDING del registro
            flagged: Configuraciones en espera de reintento

        Returns:
            Número de recordatorios guardados
        """
        flagged = flagged or []
        await self.session.execute(delete(ScheduledReminderModel))
        await self.session.execute(delete(FlaggedReminderConfigModel))

        for record in records:
            key = record.key
            self.session.add(
                ScheduledReminderModel(
                    handle=record.handle,
                    entity_kind=key.entity_kind.value,
                    entity_id=str(key.entity_id),
                    offset_seconds=int(key.offset.total_seconds()),
                    fire_instant=_to_utc_naive(record.fire_instant),
                    state=record.state.value,
                    config=record.source_config.to_dict(),
                    content=record.content.to_dict(),
                    created_at=_to_utc_naive(record.created_at),
                )
            )

        for config in flagged:
            key = config.key
            self.session.add(
                FlaggedReminderConfigModel(
                    entity_kind=key.entity_kind.value,
                    entity_id=str(key.entity_id),
                    offset_seconds=int(key.offset.total_seconds()),
                    config=config.to_dict(),
                )
            )

        await self.session.commit()
        logger.info(
            f"Snapshot guardado: {len(records)} recordatorios, "
            f"{len(flagged)} en espera de reintento"
        )
        return len(records)

    async def load_snapshot(self) -> list[ScheduledReminder]:
        """Carga los recordatorios guardados, ordenados por instante de disparo."""
        result = await self.session.execute(
            select(ScheduledReminderModel).order_by(ScheduledReminderModel.fire_instant)
        )
        return [self._to_entity(row) for row in result.scalars().all()]

    async def load_flagged(self) -> list[ReminderConfig]:
        """Carga las configuraciones en espera de reintento."""
        result = await self.session.execute(
            select(FlaggedReminderConfigModel).order_by(FlaggedReminderConfigModel.id)
        )
        return [ReminderConfig.from_dict(row.config) for row in result.scalars().all()]

    async def count_pending(self) -> int:
        result = await self.session.execute(
            select(ScheduledReminderModel.handle).where(
                ScheduledReminderModel.state == ReminderState.PENDING.value
            )
        )
        return len(result.scalars().all())

    @staticmethod
    def _to_entity(row: ScheduledReminderModel) -> ScheduledReminder:
        return ScheduledReminder(
            handle=row.handle,
            fire_instant=_from_utc_naive(row.fire_instant),
            content=ReminderContent.from_dict(row.content),
            source_config=ReminderConfig.from_dict(row.config),
            state=ReminderState(row.state),
            created_at=_from_utc_naive(row.created_at),
        )
