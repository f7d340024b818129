"""Job que persiste el snapshot del registro."""

import logging

from reminder_core.db.database import get_session
from reminder_core.db.repositories.reminders import ReminderSnapshotRepository
from reminder_core.domain.services.registry import ReminderRegistry
from reminder_core.scheduler.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


async def save_registry_snapshot(registry: ReminderRegistry) -> int:
    """
    Guarda los pendientes y las configuraciones en espera de reintento.

    Returns:
        Número de recordatorios PENDING guardados
    """
    async with get_session() as session:
        return await ReminderSnapshotRepository(session).save_snapshot(
            registry.snapshot(),
            registry.flagged_snapshot(),
        )


async def snapshot_job(scheduler: ReminderScheduler) -> int | None:
    """
    Job que persiste el registro.

    Se ejecuta cada `snapshot_interval_seconds`; un cierre abrupto del
    proceso pierde a lo sumo un intervalo de cambios.
    """
    try:
        logger.debug("Ejecutando snapshot_job...")
        return await save_registry_snapshot(scheduler.registry)

    except Exception as e:
        logger.error(f"Error en snapshot_job: {e}")
        return None
