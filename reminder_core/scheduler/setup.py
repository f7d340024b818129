"""Configuración del scheduler con APScheduler."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from reminder_core.config import get_settings
from reminder_core.scheduler.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)

RECONCILIATION_JOB_ID = "reminder_reconciliation"
SNAPSHOT_JOB_ID = "reminder_snapshot"

# Scheduler global
_scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler:
    """Obtiene la instancia del scheduler."""
    global _scheduler
    if _scheduler is None:
        settings = get_settings()
        _scheduler = AsyncIOScheduler(
            timezone=settings.tz,
            job_defaults={
                "coalesce": True,  # Combinar ejecuciones perdidas
                "max_instances": 1,  # Una sola instancia por job
                "misfire_grace_time": settings.misfire_grace_seconds,
            },
        )
    return _scheduler


async def setup_scheduler(
    reminder_scheduler: ReminderScheduler,
    scheduler: AsyncIOScheduler | None = None,
    persist_snapshot: bool = False,
) -> AsyncIOScheduler:
    """
    Registra los jobs del núcleo y arranca el scheduler.

    Args:
        reminder_scheduler: Scheduler de recordatorios ya conectado al registro
        scheduler: AsyncIOScheduler a usar; por defecto el global
        persist_snapshot: Registrar también el job que guarda el snapshot
    """
    from reminder_core.scheduler.jobs.reconciliation import reconciliation_job
    from reminder_core.scheduler.jobs.snapshot import snapshot_job

    settings = get_settings()
    scheduler = scheduler or get_scheduler()

    # ==================== RECONCILIACION ====================
    scheduler.add_job(
        reconciliation_job,
        IntervalTrigger(minutes=settings.reconcile_interval_minutes),
        id=RECONCILIATION_JOB_ID,
        name="Reminder Reconciliation",
        kwargs={"scheduler": reminder_scheduler},
        replace_existing=True,
    )
    logger.info(
        f"Job configurado: Reminder Reconciliation (cada {settings.reconcile_interval_minutes} min)"
    )

    # ==================== SNAPSHOT ====================
    if persist_snapshot:
        scheduler.add_job(
            snapshot_job,
            IntervalTrigger(seconds=settings.snapshot_interval_seconds),
            id=SNAPSHOT_JOB_ID,
            name="Reminder Snapshot",
            kwargs={"scheduler": reminder_scheduler},
            replace_existing=True,
        )
        logger.info(
            f"Job configurado: Reminder Snapshot (cada {settings.snapshot_interval_seconds} s)"
        )

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler iniciado")

    return scheduler


async def shutdown_scheduler() -> None:
    """Detiene el scheduler global."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler detenido")
    _scheduler = None
