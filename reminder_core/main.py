"""
Reminder Core

FastAPI application que hospeda el núcleo de recordatorios sobre el canal
local de APScheduler y expone endpoints de diagnóstico.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from reminder_core.config import get_settings

# Configurar logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle de la aplicación."""
    from reminder_core.channels.apscheduler_channel import APSchedulerDeliveryChannel
    from reminder_core.db.database import close_db, get_session, init_db
    from reminder_core.db.repositories.reminders import ReminderSnapshotRepository
    from reminder_core.scheduler.jobs.snapshot import save_registry_snapshot
    from reminder_core.scheduler.setup import get_scheduler, setup_scheduler, shutdown_scheduler
    from reminder_core.services.integration import build_reminder_core

    logger.info("Iniciando Reminder Core")

    # ==================== STARTUP ====================

    # 1. Base de datos del snapshot
    await init_db()

    # 2. Canal y núcleo
    channel = APSchedulerDeliveryChannel(get_scheduler())
    core = build_reminder_core(channel)
    app.state.reminder_core = core

    # 3. Leer el snapshot antes de que el job de persistencia lo reescriba
    async with get_session() as session:
        repo = ReminderSnapshotRepository(session)
        persisted = await repo.load_snapshot()
        flagged = await repo.load_flagged()

    # 4. Scheduler (reconciliación y snapshot periódicos + alertas)
    await setup_scheduler(core.scheduler, persist_snapshot=True)

    # 5. Rehidratar, reconciliar y persistir el resultado
    report = await core.start(persisted, flagged)
    await save_registry_snapshot(core.registry)
    logger.info(f"Reminder Core listo: {report.to_dict()}")

    yield

    # ==================== SHUTDOWN ====================

    logger.info("Deteniendo Reminder Core...")

    await shutdown_scheduler()
    await save_registry_snapshot(core.registry)
    await close_db()
    app.state.reminder_core = None

    logger.info("Reminder Core detenido.")


# Crear aplicación FastAPI
app = FastAPI(
    title="Reminder Core",
    description="Programación, cancelación y reconciliación de recordatorios locales",
    version="1.0.0",
    lifespan=lifespan,
)

from reminder_core.api.admin import router as admin_router  # noqa: E402

app.include_router(admin_router)


# ==================== ROUTES ====================


@app.get("/health")
async def health_check():
    """Health check básico."""
    return {"status": "healthy", "service": "reminder-core"}


@app.get("/health/detailed")
async def health_check_detailed():
    """Health check detallado."""
    from reminder_core.scheduler.setup import RECONCILIATION_JOB_ID, get_scheduler

    core = getattr(app.state, "reminder_core", None)
    scheduler = get_scheduler()
    job = scheduler.get_job(RECONCILIATION_JOB_ID)

    return {
        "status": "healthy" if core is not None else "starting",
        "service": "reminder-core",
        "version": "1.0.0",
        "environment": settings.app_env,
        "checks": {
            "registry": core.registry.stats() if core is not None else None,
            "scheduler": {
                "running": scheduler.running,
                "next_reconciliation": (
                    job.next_run_time.isoformat() if job and job.next_run_time else None
                ),
            },
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("reminder_core.main:app", host="0.0.0.0", port=8000, reload=settings.is_development)
