"""Job de reconciliación periódica entre el registro y el canal."""

import logging

from reminder_core.domain.services.registry import ReconcileReport
from reminder_core.scheduler.reminder_scheduler import ReminderScheduler

logger = logging.getLogger(__name__)


async def reconciliation_job(scheduler: ReminderScheduler) -> ReconcileReport | None:
    """
    Job que detecta y repara deriva.

    Se ejecuta cada `reconcile_interval_minutes` y al arrancar.
    """
    try:
        logger.debug("Ejecutando reconciliation_job...")
        report = await scheduler.reconcile()

        if report.expired or report.still_rejected:
            logger.warning(
                f"Deriva reparada: {len(report.expired)} expirados, "
                f"{len(report.rescheduled)} reprogramados, "
                f"{len(report.still_rejected)} aún rechazados"
            )
        return report

    except Exception as e:
        logger.error(f"Error en reconciliation_job: {e}")
        return None
