"""
Canal local sobre APScheduler.

Cada alerta es un job con DateTrigger en un AsyncIOScheduler; el job
dispara los callbacks a la hora de pared. Si el proceso estuvo suspendido
más allá del misfire_grace_time, APScheduler descarta el job y el canal
lo reporta como perdido.
"""

import asyncio
import logging
from datetime import datetime
from uuid import uuid4

from apscheduler.events import EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from reminder_core.channels.base import DeliveryChannel
from reminder_core.config import get_settings
from reminder_core.domain.entities.reminder import ReminderContent
from reminder_core.utils.errors import DeliveryRejected

logger = logging.getLogger(__name__)

HANDLE_PREFIX = "reminder-"


class APSchedulerDeliveryChannel(DeliveryChannel):
    """
    Canal de entrega que usa jobs de APScheduler.

    Args:
        scheduler: Scheduler compartido; si no se pasa se crea uno propio
        max_pending: Límite de alertas en cola
    """

    def __init__(
        self,
        scheduler: AsyncIOScheduler | None = None,
        max_pending: int | None = None,
    ):
        super().__init__()
        settings = get_settings()
        self._scheduler = scheduler or AsyncIOScheduler(timezone=settings.tz)
        self._misfire_grace = settings.misfire_grace_seconds
        self._max_pending = max_pending
        self._contents: dict[str, ReminderContent] = {}
        self._tasks: set[asyncio.Task] = set()
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    async def schedule(self, fire_instant: datetime, content: ReminderContent) -> str:
        if self._max_pending is not None and len(await self.list_pending()) >= self._max_pending:
            raise DeliveryRejected(
                f"Límite de alertas alcanzado ({self._max_pending})",
                details={"max_pending": self._max_pending},
            )

        handle = f"{HANDLE_PREFIX}{uuid4().hex}"
        try:
            self._scheduler.add_job(
                self._fire,
                DateTrigger(run_date=fire_instant),
                id=handle,
                name=content.title,
                args=[handle],
                misfire_grace_time=self._misfire_grace,
                coalesce=True,
                replace_existing=False,
            )
        except Exception as e:
            raise DeliveryRejected(f"APScheduler rechazó la alerta: {e}") from e

        self._contents[handle] = content
        return handle

    async def cancel(self, handle: str) -> None:
        self._contents.pop(handle, None)
        try:
            self._scheduler.remove_job(handle)
        except JobLookupError:
            logger.debug(f"Job {handle} ya no existe")

    async def list_pending(self) -> set[str]:
        return {
            job.id for job in self._scheduler.get_jobs()
            if job.id.startswith(HANDLE_PREFIX)
        }

    def content_for(self, handle: str) -> ReminderContent | None:
        return self._contents.get(handle)

    async def _fire(self, handle: str) -> None:
        content = self._contents.pop(handle, None)
        if content is not None:
            logger.info(f"🔔 {content.title}: {content.body.splitlines()[0] if content.body else ''}")
        await self._notify_fired(handle)

    def _on_job_missed(self, event: JobExecutionEvent) -> None:
        if not event.job_id.startswith(HANDLE_PREFIX):
            return
        logger.warning(f"Alerta {event.job_id} perdida (misfire)")
        self._contents.pop(event.job_id, None)
        task = asyncio.get_running_loop().create_task(self._notify_missed(event.job_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
