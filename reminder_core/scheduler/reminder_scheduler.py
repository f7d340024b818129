"""
Scheduler - Único componente que habla con el canal de entrega.

Traduce timeouts y rechazos del canal a DeliveryRejected, recibe los
callbacks de disparo y corre los barridos de reconciliación.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable

from reminder_core.channels.base import DeliveryChannel
from reminder_core.config import get_settings
from reminder_core.domain.entities.reminder import ReminderContent, ScheduledReminder
from reminder_core.domain.services.registry import ReconcileReport, ReminderRegistry
from reminder_core.utils.errors import (
    DeliveryRejected,
    ErrorCategory,
    log_error,
    retry_channel,
)

logger = logging.getLogger(__name__)

FiredListener = Callable[[ScheduledReminder], Awaitable[None]]


class ReminderScheduler:
    """
    Scheduler de recordatorios.

    Uso:
        scheduler = ReminderScheduler(channel)
        registry = ReminderRegistry(scheduler)
        scheduler.attach(registry)
    """

    def __init__(self, channel: DeliveryChannel, timeout: float | None = None):
        self._channel = channel
        self._timeout = timeout if timeout is not None else get_settings().channel_timeout_seconds
        self._registry: ReminderRegistry | None = None
        self._fired_listeners: list[FiredListener] = []
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> ReminderRegistry:
        if self._registry is None:
            raise RuntimeError("ReminderScheduler sin registro; llama attach() primero")
        return self._registry

    def attach(self, registry: ReminderRegistry) -> None:
        """Conecta el registro y se suscribe a los callbacks del canal."""
        self._registry = registry
        self._channel.register_fired_callback(self.on_fired)
        self._channel.register_missed_callback(self.on_missed)

    def add_fired_listener(self, listener: FiredListener) -> None:
        """Hook para avisar al host cuando una alerta se disparó."""
        self._fired_listeners.append(listener)

    # ==================== LLAMADAS AL CANAL ====================

    async def schedule(self, fire_instant: datetime, content: ReminderContent) -> str:
        """
        Pide al canal que programe una alerta.

        Raises:
            DeliveryRejected: Rechazo del canal, error de conexión o timeout
        """
        try:
            return await asyncio.wait_for(
                self._channel.schedule(fire_instant, content),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise DeliveryRejected(
                f"El canal no respondió en {self._timeout}s",
                details={"fire_instant": fire_instant.isoformat()},
            ) from e
        except ConnectionError as e:
            raise DeliveryRejected(f"Error de conexión con el canal: {e}") from e

    async def cancel(self, handle: str) -> None:
        """Cancela una alerta. Best-effort: nunca lanza."""
        try:
            await self._cancel_with_retry(handle)
        except (asyncio.TimeoutError, ConnectionError) as e:
            log_error(
                e,
                "cancel",
                ErrorCategory.DELIVERY,
                extra={"handle": handle},
                level=logging.WARNING,
            )

    @retry_channel()
    async def _cancel_with_retry(self, handle: str) -> None:
        await asyncio.wait_for(self._channel.cancel(handle), timeout=self._timeout)

    async def list_pending(self) -> set[str]:
        """
        Cola autoritativa del canal.

        Raises:
            DeliveryRejected: Si el canal no responde
        """
        try:
            return await self._list_with_retry()
        except (asyncio.TimeoutError, ConnectionError) as e:
            raise DeliveryRejected(f"No se pudo leer la cola del canal: {e}") from e

    @retry_channel()
    async def _list_with_retry(self) -> set[str]:
        return set(await asyncio.wait_for(self._channel.list_pending(), timeout=self._timeout))

    # ==================== CALLBACKS ====================

    async def on_fired(self, handle: str) -> ScheduledReminder | None:
        """
        Callback de disparo del canal.

        Para hábitos recurrentes programa de inmediato la siguiente
        ocurrencia: la cadena siempre va una sola ocurrencia adelante.
        """
        record = await self.registry.mark_fired(handle)
        if record is None:
            return None

        if record.source_config.is_recurring:
            await self.registry.schedule_next(record)

        for listener in self._fired_listeners:
            try:
                await listener(record)
            except Exception as e:
                log_error(e, "fired_listener", ErrorCategory.SCHEDULER, extra={"handle": handle})

        return record

    async def on_missed(self, handle: str) -> ScheduledReminder | None:
        """El canal descartó una alerta sin mostrarla."""
        return await self.registry.mark_expired(handle)

    # ==================== RECONCILIACION ====================

    async def reconcile(self) -> ReconcileReport:
        """
        Barrido de reconciliación contra la cola del canal.

        Se corre al arrancar y periódicamente. Dos barridos nunca corren
        a la vez.
        """
        async with self._lock:
            candidates = self.registry.pending_handles()
            try:
                live = await self.list_pending()
            except DeliveryRejected as e:
                log_error(e, "reconcile", level=logging.WARNING)
                return ReconcileReport()

            report = self.registry.reconcile(live, candidates=candidates)
            report = report.merge(await self.registry.retry_flagged())

        logger.info(f"Reconciliación: {report.to_dict()}")
        return report
