"""
Canal en memoria.

Guarda las alertas en un dict y solo dispara cuando el host (o un test)
llama a `fire`. Útil para hosts que delegan la presentación a otro
proceso y para simular resets del sistema operativo.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from reminder_core.channels.base import DeliveryChannel
from reminder_core.domain.entities.reminder import ReminderContent
from reminder_core.utils.errors import DeliveryRejected

logger = logging.getLogger(__name__)


@dataclass
class QueuedAlert:
    """Alerta en la cola del canal."""

    handle: str
    fire_instant: datetime
    content: ReminderContent


class InMemoryDeliveryChannel(DeliveryChannel):
    """
    Canal de entrega en memoria.

    Args:
        quota: Máximo de alertas en cola (como el límite de la plataforma)
        permission_granted: Si es False rechaza toda programación
        latency: Demora artificial en segundos de cada llamada
    """

    def __init__(
        self,
        quota: int | None = None,
        permission_granted: bool = True,
        latency: float = 0.0,
    ):
        super().__init__()
        self.quota = quota
        self.permission_granted = permission_granted
        self.latency = latency
        self.queue: dict[str, QueuedAlert] = {}
        self.delivered: list[QueuedAlert] = []
        self.cancel_calls: list[str] = []

    async def _delay(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)

    async def schedule(self, fire_instant: datetime, content: ReminderContent) -> str:
        await self._delay()

        if not self.permission_granted:
            raise DeliveryRejected("Sin permiso de notificaciones")
        if self.quota is not None and len(self.queue) >= self.quota:
            raise DeliveryRejected(
                f"Cuota del canal excedida ({self.quota})",
                details={"quota": self.quota},
            )

        handle = f"mem-{uuid4().hex}"
        self.queue[handle] = QueuedAlert(handle, fire_instant, content)
        logger.debug(f"Alerta {handle} en cola para {fire_instant.isoformat()}")
        return handle

    async def cancel(self, handle: str) -> None:
        await self._delay()
        self.cancel_calls.append(handle)
        self.queue.pop(handle, None)

    async def list_pending(self) -> set[str]:
        await self._delay()
        return set(self.queue)

    # ==================== SIMULACION ====================

    async def fire(self, handle: str) -> None:
        """Dispara una alerta y notifica a los callbacks."""
        alert = self.queue.pop(handle, None)
        if alert is not None:
            self.delivered.append(alert)
        await self._notify_fired(handle)

    async def fire_due(self, now: datetime) -> list[str]:
        """Dispara todas las alertas cuyo instante ya llegó."""
        due = sorted(
            (a for a in self.queue.values() if a.fire_instant <= now),
            key=lambda a: a.fire_instant,
        )
        for alert in due:
            await self.fire(alert.handle)
        return [a.handle for a in due]

    async def miss(self, handle: str) -> None:
        """Simula una alerta que el sistema descartó sin mostrar."""
        self.queue.pop(handle, None)
        await self._notify_missed(handle)

    def drop(self, handle: str) -> None:
        """Pierde una alerta en silencio (reset del sistema operativo)."""
        self.queue.pop(handle, None)

    def drop_all(self) -> None:
        self.queue.clear()
