"""
Delivery Channel - Contrato del mecanismo que guarda y dispara alertas.

El núcleo lo trata como un almacén best-effort y eventualmente consistente
de (handle -> instante, contenido).
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, Callable

from reminder_core.domain.entities.reminder import ReminderContent

logger = logging.getLogger(__name__)

HandleCallback = Callable[[str], Awaitable[None]]


class DeliveryChannel(ABC):
    """Canal de entrega de notificaciones locales."""

    def __init__(self):
        self._fired_callbacks: list[HandleCallback] = []
        self._missed_callbacks: list[HandleCallback] = []

    @abstractmethod
    async def schedule(self, fire_instant: datetime, content: ReminderContent) -> str:
        """
        Programa una alerta.

        Returns:
            Handle único asignado por el canal

        Raises:
            DeliveryRejected: Si el canal no acepta la alerta
        """

    @abstractmethod
    async def cancel(self, handle: str) -> None:
        """Cancela una alerta. Idempotente: un handle desconocido no es error."""

    @abstractmethod
    async def list_pending(self) -> set[str]:
        """Handles que el canal todavía tiene en cola."""

    def register_fired_callback(self, callback: HandleCallback) -> None:
        self._fired_callbacks.append(callback)

    def register_missed_callback(self, callback: HandleCallback) -> None:
        self._missed_callbacks.append(callback)

    async def _notify_fired(self, handle: str) -> None:
        for callback in self._fired_callbacks:
            await callback(handle)

    async def _notify_missed(self, handle: str) -> None:
        for callback in self._missed_callbacks:
            await callback(handle)
