"""
Integration Facade - Único punto de entrada para el resto de la aplicación.

Traduce los eventos de dominio (alta, edición, borrado, completado de
tareas, eventos y hábitos) a operaciones del registro y del scheduler.
Los fallos nunca se propagan como excepción: se agregan en un resumen
por entidad.
"""

import asyncio
import logging
from collections import Counter, defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, AsyncIterator, Callable, Iterable

import pytz

from reminder_core.channels.base import DeliveryChannel
from reminder_core.domain.entities.item import ReminderEntity
from reminder_core.domain.entities.reminder import (
    EntityKind,
    ReminderConfig,
    ReminderKey,
    ScheduledReminder,
)
from reminder_core.domain.services.registry import (
    ReconcileReport,
    ReminderRegistry,
    utc_now,
)
from reminder_core.scheduler.reminder_scheduler import FiredListener, ReminderScheduler
from reminder_core.utils.errors import (
    DeliveryRejected,
    NoValidOccurrence,
    log_error,
)

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    """Resultado de sincronizar un offset."""
    SCHEDULED = "scheduled"
    NO_VALID_OCCURRENCE = "no_valid_occurrence"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass
class OffsetOutcome:
    """Resultado de un offset de la entidad."""

    offset: timedelta
    status: OutcomeStatus
    reminder: ScheduledReminder | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "offset_minutes": int(self.offset.total_seconds() // 60),
            "status": self.status.value,
            "handle": self.reminder.handle if self.reminder else None,
            "fire_instant": self.reminder.fire_instant.isoformat() if self.reminder else None,
            "error": self.error,
        }


@dataclass
class ReminderSyncSummary:
    """Resumen de éxito parcial por entidad."""

    entity_kind: EntityKind
    entity_id: str | int
    outcomes: list[OffsetOutcome] = field(default_factory=list)

    @property
    def scheduled(self) -> list[OffsetOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.SCHEDULED]

    @property
    def cancelled(self) -> list[OffsetOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.CANCELLED]

    @property
    def failed(self) -> list[OffsetOutcome]:
        return [
            o for o in self.outcomes
            if o.status in (OutcomeStatus.NO_VALID_OCCURRENCE, OutcomeStatus.REJECTED)
        ]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    @property
    def partial(self) -> bool:
        return bool(self.scheduled) and bool(self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_kind": self.entity_kind.value,
            "entity_id": self.entity_id,
            "outcomes": [o.to_dict() for o in self.outcomes],
            "all_succeeded": self.all_succeeded,
            "partial": self.partial,
        }


class ReminderIntegrationService:
    """
    Fachada de recordatorios.

    Funcionalidades:
    - Sincronizar recordatorios al crear o editar una entidad
    - Cancelar al borrar o completar
    - Rehidratar y reconciliar al arrancar
    """

    def __init__(self, registry: ReminderRegistry, scheduler: ReminderScheduler):
        self.registry = registry
        self.scheduler = scheduler
        self._entity_locks: defaultdict[tuple, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_users: Counter[tuple] = Counter()

    @asynccontextmanager
    async def _entity_lock(self, entity_kind: EntityKind, entity_id: str | int) -> AsyncIterator[None]:
        """Serializa los eventos de una entidad; el lock se descarta al quedar libre."""
        entity = (entity_kind, entity_id)
        self._lock_users[entity] += 1
        try:
            async with self._entity_locks[entity]:
                yield
        finally:
            self._lock_users[entity] -= 1
            if not self._lock_users[entity]:
                del self._lock_users[entity]
                self._entity_locks.pop(entity, None)

    # ==================== EVENTOS DE DOMINIO ====================

    async def on_entity_created_or_updated(self, entity: ReminderEntity) -> ReminderSyncSummary:
        """
        Sincroniza los recordatorios de una entidad creada o editada.

        Programa un recordatorio por offset activo y cancela los offsets que
        la entidad ya no tiene. Si los recordatorios están apagados cancela
        todos.

        Args:
            entity: Entidad con su ancla y sus offsets

        Returns:
            ReminderSyncSummary con el resultado de cada offset
        """
        summary = ReminderSyncSummary(entity.kind, entity.entity_id)
        configs = entity.to_configs() if entity.reminders_enabled else []

        async with self._entity_lock(entity.kind, entity.entity_id):
            if not configs:
                for record in await self.registry.cancel_all(entity.kind, entity.entity_id):
                    summary.outcomes.append(
                        OffsetOutcome(record.key.offset, OutcomeStatus.CANCELLED, record)
                    )
                logger.info(
                    f"Recordatorios apagados para {entity.kind.value}:{entity.entity_id}"
                )
                return summary

            wanted = {config.key for config in configs}
            for key in self.registry.keys_for(entity.kind, entity.entity_id):
                if key in wanted:
                    continue
                record = await self.registry.cancel(key)
                if record is not None:
                    summary.outcomes.append(
                        OffsetOutcome(key.offset, OutcomeStatus.CANCELLED, record)
                    )

            for config in configs:
                try:
                    record = await self.registry.upsert(config)
                    summary.outcomes.append(
                        OffsetOutcome(config.offset.total, OutcomeStatus.SCHEDULED, record)
                    )
                except NoValidOccurrence as e:
                    logger.info(f"Sin recordatorio para {config.key}: {e.message}")
                    summary.outcomes.append(
                        OffsetOutcome(
                            config.offset.total,
                            OutcomeStatus.NO_VALID_OCCURRENCE,
                            error=e.message,
                        )
                    )
                except DeliveryRejected as e:
                    log_error(
                        e,
                        "upsert",
                        extra={"key": str(config.key)},
                        level=logging.WARNING,
                    )
                    summary.outcomes.append(
                        OffsetOutcome(config.offset.total, OutcomeStatus.REJECTED, error=e.message)
                    )

        logger.info(
            f"Sincronizados recordatorios de {entity.kind.value}:{entity.entity_id}: "
            f"{len(summary.scheduled)} programados, {len(summary.failed)} fallidos"
        )
        return summary

    async def on_entity_deleted(
        self,
        entity_kind: EntityKind,
        entity_id: str | int,
    ) -> list[ScheduledReminder]:
        """Cancela todos los recordatorios de una entidad borrada."""
        async with self._entity_lock(entity_kind, entity_id):
            return await self.registry.cancel_all(entity_kind, entity_id)

    async def on_entity_completed(
        self,
        entity_kind: EntityKind,
        entity_id: str | int,
    ) -> list[ScheduledReminder]:
        """
        Una entidad completada no necesita más recordatorios.

        Los registros ya disparados quedan intactos en el historial.
        """
        return await self.on_entity_deleted(entity_kind, entity_id)

    async def cancel_everything(self) -> int:
        """Cancela todos los recordatorios (reset global)."""
        return await self.registry.cancel_everything()

    # ==================== CICLO DE VIDA ====================

    async def start(
        self,
        persisted: Iterable[ScheduledReminder] = (),
        flagged: Iterable[ReminderConfig] = (),
    ) -> ReconcileReport:
        """
        Rehidrata el registro con lo que el host persistió y reconcilia.

        Las configuraciones en `flagged` (rechazadas o perdidas antes del
        reinicio) se reintentan en esta misma reconciliación.

        Returns:
            Reporte de la primera reconciliación
        """
        self.registry.rehydrate(persisted, flagged)
        return await self.scheduler.reconcile()

    async def reconcile(self) -> ReconcileReport:
        return await self.scheduler.reconcile()

    # ==================== CONSULTAS ====================

    def add_fired_listener(self, listener: FiredListener) -> None:
        self.scheduler.add_fired_listener(listener)

    def scheduled_reminders(self) -> dict[ReminderKey, str]:
        """Mapa clave -> handle de los recordatorios pendientes."""
        return {record.key: record.handle for record in self.registry.pending()}

    def is_scheduled(self, entity_kind: EntityKind, entity_id: str | int) -> bool:
        return bool(self.registry.pending_for(entity_kind, entity_id))


def build_reminder_core(
    channel: DeliveryChannel,
    clock: Callable[[], datetime] = utc_now,
    tz: str | pytz.BaseTzInfo | None = None,
    timeout: float | None = None,
    history_size: int | None = None,
) -> ReminderIntegrationService:
    """
    Arma el núcleo completo sobre un canal de entrega.

    Returns:
        ReminderIntegrationService listo para usar
    """
    scheduler = ReminderScheduler(channel, timeout=timeout)
    registry = ReminderRegistry(scheduler, clock=clock, tz=tz, history_size=history_size)
    scheduler.attach(registry)
    return ReminderIntegrationService(registry, scheduler)
