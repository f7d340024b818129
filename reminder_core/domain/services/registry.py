"""
Reminder Registry - Fuente de verdad de los recordatorios vivos.

Mapea (tipo, entidad, offset) al recordatorio PENDING que lo representa
y garantiza que exista a lo sumo uno por clave.

Todas las mutaciones de una clave se serializan con un asyncio.Lock por
clave; operaciones sobre claves distintas nunca se bloquean entre sí.
"""

import asyncio
import logging
from collections import Counter, defaultdict, deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Iterable, Protocol

import pytz

from reminder_core.config import get_settings
from reminder_core.domain.entities.reminder import (
    EntityKind,
    ReminderConfig,
    ReminderContent,
    ReminderKey,
    ReminderState,
    ScheduledReminder,
)
from reminder_core.domain.services.time_resolution import get_timezone, resolve
from reminder_core.services.content import build_content
from reminder_core.utils.errors import DeliveryRejected, NoValidOccurrence

logger = logging.getLogger(__name__)


class SchedulerPort(Protocol):
    """Lo que el registro necesita del scheduler."""

    async def schedule(self, fire_instant: datetime, content: ReminderContent) -> str: ...

    async def cancel(self, handle: str) -> None: ...


@dataclass
class ReconcileReport:
    """Resultado de un barrido de reconciliación."""

    live: int = 0
    expired: list[ScheduledReminder] = field(default_factory=list)
    skipped: list[ReminderKey] = field(default_factory=list)
    rescheduled: list[ScheduledReminder] = field(default_factory=list)
    dropped: list[ReminderKey] = field(default_factory=list)
    still_rejected: list[ReminderKey] = field(default_factory=list)

    def merge(self, other: "ReconcileReport") -> "ReconcileReport":
        return ReconcileReport(
            live=self.live + other.live,
            expired=self.expired + other.expired,
            skipped=self.skipped + other.skipped,
            rescheduled=self.rescheduled + other.rescheduled,
            dropped=self.dropped + other.dropped,
            still_rejected=self.still_rejected + other.still_rejected,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "live": self.live,
            "expired": [r.handle for r in self.expired],
            "skipped": len(self.skipped),
            "rescheduled": [r.handle for r in self.rescheduled],
            "dropped": len(self.dropped),
            "still_rejected": len(self.still_rejected),
        }


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


class ReminderRegistry:
    """
    Registro de recordatorios programados.

    Uso:
        registry = ReminderRegistry(scheduler)
        record = await registry.upsert(config)
        await registry.cancel_all(EntityKind.TASK, 42)
    """

    def __init__(
        self,
        scheduler: SchedulerPort,
        clock: Callable[[], datetime] = utc_now,
        tz: str | pytz.BaseTzInfo | None = None,
        history_size: int | None = None,
        content_builder: Callable[[ReminderConfig], ReminderContent] = build_content,
    ):
        """
        Inicializa el registro.

        Args:
            scheduler: Único componente que habla con el canal de entrega
            clock: Fuente del instante actual (aware)
            tz: Zona horaria local para resolver ofsets de calendario
            history_size: Tamaño del historial reciente
            content_builder: Construye el snapshot de contenido
        """
        self._scheduler = scheduler
        self._clock = clock
        self._tz = get_timezone(tz)
        self._build_content = content_builder

        self._pending: dict[ReminderKey, ScheduledReminder] = {}
        self._by_handle: dict[str, ReminderKey] = {}
        self._configs: dict[ReminderKey, ReminderConfig] = {}
        self._flagged: dict[ReminderKey, ReminderConfig] = {}
        self._history: deque[ScheduledReminder] = deque(
            maxlen=history_size or get_settings().history_size
        )
        self._locks: defaultdict[ReminderKey, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_users: Counter[ReminderKey] = Counter()

    @asynccontextmanager
    async def _key_lock(self, key: ReminderKey) -> AsyncIterator[None]:
        """
        Lock de una clave.

        El lock se descarta cuando nadie lo usa y la clave ya no tiene
        pendiente, configuración ni reintento.
        """
        self._lock_users[key] += 1
        try:
            async with self._locks[key]:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                if not self._is_tracked(key):
                    self._locks.pop(key, None)

    def _is_tracked(self, key: ReminderKey) -> bool:
        return key in self._pending or key in self._configs or key in self._flagged

    def _handle_seen(self, handle: str) -> bool:
        """Handles vivos o todavía en el historial reciente."""
        return handle in self._by_handle or any(r.handle == handle for r in self._history)

    # ==================== UPSERT ====================

    async def upsert(self, config: ReminderConfig) -> ScheduledReminder:
        """
        Programa (o reprograma) el recordatorio de una configuración.

        El nuevo recordatorio se entrega al canal antes de cancelar el
        anterior: una interrupción entre ambos pasos deja a lo sumo un
        duplicado, nunca una alerta perdida.

        Raises:
            NoValidOccurrence: La configuración no produce un instante futuro
            DeliveryRejected: El canal rechazó la programación
        """
        async with self._key_lock(config.key):
            return await self._upsert_locked(config)

    async def _upsert_locked(
        self,
        config: ReminderConfig,
        now: datetime | None = None,
    ) -> ScheduledReminder:
        key = config.key
        self._flagged.pop(key, None)

        if not config.enabled:
            self._configs.pop(key, None)
            await self._cancel_locked(key)
            raise NoValidOccurrence(
                f"Recordatorio deshabilitado para {key.entity_kind.value}:{key.entity_id}",
                details={"reason": "disabled"},
            )

        self._configs[key] = config
        now = now or self._clock()

        try:
            fire_instant = resolve(config, now, self._tz)
        except NoValidOccurrence:
            # El pendiente anterior refleja una configuración obsoleta
            self._configs.pop(key, None)
            await self._cancel_locked(key)
            raise

        content = self._build_content(config)

        try:
            handle = await self._scheduler.schedule(fire_instant, content)
        except DeliveryRejected:
            self._flagged[key] = config
            raise

        if self._handle_seen(handle):
            self._flagged[key] = config
            raise DeliveryRejected(
                f"El canal reutilizó el handle {handle}",
                details={"handle": handle},
            )

        record = ScheduledReminder(
            handle=handle,
            fire_instant=fire_instant,
            content=content,
            source_config=config,
            created_at=now,
        )

        previous = self._pending.get(key)
        self._pending[key] = record
        self._by_handle[handle] = key

        if previous is not None:
            self._close(previous, ReminderState.CANCELLED)
            await self._scheduler.cancel(previous.handle)
            logger.info(f"Recordatorio {previous.handle} reemplazado por {handle}")

        logger.info(
            f"Recordatorio programado: {key.entity_kind.value}:{key.entity_id} "
            f"({key.offset}) para {fire_instant.isoformat()} [{handle}]"
        )
        return record

    # ==================== CANCELACION ====================

    async def cancel(self, key: ReminderKey) -> ScheduledReminder | None:
        """Cancela el recordatorio de una sola clave y olvida su configuración."""
        async with self._key_lock(key):
            self._configs.pop(key, None)
            self._flagged.pop(key, None)
            return await self._cancel_locked(key)

    async def cancel_all(
        self,
        entity_kind: EntityKind,
        entity_id: str | int,
    ) -> list[ScheduledReminder]:
        """
        Cancela todos los recordatorios de una entidad.

        Returns:
            Lista de recordatorios cancelados
        """
        cancelled = []
        for key in self.keys_for(entity_kind, entity_id):
            record = await self.cancel(key)
            if record is not None:
                cancelled.append(record)

        if cancelled:
            logger.info(
                f"Cancelados {len(cancelled)} recordatorios para "
                f"{entity_kind.value}:{entity_id}"
            )
        return cancelled

    async def cancel_everything(self) -> int:
        """Cancela todos los recordatorios de todas las entidades."""
        keys = {*self._pending, *self._configs, *self._flagged}
        count = 0
        for key in sorted(keys, key=_sort_key):
            if await self.cancel(key) is not None:
                count += 1
        logger.info(f"Cancelados {count} recordatorios")
        return count

    async def _cancel_locked(self, key: ReminderKey) -> ScheduledReminder | None:
        record = self._pending.get(key)
        if record is None:
            return None
        self._close(record, ReminderState.CANCELLED)
        await self._scheduler.cancel(record.handle)
        return record

    # ==================== TRANSICIONES ====================

    async def mark_fired(self, handle: str) -> ScheduledReminder | None:
        """
        Marca un recordatorio como disparado.

        Un handle desconocido no es un error: el canal puede reportar el
        disparo de algo que ya se canceló.
        """
        return await self._transition(handle, ReminderState.FIRED)

    async def mark_expired(self, handle: str) -> ScheduledReminder | None:
        """Marca un recordatorio como expirado y lo deja para reprogramar."""
        record = await self._transition(handle, ReminderState.EXPIRED)
        if record is not None:
            self._flag_if_current(record)
        return record

    async def _transition(
        self,
        handle: str,
        state: ReminderState,
    ) -> ScheduledReminder | None:
        key = self._by_handle.get(handle)
        if key is None:
            logger.debug(f"Handle desconocido {handle}, se ignora ({state.value})")
            return None

        async with self._key_lock(key):
            record = self._pending.get(key)
            if record is None or record.handle != handle:
                logger.debug(f"Handle {handle} ya no está pendiente, se ignora")
                return None
            self._close(record, state)

        logger.info(f"Recordatorio {handle} -> {state.value}")
        return record

    def _close(self, record: ScheduledReminder, state: ReminderState) -> None:
        record.state = state
        record.closed_at = self._clock()
        if self._pending.get(record.key) is record:
            del self._pending[record.key]
        self._by_handle.pop(record.handle, None)
        self._history.append(record)

    def _flag_if_current(self, record: ScheduledReminder) -> None:
        key = record.key
        if self._configs.get(key) == record.source_config and key not in self._pending:
            self._flagged[key] = record.source_config

    # ==================== RECURRENCIA ====================

    async def schedule_next(self, record: ScheduledReminder) -> ScheduledReminder | None:
        """
        Programa la siguiente ocurrencia de un recordatorio recurrente.

        Solo actúa si la configuración del registro sigue siendo la vigente
        para la clave y no hay otro pendiente (una edición concurrente gana).
        """
        if not record.source_config.is_recurring:
            return None

        key = record.key
        async with self._key_lock(key):
            if self._configs.get(key) != record.source_config or key in self._pending:
                return None

            now = max(self._clock(), record.fire_instant)
            try:
                return await self._upsert_locked(record.source_config, now=now)
            except (NoValidOccurrence, DeliveryRejected) as e:
                logger.warning(f"No se pudo programar la siguiente ocurrencia de {key}: {e}")
                return None

    # ==================== RECONCILIACION ====================

    def reconcile(
        self,
        live_handles: Iterable[str],
        candidates: set[str] | None = None,
    ) -> ReconcileReport:
        """
        Repara la deriva contra la cola real del canal.

        Todo PENDING cuyo handle no esté en `live_handles` pasa a EXPIRED y
        su configuración queda marcada para reprogramar. Las claves con una
        mutación en curso se saltan.

        Args:
            live_handles: Cola autoritativa del canal
            candidates: Handles pendientes antes de consultar al canal; los
                programados después no se pueden juzgar con esa cola
        """
        live = set(live_handles)
        report = ReconcileReport()

        for key, record in list(self._pending.items()):
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                report.skipped.append(key)
                continue
            if candidates is not None and record.handle not in candidates:
                report.skipped.append(key)
                continue
            if record.handle in live:
                report.live += 1
                continue

            self._close(record, ReminderState.EXPIRED)
            self._flag_if_current(record)
            report.expired.append(record)
            logger.warning(f"Recordatorio {record.handle} perdido por el canal, marcado EXPIRED")

        return report

    async def retry_flagged(self) -> ReconcileReport:
        """Reintenta las configuraciones marcadas para reprogramar."""
        report = ReconcileReport()

        for key, config in list(self._flagged.items()):
            lock = self._locks.get(key)
            if lock is not None and lock.locked():
                report.skipped.append(key)
                continue

            async with self._key_lock(key):
                if self._flagged.get(key) != config:
                    continue
                try:
                    report.rescheduled.append(await self._upsert_locked(config))
                except NoValidOccurrence:
                    report.dropped.append(key)
                except DeliveryRejected:
                    report.still_rejected.append(key)

        return report

    # ==================== CONSULTAS ====================

    def keys_for(self, entity_kind: EntityKind, entity_id: str | int) -> list[ReminderKey]:
        """Claves conocidas de una entidad, ordenadas por offset."""
        keys = {*self._pending, *self._configs, *self._flagged}
        return sorted(
            (k for k in keys if k.entity_kind == entity_kind and k.entity_id == entity_id),
            key=_sort_key,
        )

    def pending_handles(self) -> set[str]:
        return set(self._by_handle)

    def get(self, handle: str) -> ScheduledReminder | None:
        key = self._by_handle.get(handle)
        if key is None:
            return None
        return self._pending.get(key)

    def pending(self) -> list[ScheduledReminder]:
        return sorted(self._pending.values(), key=lambda r: r.fire_instant)

    def pending_for(self, entity_kind: EntityKind, entity_id: str | int) -> list[ScheduledReminder]:
        return [
            r for r in self.pending()
            if r.key.entity_kind == entity_kind and r.key.entity_id == entity_id
        ]

    def flagged(self) -> list[ReminderConfig]:
        return list(self._flagged.values())

    def history(self) -> list[ScheduledReminder]:
        return list(self._history)

    def stats(self) -> dict[str, Any]:
        """Estadísticas del registro."""
        by_state: dict[str, int] = defaultdict(int)
        for record in self._history:
            by_state[record.state.value] += 1
        return {
            "pending": len(self._pending),
            "flagged": len(self._flagged),
            "history": len(self._history),
            "history_by_state": dict(by_state),
        }

    # ==================== PERSISTENCIA DEL HOST ====================

    def snapshot(self) -> list[ScheduledReminder]:
        """Recordatorios vivos, para que el host los persista."""
        return self.pending()

    def flagged_snapshot(self) -> list[ReminderConfig]:
        """Configuraciones en espera de reintento, para que el host las persista."""
        return [self._flagged[key] for key in sorted(self._flagged, key=_sort_key)]

    def rehydrate(
        self,
        records: Iterable[ScheduledReminder],
        flagged: Iterable[ReminderConfig] = (),
    ) -> int:
        """
        Carga recordatorios persistidos por el host.

        Las configuraciones en `flagged` quedan marcadas para reintento y
        pasan a ser las vigentes de su clave. Después de rehidratar se debe
        correr una reconciliación.

        Returns:
            Número de recordatorios PENDING cargados
        """
        loaded = 0
        for record in records:
            if not record.is_pending:
                self._history.append(record)
                continue
            key = record.key
            if key in self._pending:
                logger.warning(f"Clave duplicada al rehidratar {key}, se ignora {record.handle}")
                continue
            self._pending[key] = record
            self._by_handle[record.handle] = key
            self._configs[key] = record.source_config
            loaded += 1

        requeued = 0
        for config in flagged:
            key = config.key
            self._configs[key] = config
            self._flagged[key] = config
            requeued += 1

        logger.info(
            f"Registro rehidratado con {loaded} recordatorios pendientes "
            f"y {requeued} en espera de reintento"
        )
        return loaded


def _sort_key(key: ReminderKey) -> tuple:
    return (key.entity_kind.value, str(key.entity_id), key.offset)
