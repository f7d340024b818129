"""
Time Resolution - Cálculo del instante de disparo de un recordatorio.

Funciones puras: no guardan estado, así que resolver de nuevo después de
un disparo es determinístico.

La parte en días completos de un offset se aplica sobre el reloj de pared
local (aritmética de calendario con pytz); el resto se aplica como duración
absoluta. Así "1 día antes" de una medianoche local sigue siendo medianoche
aunque haya un cambio de horario en medio.
"""

from datetime import date, datetime, timedelta
from typing import Iterator

import pytz

from reminder_core.config import get_settings
from reminder_core.domain.entities.reminder import (
    Daily,
    Offset,
    Recurrence,
    ReminderConfig,
    WeeklyOnDays,
)
from reminder_core.utils.errors import NoValidOccurrence


def get_timezone(tz: str | pytz.BaseTzInfo | None = None) -> pytz.BaseTzInfo:
    """Zona horaria pytz; por defecto la de la configuración."""
    if tz is None:
        tz = get_settings().tz
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def localize(tz: pytz.BaseTzInfo, wall: datetime) -> datetime:
    """Convierte una hora de pared naive a aware en `tz`."""
    # is_dst=False: en horas ambiguas se toma la segunda (horario estándar)
    return tz.normalize(tz.localize(wall, is_dst=False))


def apply_offset(anchor: datetime, offset: Offset, tz: pytz.BaseTzInfo) -> datetime:
    """
    Instante de disparo `anchor - offset`.

    Raises:
        NoValidOccurrence: Si el resultado cae antes del año 1
    """
    try:
        local = anchor.astimezone(tz)
        if offset.days:
            wall = local.replace(tzinfo=None) - timedelta(days=offset.days)
            local = localize(tz, wall)
        return tz.normalize(local - offset.remainder)
    except OverflowError as e:
        raise NoValidOccurrence(
            f"El offset {offset.total} lleva el disparo fuera del calendario",
            details={"anchor_instant": anchor.isoformat()},
        ) from e


def _matches(recurrence: Recurrence, day: date) -> bool:
    if isinstance(recurrence, WeeklyOnDays):
        return day.weekday() in recurrence.weekdays
    return isinstance(recurrence, Daily)


def iter_occurrences(
    recurrence: Recurrence,
    anchor: datetime,
    now: datetime,
    tz: pytz.BaseTzInfo,
) -> Iterator[datetime]:
    """
    Ocurrencias del ancla a su hora local, en orden.

    Empieza en el día local más tardío entre el del ancla y el de `now`.
    Es infinita; quien la consume decide cuándo parar.
    """
    local_anchor = anchor.astimezone(tz)
    wall_time = local_anchor.time().replace(tzinfo=None)
    day = max(local_anchor.date(), now.astimezone(tz).date())

    while True:
        if _matches(recurrence, day):
            yield localize(tz, datetime.combine(day, wall_time))
        day += timedelta(days=1)


def resolve(
    config: ReminderConfig,
    now: datetime,
    tz: str | pytz.BaseTzInfo | None = None,
) -> datetime:
    """
    Resuelve el instante de disparo de una configuración.

    Args:
        config: Configuración del recordatorio
        now: Instante actual (aware)
        tz: Zona horaria local para la aritmética de calendario

    Returns:
        Instante estrictamente posterior a `now`

    Raises:
        NoValidOccurrence: Si el instante calculado no está en el futuro
    """
    zone = get_timezone(tz)

    if not config.is_recurring:
        fire = apply_offset(config.anchor_instant, config.offset, zone)
        if fire <= now:
            raise NoValidOccurrence(
                f"El recordatorio de {config.entity_kind.value}:{config.entity_id} "
                f"caería en {fire.isoformat()}, que ya pasó",
                details={"fire_instant": fire.isoformat(), "now": now.isoformat()},
            )
        return fire

    # Una ocurrencia anterior a now + offset no puede disparar en el futuro;
    # el día de margen cubre la diferencia entre reloj de pared y duración
    try:
        earliest = now + config.offset.total - timedelta(days=1)
        for occurrence in iter_occurrences(config.recurrence, config.anchor_instant, earliest, zone):
            fire = apply_offset(occurrence, config.offset, zone)
            if fire > now:
                return fire
    except OverflowError as e:
        raise NoValidOccurrence(
            f"Sin ocurrencias futuras para {config.entity_kind.value}:{config.entity_id}",
            details={"now": now.isoformat()},
        ) from e

    # Generador infinito: nunca se llega aquí
    raise NoValidOccurrence("Sin ocurrencias futuras")
