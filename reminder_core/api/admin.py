"""
Admin API endpoints.

Endpoints de diagnóstico del núcleo de recordatorios:
- Ver recordatorios pendientes e historial reciente
- Forzar una reconciliación
- Opciones del selector por tipo de entidad
"""

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from reminder_core.domain.entities.reminder import EntityKind
from reminder_core.services.content import format_offset, reminder_options
from reminder_core.services.integration import ReminderIntegrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class ReminderResponse(BaseModel):
    """Recordatorio programado."""
    handle: str
    entity_kind: str
    entity_id: str | int
    offset: str
    fire_instant: str
    state: str
    title: str
    body: str


class ReconcileResponse(BaseModel):
    """Resultado de una reconciliación."""
    status: str
    live: int
    expired: list[str]
    rescheduled: list[str]
    skipped: int
    dropped: int
    still_rejected: int
    timestamp: str


class ReminderOptionResponse(BaseModel):
    """Opción del selector."""
    label: str
    value: str | None
    icon: str
    default: bool


def get_core(request: Request) -> ReminderIntegrationService:
    core = getattr(request.app.state, "reminder_core", None)
    if core is None:
        raise HTTPException(status_code=503, detail="Núcleo de recordatorios no inicializado")
    return core


def _to_response(record) -> ReminderResponse:
    key = record.key
    return ReminderResponse(
        handle=record.handle,
        entity_kind=key.entity_kind.value,
        entity_id=key.entity_id,
        offset=format_offset(record.source_config.offset),
        fire_instant=record.fire_instant.isoformat(),
        state=record.state.value,
        title=record.content.title,
        body=record.content.body,
    )


@router.get("/reminders", response_model=list[ReminderResponse])
async def list_pending_reminders(request: Request):
    """Recordatorios PENDING ordenados por instante de disparo."""
    core = get_core(request)
    return [_to_response(r) for r in core.registry.pending()]


@router.get("/reminders/history", response_model=list[ReminderResponse])
async def list_reminder_history(request: Request, limit: int = 50):
    """Historial reciente (disparados, cancelados, expirados), más nuevo primero."""
    core = get_core(request)
    history = core.registry.history()[-limit:] if limit > 0 else []
    return [_to_response(r) for r in reversed(history)]


@router.post("/reconcile", response_model=ReconcileResponse)
async def force_reconcile(request: Request):
    """Corre una reconciliación inmediata."""
    core = get_core(request)
    report = await core.reconcile()
    data = report.to_dict()
    return ReconcileResponse(
        status="ok",
        live=data["live"],
        expired=data["expired"],
        rescheduled=data["rescheduled"],
        skipped=data["skipped"],
        dropped=data["dropped"],
        still_rejected=data["still_rejected"],
        timestamp=datetime.now().isoformat(),
    )


@router.get("/options/{kind}", response_model=list[ReminderOptionResponse])
async def get_reminder_options(kind: EntityKind):
    """Opciones del selector de recordatorios para un tipo de entidad."""
    options = []
    for option in reminder_options(kind):
        value = option["value"]
        options.append(
            ReminderOptionResponse(
                label=option["label"],
                value=value.name if hasattr(value, "name") else value,
                icon=option["icon"],
                default=option["default"],
            )
        )
    return options
