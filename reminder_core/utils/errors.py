"""Manejo centralizado de errores y excepciones."""

import logging
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import Any

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)


class ErrorCategory(str, Enum):
    """Categorías de errores."""

    TIME_RESOLUTION = "time_resolution"
    DELIVERY = "delivery"
    VALIDATION = "validation"
    SCHEDULER = "scheduler"
    DATABASE = "database"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Contexto de un error para logging."""

    category: ErrorCategory
    operation: str
    error_type: str
    message: str
    details: dict[str, Any] | None = None
    traceback_str: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convierte a diccionario para logging."""
        return {
            "category": self.category.value,
            "operation": self.operation,
            "error_type": self.error_type,
            "message": self.message,
            "details": self.details,
        }


class ReminderCoreError(Exception):
    """Excepción base del núcleo de recordatorios."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.category.value}] {self.message}"


class NoValidOccurrence(ReminderCoreError):
    """
    El offset resuelve a un instante que no está en el futuro.

    No es una falla de la aplicación: simplemente no hay recordatorio
    para esa configuración.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCategory.TIME_RESOLUTION, details)


class DeliveryRejected(ReminderCoreError):
    """El canal de entrega rechazó la programación o no respondió a tiempo."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCategory.DELIVERY, details)


class InvalidReminderConfig(ReminderCoreError):
    """Configuración de recordatorio inválida."""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, ErrorCategory.VALIDATION, details)


def log_error(
    error: Exception,
    operation: str,
    category: ErrorCategory = ErrorCategory.UNKNOWN,
    extra: dict[str, Any] | None = None,
    level: int = logging.ERROR,
) -> ErrorContext:
    """
    Registra un error con contexto estructurado.

    Args:
        error: La excepción capturada
        operation: Nombre de la operación que falló
        category: Categoría del error
        extra: Información adicional
        level: Nivel de logging (los errores recuperables van como WARNING)

    Returns:
        ErrorContext con los detalles del error
    """
    if isinstance(error, ReminderCoreError):
        category = error.category
        details = {**(error.details or {}), **(extra or {})}
    else:
        details = extra or {}

    context = ErrorContext(
        category=category,
        operation=operation,
        error_type=type(error).__name__,
        message=str(error),
        details=details,
        traceback_str=traceback.format_exc() if level >= logging.ERROR else None,
    )

    logger.log(
        level,
        f"Error en {operation}: {error}",
        extra={"error_context": context.to_dict()},
    )

    return context


def retry_channel():
    """Retry configurado para llamadas best-effort al canal de entrega."""
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(ConnectionError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
