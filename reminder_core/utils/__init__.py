"""Utilidades del núcleo de recordatorios."""

from reminder_core.utils.errors import (
    DeliveryRejected,
    ErrorCategory,
    ErrorContext,
    InvalidReminderConfig,
    NoValidOccurrence,
    ReminderCoreError,
    log_error,
    retry_channel,
)

__all__ = [
    "DeliveryRejected",
    "ErrorCategory",
    "ErrorContext",
    "InvalidReminderConfig",
    "NoValidOccurrence",
    "ReminderCoreError",
    "log_error",
    "retry_channel",
]
