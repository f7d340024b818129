"""Canales de entrega de notificaciones locales."""

from reminder_core.channels.base import DeliveryChannel
from reminder_core.channels.memory import InMemoryDeliveryChannel

__all__ = ["DeliveryChannel", "InMemoryDeliveryChannel"]
