"""Servicios de aplicación: fachada de integración y contenido de notificaciones."""
