"""Configuracion del nucleo de recordatorios usando Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuracion principal del motor de recordatorios."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Timezone local del dispositivo/host
    tz: str = "America/Mexico_City"

    # Canal de entrega
    channel_timeout_seconds: float = 5.0
    misfire_grace_seconds: int = 60

    # Reconciliacion
    reconcile_interval_minutes: int = 15

    # Persistencia periódica del snapshot
    snapshot_interval_seconds: int = 60

    # Historial reciente para diagnostico
    history_size: int = 200

    # Snapshot del registro (persistencia del host)
    database_url: str = "sqlite+aiosqlite:///./reminders.db"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache
def get_settings() -> Settings:
    """Obtiene la configuracion cacheada."""
    return Settings()
