"""
Database - Almacén del snapshot del registro.

El host persiste aquí los recordatorios vivos para rehidratar el registro
después de un reinicio del proceso.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from reminder_core.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class para modelos SQLAlchemy."""
    pass


# Engine y session factory
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Obtiene el engine de la base de datos."""
    global _engine
    if _engine is None:
        settings = get_settings()
        kwargs = {}
        if ":memory:" in settings.database_url:
            # Una sola conexión compartida, si no cada sesión ve una BD vacía
            kwargs["poolclass"] = StaticPool
        _engine = create_async_engine(settings.database_url, echo=settings.debug, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Obtiene la factory de sesiones."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Context manager para obtener una sesión."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Crea las tablas si no existen."""
    # Importar modelos para que se registren
    from reminder_core.db.models import (  # noqa: F401
        FlaggedReminderConfigModel,
        ScheduledReminderModel,
    )

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Base de datos de recordatorios inicializada")


async def close_db() -> None:
    """Cierra las conexiones de la base de datos."""
    global _engine, _async_session_factory

    if _engine:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None

    logger.info("Conexiones de base de datos cerradas")
