"""
session.py
----------
Configuración de la conexión asíncrona a la base de datos.

Provee:
  - engine: motor SQLAlchemy async (asyncpg en producción, aiosqlite local)
  - AsyncSessionLocal: fábrica de sesiones
  - init_db: crea tablas en desarrollo (en producción usar migraciones)
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tap_payments.core.config import settings


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """SQLite no soporta el pool de conexiones de PostgreSQL."""
    if url.startswith("sqlite"):
        return create_async_engine(
            url,
            echo         = echo,
            connect_args = {"check_same_thread": False},
        )
    return create_async_engine(
        url,
        echo           = echo,
        pool_pre_ping  = True,             # Verifica conexión antes de usarla
        pool_size      = 10,               # Conexiones permanentes en el pool
        max_overflow   = 20,               # Conexiones extra bajo carga alta
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind             = bind,
        class_           = AsyncSession,
        expire_on_commit = False,
        autoflush        = False,
    )


# ── Motor y fábrica de sesiones de la aplicación ──────────────────────
engine            = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
AsyncSessionLocal = build_session_factory(engine)


# ── Init para desarrollo ─────────────────────────────────────────────
async def init_db(bind: AsyncEngine | None = None) -> None:
    """
    Crea todas las tablas definidas en models.py.
    Solo usar en desarrollo o tests.
    """
    from tap_payments.domain.models import Base
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
