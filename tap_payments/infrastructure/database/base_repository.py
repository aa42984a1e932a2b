"""
base_repository.py
------------------
Base común de los repositorios.

Cada repositorio se instancia por request con la sesión inyectada y
hace commit por operación: un contador de PIN fallidos debe quedar
persistido aunque el pipeline termine lanzando un error.

Cualquier SQLAlchemyError que escape de un método decorado con
@store_operation se convierte en StoreUnavailableException (después de
hacer rollback), para que el pipeline vea un solo tipo de falla de I/O.
"""

import functools
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tap_payments.core.exceptions import StoreUnavailableException

logger = logging.getLogger(__name__)


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def store_operation(func):
    @functools.wraps(func)
    async def wrapper(self: "BaseRepository", *args, **kwargs):
        try:
            return await func(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error(
                f"[{type(self).__name__}] {func.__name__} falló: {exc}"
            )
            try:
                await self.db.rollback()
            except SQLAlchemyError as rollback_exc:
                logger.error(
                    f"[{type(self).__name__}] rollback falló: {rollback_exc}"
                )
            raise StoreUnavailableException() from exc
    return wrapper


class BaseRepository:

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
