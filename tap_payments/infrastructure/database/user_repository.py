"""
user_repository.py
------------------
Credential Store: identidad, digest del PIN, estado y límite diario.

Los cambios de contador y estado se hacen con UPDATE directo en la DB
(no leer-modificar-escribir en Python) para que dos intentos fallidos
simultáneos no pierdan un incremento.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from tap_payments.core.config import settings
from tap_payments.core.exceptions import EmailAlreadyExistsException
from tap_payments.domain.models import User
from tap_payments.domain.schemas import UserRecord, UserStatus
from tap_payments.infrastructure.database.base_repository import (
    BaseRepository,
    store_operation,
    to_utc,
)


class UserRepository(BaseRepository):

    @store_operation
    async def get(self, user_id: uuid.UUID) -> Optional[UserRecord]:
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        return UserRecord.model_validate(user) if user else None

    @store_operation
    async def get_by_email(self, email: str) -> Optional[UserRecord]:
        result = await self.db.execute(
            select(User)
            .where(User.email == email.lower())
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        return UserRecord.model_validate(user) if user else None

    @store_operation
    async def create(
        self,
        email:       str,
        pin_hash:    str,
        daily_limit: Optional[Decimal] = None,
    ) -> UserRecord:
        user = User(
            id          = uuid.uuid4(),
            email       = email.lower(),
            pin_hash    = pin_hash,
            daily_limit = daily_limit if daily_limit is not None else settings.DEFAULT_DAILY_LIMIT,
            status      = UserStatus.ACTIVE.value,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise EmailAlreadyExistsException()
        return UserRecord.model_validate(user)

    @store_operation
    async def record_failed_pin(
        self, user_id: uuid.UUID, at: datetime
    ) -> Optional[int]:
        """
        Incrementa el contador de PIN fallidos y retorna el nuevo valor.
        None si el usuario no existe.
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                failed_auth_attempts = User.failed_auth_attempts + 1,
                last_failed_auth     = to_utc(at),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            return None

        attempts = await self.db.scalar(
            select(User.failed_auth_attempts).where(User.id == user_id)
        )
        await self.db.commit()
        return attempts

    @store_operation
    async def lock_if_not_locked(self, user_id: uuid.UUID) -> bool:
        """
        Pasa la cuenta a 'locked'. Retorna True solo si ESTA llamada hizo
        la transición, así el evento account_locked se emite una sola vez.
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.status != UserStatus.LOCKED.value)
            .values(status=UserStatus.LOCKED.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    @store_operation
    async def reset_failed_attempts(self, user_id: uuid.UUID) -> None:
        await self.db.execute(
            update(User)
            .where(User.id == user_id, User.failed_auth_attempts != 0)
            .values(failed_auth_attempts=0, last_failed_auth=None)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    @store_operation
    async def set_status(self, user_id: uuid.UUID, status: UserStatus) -> bool:
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    @store_operation
    async def set_daily_limit(self, user_id: uuid.UUID, limit: Decimal) -> bool:
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(daily_limit=limit)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1
