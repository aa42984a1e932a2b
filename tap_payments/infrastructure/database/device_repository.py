"""
device_repository.py
--------------------
Device store. device_uid tiene restricción UNIQUE en la DB: es la única
fuente de verdad para "el primer registrante reclama el dispositivo".
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from tap_payments.core.exceptions import DeviceAlreadyRegisteredException
from tap_payments.domain.models import NfcDevice
from tap_payments.domain.schemas import DeviceRecord
from tap_payments.infrastructure.database.base_repository import (
    BaseRepository,
    store_operation,
    to_utc,
)


class DeviceRepository(BaseRepository):

    @store_operation
    async def find_by_identifier(self, device_uid: str) -> Optional[DeviceRecord]:
        result = await self.db.execute(
            select(NfcDevice)
            .where(NfcDevice.device_uid == device_uid)
            .execution_options(populate_existing=True)
        )
        device = result.scalar_one_or_none()
        return DeviceRecord.model_validate(device) if device else None

    @store_operation
    async def get(self, device_id: uuid.UUID) -> Optional[DeviceRecord]:
        result = await self.db.execute(
            select(NfcDevice)
            .where(NfcDevice.id == device_id)
            .execution_options(populate_existing=True)
        )
        device = result.scalar_one_or_none()
        return DeviceRecord.model_validate(device) if device else None

    @store_operation
    async def insert(
        self,
        user_id:     uuid.UUID,
        device_uid:  str,
        device_name: str,
    ) -> DeviceRecord:
        device = NfcDevice(
            id          = uuid.uuid4(),
            user_id     = user_id,
            device_uid  = device_uid,
            device_name = device_name,
            is_active   = True,
        )
        self.db.add(device)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DeviceAlreadyRegisteredException()
        return DeviceRecord.model_validate(device)

    @store_operation
    async def set_active(
        self,
        device_id: uuid.UUID,
        active:    bool,
        owner_id:  Optional[uuid.UUID] = None,
    ) -> bool:
        stmt = update(NfcDevice).where(NfcDevice.id == device_id)
        if owner_id is not None:
            stmt = stmt.where(NfcDevice.user_id == owner_id)
        result = await self.db.execute(
            stmt.values(is_active=active)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    @store_operation
    async def touch_last_used(self, device_id: uuid.UUID, at: datetime) -> None:
        await self.db.execute(
            update(NfcDevice)
            .where(NfcDevice.id == device_id)
            .values(last_used=to_utc(at))
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    @store_operation
    async def list_by_user(self, user_id: uuid.UUID) -> List[DeviceRecord]:
        result = await self.db.execute(
            select(NfcDevice)
            .where(NfcDevice.user_id == user_id)
            .order_by(NfcDevice.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return [DeviceRecord.model_validate(d) for d in result.scalars().all()]
