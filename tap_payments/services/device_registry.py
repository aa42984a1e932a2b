"""
device_registry.py
------------------
Registro de dispositivos de pago por contacto.

Un device_uid pertenece a un único usuario para siempre: el primero que
lo registra. Un dispositivo desconocido se aprovisiona en su primer uso
en vez de rechazarse; uno ajeno o desactivado se rechaza.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from tap_payments.core.exceptions import (
    DeviceAlreadyRegisteredException,
    DeviceInactiveException,
    DeviceNotFoundException,
    DeviceNotOwnedException,
    StoreUnavailableException,
)
from tap_payments.domain.schemas import DeviceRecord, SecurityEventType, Severity
from tap_payments.infrastructure.database.device_repository import DeviceRepository
from tap_payments.services.audit_trail import AuditTrail

logger = logging.getLogger(__name__)


def default_device_name(device_uid: str) -> str:
    return f"Tap device ····{device_uid[-4:]}"


class DeviceRegistry:

    def __init__(self, devices: DeviceRepository, audit: AuditTrail) -> None:
        self.devices = devices
        self.audit   = audit

    async def lookup(self, device_uid: str) -> Optional[DeviceRecord]:
        return await self.devices.find_by_identifier(device_uid)

    async def resolve_for_payment(
        self, user_id: uuid.UUID, device_uid: str
    ) -> DeviceRecord:
        """
        Paso 3 del pipeline.

          desconocido          → se registra a nombre de user_id
          de otro usuario      → DeviceNotOwnedException
          propio pero inactivo → DeviceInactiveException
        """
        device = await self.devices.find_by_identifier(device_uid)

        if device is None:
            try:
                return await self.register(
                    user_id, device_uid, default_device_name(device_uid), auto=True
                )
            except DeviceAlreadyRegisteredException:
                # Otro request lo reclamó entre la lectura y el INSERT
                device = await self.devices.find_by_identifier(device_uid)
                if device is None:
                    raise StoreUnavailableException()

        if device.user_id != user_id:
            logger.warning(
                f"[DeviceRegistry] Dispositivo ajeno device={device.id} "
                f"owner={device.user_id} requester={user_id}"
            )
            raise DeviceNotOwnedException()

        if not device.is_active:
            raise DeviceInactiveException()

        return device

    async def register(
        self,
        user_id:     uuid.UUID,
        device_uid:  str,
        device_name: str,
        auto:        bool = False,
    ) -> DeviceRecord:
        device = await self.devices.insert(user_id, device_uid, device_name)
        await self.audit.record(
            user_id,
            SecurityEventType.DEVICE_REGISTERED,
            Severity.LOW,
            f"Dispositivo NFC registrado: {device_name}",
            {"device_id": str(device.id), "auto_registered": auto},
        )
        logger.info(
            f"[DeviceRegistry] Registrado device={device.id} user={user_id} auto={auto}"
        )
        return device

    async def deactivate(self, device_id: uuid.UUID, user_id: uuid.UUID) -> DeviceRecord:
        """Solo el dueño puede desactivar. Un dispositivo ajeno se reporta como inexistente."""
        device = await self.devices.get(device_id)
        if device is None or device.user_id != user_id:
            raise DeviceNotFoundException()

        if not await self.devices.set_active(device_id, False, owner_id=user_id):
            raise DeviceNotFoundException()

        await self.audit.record(
            user_id,
            SecurityEventType.DEVICE_DEACTIVATED,
            Severity.MEDIUM,
            f"Dispositivo NFC desactivado: {device.device_name}",
            {"device_id": str(device_id)},
        )
        return device.model_copy(update={"is_active": False})

    async def touch_last_used(self, device_id: uuid.UUID, at: datetime) -> None:
        await self.devices.touch_last_used(device_id, at)

    async def list_devices(self, user_id: uuid.UUID) -> List[DeviceRecord]:
        return await self.devices.list_by_user(user_id)

    async def verify_ownership(self, device_uid: str, user_id: uuid.UUID) -> bool:
        device = await self.devices.find_by_identifier(device_uid)
        return device is not None and device.user_id == user_id and device.is_active
