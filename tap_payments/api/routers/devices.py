import uuid
from typing import List

from fastapi import APIRouter, Depends, status

from tap_payments.api.dependencies import get_current_user, get_device_registry
from tap_payments.domain.schemas import CurrentUser, DeviceRecord, DeviceRegisterRequest
from tap_payments.services.device_registry import DeviceRegistry

router = APIRouter(prefix="/v1/devices", tags=["Dispositivos"])


@router.get("", response_model=List[DeviceRecord])
async def list_devices(
    current_user: CurrentUser    = Depends(get_current_user),
    registry:     DeviceRegistry = Depends(get_device_registry),
) -> List[DeviceRecord]:
    return await registry.list_devices(current_user.user_id)


@router.post("", response_model=DeviceRecord, status_code=status.HTTP_201_CREATED)
async def register_device(
    body:         DeviceRegisterRequest,
    current_user: CurrentUser    = Depends(get_current_user),
    registry:     DeviceRegistry = Depends(get_device_registry),
) -> DeviceRecord:
    return await registry.register(
        current_user.user_id, body.device_identifier, body.device_name
    )


@router.delete("/{device_id}", response_model=DeviceRecord)
async def deactivate_device(
    device_id:    uuid.UUID,
    current_user: CurrentUser    = Depends(get_current_user),
    registry:     DeviceRegistry = Depends(get_device_registry),
) -> DeviceRecord:
    return await registry.deactivate(device_id, current_user.user_id)
