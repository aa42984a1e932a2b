from typing import List

from fastapi import APIRouter, Depends, Query

from tap_payments.api.dependencies import (
    get_account_service,
    get_current_user,
    get_security_service,
)
from tap_payments.domain.schemas import (
    AccountSecurityStatus,
    AccountSnapshot,
    CurrentUser,
    SecurityEventRecord,
)
from tap_payments.services.account_service import AccountService
from tap_payments.services.security_service import SecurityService

router = APIRouter(prefix="/v1", tags=["Seguridad"])


@router.get("/security/logs", response_model=List[SecurityEventRecord])
async def security_logs(
    limit:        int             = Query(100, ge=1, le=500),
    current_user: CurrentUser     = Depends(get_current_user),
    service:      SecurityService = Depends(get_security_service),
) -> List[SecurityEventRecord]:
    return await service.get_security_logs(current_user.user_id, limit=limit)


@router.get("/security/status", response_model=AccountSecurityStatus)
async def security_status(
    current_user: CurrentUser     = Depends(get_current_user),
    service:      SecurityService = Depends(get_security_service),
) -> AccountSecurityStatus:
    return await service.get_account_status(current_user.user_id)


@router.get("/account/refresh", response_model=AccountSnapshot)
async def refresh_account(
    current_user: CurrentUser    = Depends(get_current_user),
    accounts:     AccountService = Depends(get_account_service),
) -> AccountSnapshot:
    """Punto de entrada explícito para que la UI recargue el panel."""
    return await accounts.refresh(current_user.user_id)
