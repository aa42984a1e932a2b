from fastapi import APIRouter, Depends, status

from tap_payments.api.dependencies import get_credential_service
from tap_payments.core.security import create_access_token
from tap_payments.domain.schemas import EnrollRequest, EnrollResponse
from tap_payments.services.credential_service import CredentialService

router = APIRouter(prefix="/v1/users", tags=["Usuarios"])


@router.post(
    "",
    response_model=EnrollResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Registrar usuario con PIN de pagos",
)
async def enroll(
    body:        EnrollRequest,
    credentials: CredentialService = Depends(get_credential_service),
) -> EnrollResponse:
    user = await credentials.enroll(body.email, body.pin, body.daily_limit)
    token, expires_in = create_access_token(user.id, user.email)
    return EnrollResponse(
        user_id      = user.id,
        email        = user.email,
        access_token = token,
        expires_in   = expires_in,
    )
