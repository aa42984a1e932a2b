import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, status

from tap_payments.api.dependencies import (
    get_account_service,
    get_current_user,
    get_pipeline,
)
from tap_payments.domain.schemas import (
    CurrentUser,
    PaymentRequest,
    SignatureVerification,
    TapPaymentBody,
    TransactionRecord,
)
from tap_payments.services.account_service import AccountService
from tap_payments.services.authorization_pipeline import AuthorizationPipeline

router = APIRouter(prefix="/v1/transactions", tags=["Transacciones"])


@router.post(
    "/authorize",
    response_model=TransactionRecord,
    status_code=status.HTTP_201_CREATED,
    summary="Autorizar un pago por contacto",
)
async def authorize(
    body:         TapPaymentBody,
    current_user: CurrentUser           = Depends(get_current_user),
    pipeline:     AuthorizationPipeline = Depends(get_pipeline),
) -> TransactionRecord:
    request = PaymentRequest(user_id=current_user.user_id, **body.model_dump())
    return await pipeline.authorize(request)


@router.get("", response_model=List[TransactionRecord])
async def list_transactions(
    limit:        int            = Query(50, ge=1, le=200),
    current_user: CurrentUser    = Depends(get_current_user),
    accounts:     AccountService = Depends(get_account_service),
) -> List[TransactionRecord]:
    return await accounts.list_transactions(current_user.user_id, limit=limit)


@router.get("/{transaction_id}/verify", response_model=SignatureVerification)
async def verify_transaction(
    transaction_id: uuid.UUID,
    current_user:   CurrentUser    = Depends(get_current_user),
    accounts:       AccountService = Depends(get_account_service),
) -> SignatureVerification:
    valid = await accounts.verify_transaction(transaction_id, current_user.user_id)
    return SignatureVerification(transaction_id=transaction_id, valid=valid)
