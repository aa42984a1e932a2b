"""
account_service.py
------------------
Lecturas de la cuenta para la capa de presentación.

refresh() es el punto de entrada explícito que la UI invoca cuando
cambia la sesión, al volver al panel o después de un pago. No hay
suscripciones: quien necesita datos frescos llama refresh().
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List

from tap_payments.core.config import settings
from tap_payments.core.exceptions import (
    TransactionNotFoundException,
    UserNotFoundException,
)
from tap_payments.domain.schemas import AccountSnapshot, TransactionRecord
from tap_payments.infrastructure.database.transaction_repository import (
    TransactionRepository,
)
from tap_payments.infrastructure.database.user_repository import UserRepository
from tap_payments.services.authorization_pipeline import verify_signature
from tap_payments.services.device_registry import DeviceRegistry
from tap_payments.services.security_service import SecurityService

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS_LIMIT = 50


class AccountService:

    def __init__(
        self,
        users:    UserRepository,
        devices:  DeviceRegistry,
        ledger:   TransactionRepository,
        security: SecurityService,
        clock:    Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.users    = users
        self.devices  = devices
        self.ledger   = ledger
        self.security = security
        self.clock    = clock

    async def refresh(self, user_id: uuid.UUID) -> AccountSnapshot:
        user = await self.users.get(user_id)
        if user is None:
            raise UserNotFoundException()

        return AccountSnapshot(
            user_id      = user.id,
            email        = user.email,
            status       = user.status,
            daily_limit  = user.daily_limit or settings.DEFAULT_DAILY_LIMIT,
            devices      = await self.devices.list_devices(user.id),
            transactions = await self.list_transactions(user.id),
            security     = await self.security.get_account_status(user.id),
            refreshed_at = self.clock(),
        )

    async def list_transactions(
        self, user_id: uuid.UUID, limit: int = RECENT_TRANSACTIONS_LIMIT
    ) -> List[TransactionRecord]:
        return await self.ledger.find_by_user(user_id, limit=limit)

    async def verify_transaction(
        self, transaction_id: uuid.UUID, user_id: uuid.UUID
    ) -> bool:
        """Recalcula la firma desde los campos almacenados."""
        record = await self.ledger.get(transaction_id)
        if record is None or record.user_id != user_id:
            raise TransactionNotFoundException()

        valid = verify_signature(record)
        if not valid:
            logger.warning(f"[Account] Firma inválida txn={transaction_id}")
        return valid
