"""
transaction_repository.py
-------------------------
Transaction ledger. Solo INSERT y lecturas: no existe un método para
actualizar monto, estado o score de una transacción ya creada.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select

from tap_payments.domain.models import Transaction
from tap_payments.domain.schemas import TransactionRecord, TransactionStatus
from tap_payments.infrastructure.database.base_repository import (
    BaseRepository,
    store_operation,
    to_utc,
)

_CENTS = Decimal("0.01")


class TransactionRepository(BaseRepository):

    @store_operation
    async def insert(self, record: TransactionRecord) -> TransactionRecord:
        txn = Transaction(
            id             = record.id,
            user_id        = record.user_id,
            device_id      = record.device_id,
            amount         = record.amount,
            currency       = record.currency,
            merchant_id    = record.merchant_id,
            merchant_name  = record.merchant_name,
            status         = record.status.value,
            risk_score     = record.risk_score,
            decline_reason = record.decline_reason,
            signature      = record.signature,
            created_at     = to_utc(record.created_at),
        )
        self.db.add(txn)
        await self.db.commit()
        return record

    @store_operation
    async def get(self, transaction_id: uuid.UUID) -> Optional[TransactionRecord]:
        txn = await self.db.scalar(
            select(Transaction)
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return TransactionRecord.model_validate(txn) if txn else None

    @store_operation
    async def find_by_user(
        self,
        user_id: uuid.UUID,
        since:   Optional[datetime] = None,
        status:  Optional[TransactionStatus] = None,
        limit:   Optional[int] = None,
    ) -> List[TransactionRecord]:
        """Transacciones del usuario, la más reciente primero."""
        stmt = select(Transaction).where(Transaction.user_id == user_id)
        if since is not None:
            stmt = stmt.where(Transaction.created_at >= to_utc(since))
        if status is not None:
            stmt = stmt.where(Transaction.status == status.value)
        stmt = stmt.order_by(Transaction.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.db.execute(stmt)
        return [TransactionRecord.model_validate(t) for t in result.scalars().all()]

    @store_operation
    async def approved_total_since(
        self, user_id: uuid.UUID, since: datetime
    ) -> Decimal:
        total = await self.db.scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0))
            .where(
                Transaction.user_id == user_id,
                Transaction.status == TransactionStatus.APPROVED.value,
                Transaction.created_at >= to_utc(since),
            )
        )
        return Decimal(str(total or 0)).quantize(_CENTS)
