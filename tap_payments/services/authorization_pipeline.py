"""
authorization_pipeline.py
-------------------------
Orquestador de la autorización de pagos por contacto.

Flujo (orden estricto, cada falla corta el resto):
  1. PIN               → CredentialService.verify_pin (lockout a los 5 fallos)
  2. Estado de cuenta  → solo 'active' continúa
  3. Dispositivo       → DeviceRegistry.resolve_for_payment (auto-registro)
  ── lock por usuario ─────────────────────────────────────────────────
  4. Límite diario     → aprobado hoy + monto <= límite del usuario
  5. Riesgo            → RiskEngine sobre los últimos 5 minutos
  6. Decisión          → >=80 declined | 50-79 pending | <50 approved
  7. Persistencia      → Transaction inmutable con firma sha256
  ── fin del lock ─────────────────────────────────────────────────────
  8. Auditoría         → transaction_processed (high si score > 70)
  9. last_used         → solo si approved

Los pasos 1-4 lanzan AuthorizationError y NO persisten transacción.
Un score alto no es un error: produce una transacción 'declined'.

Los pasos 8 y 9 son best-effort: la transacción ya está persistida y una
falla ahí se reporta al canal operacional, no al usuario.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Tuple

from tap_payments.core import security
from tap_payments.core.config import settings
from tap_payments.core.exceptions import (
    AccountInactiveException,
    DailyLimitExceededException,
    StoreUnavailableException,
)
from tap_payments.core.logging_config import OPERATIONAL_LOGGER
from tap_payments.domain.schemas import (
    DeviceRecord,
    PaymentRequest,
    SecurityEventType,
    Severity,
    TransactionRecord,
    TransactionStatus,
    UserRecord,
    UserStatus,
)
from tap_payments.infrastructure.cache.user_locks import UserLockManager
from tap_payments.infrastructure.database.transaction_repository import (
    TransactionRepository,
)
from tap_payments.services.audit_trail import AuditTrail
from tap_payments.services.credential_service import CredentialService
from tap_payments.services.device_registry import DeviceRegistry
from tap_payments.services.risk_engine import (
    VELOCITY_WINDOW,
    RiskAssessment,
    RiskCandidate,
    RiskEngine,
    risk_engine,
)

logger     = logging.getLogger(__name__)
ops_logger = logging.getLogger(OPERATIONAL_LOGGER)

DECLINE_THRESHOLD     = 80
REVIEW_THRESHOLD      = 50
HIGH_SEVERITY_ABOVE   = 70
HIGH_RISK_REASON      = "High risk score"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(now: datetime) -> datetime:
    """Medianoche del día en curso según la zona horaria del servidor."""
    local_now = now.astimezone()
    return local_now.replace(hour=0, minute=0, second=0, microsecond=0)


def determine_status(risk_score: int) -> Tuple[TransactionStatus, Optional[str]]:
    if risk_score >= DECLINE_THRESHOLD:
        return TransactionStatus.DECLINED, HIGH_RISK_REASON
    if risk_score >= REVIEW_THRESHOLD:
        return TransactionStatus.PENDING, None
    return TransactionStatus.APPROVED, None


class AuthorizationPipeline:

    def __init__(
        self,
        credentials: CredentialService,
        devices:     DeviceRegistry,
        ledger:      TransactionRepository,
        audit:       AuditTrail,
        locks:       UserLockManager,
        risk:        RiskEngine = risk_engine,
        clock:       Callable[[], datetime] = _utcnow,
    ) -> None:
        self.credentials = credentials
        self.devices     = devices
        self.ledger      = ledger
        self.audit       = audit
        self.locks       = locks
        self.risk        = risk
        self.clock       = clock

    async def authorize(self, request: PaymentRequest) -> TransactionRecord:
        # ── 1. PIN ────────────────────────────────────────────────────
        user = await self.credentials.verify_pin(request.user_id, request.pin)

        # ── 2. Estado de la cuenta ────────────────────────────────────
        if user.status != UserStatus.ACTIVE:
            logger.info(
                f"[Pipeline] Cuenta no activa user={user.id} status={user.status.value}"
            )
            raise AccountInactiveException()

        # ── 3. Dispositivo ────────────────────────────────────────────
        device = await self.devices.resolve_for_payment(user.id, request.device_identifier)

        # ── 4-7. Serializado por usuario ──────────────────────────────
        async with self.locks.hold(user.id):
            now            = self.clock()
            approved_today = await self._check_daily_limit(user, request.amount, now)

            history = await self.ledger.find_by_user(
                user.id, since=now - VELOCITY_WINDOW
            )
            assessment = self.risk.assess(
                RiskCandidate(amount=request.amount, merchant_id=request.merchant_id),
                history,
                approved_today_total=approved_today,
                now=now,
            )

            record = self._build_record(request, user, device, assessment, now)
            await self.ledger.insert(record)

        logger.info(
            f"[Pipeline] txn={record.id} user={user.id} amount={record.amount} "
            f"score={record.risk_score} status={record.status.value}"
        )

        # ── 8. Auditoría ──────────────────────────────────────────────
        await self.audit.record(
            user.id,
            SecurityEventType.TRANSACTION_PROCESSED,
            Severity.HIGH if record.risk_score > HIGH_SEVERITY_ABOVE else Severity.LOW,
            f"Transacción {record.status.value}: {record.amount} {record.currency} "
            f"en {record.merchant_name}",
            {
                "transaction_id": str(record.id),
                "device_id":      str(device.id),
                "status":         record.status.value,
                "risk_score":     record.risk_score,
                "reason_codes":   assessment.reason_codes,
            },
        )

        # ── 9. last_used ──────────────────────────────────────────────
        if record.status == TransactionStatus.APPROVED:
            try:
                await self.devices.touch_last_used(device.id, now)
            except StoreUnavailableException as exc:
                ops_logger.error(
                    f"[Pipeline] last_used no actualizado device={device.id} "
                    f"txn={record.id}",
                    exc_info=exc,
                )

        return record

    async def _check_daily_limit(
        self, user: UserRecord, amount: Decimal, now: datetime
    ) -> Decimal:
        approved_today = await self.ledger.approved_total_since(user.id, start_of_day(now))
        daily_limit    = user.daily_limit or settings.DEFAULT_DAILY_LIMIT

        if approved_today + amount > daily_limit:
            logger.info(
                f"[Pipeline] Límite diario excedido user={user.id} "
                f"hoy={approved_today} monto={amount} límite={daily_limit}"
            )
            raise DailyLimitExceededException()
        return approved_today

    @staticmethod
    def _build_record(
        request:    PaymentRequest,
        user:       UserRecord,
        device:     DeviceRecord,
        assessment: RiskAssessment,
        now:        datetime,
    ) -> TransactionRecord:
        status, decline_reason = determine_status(assessment.score)
        created_at = now.astimezone(timezone.utc)

        return TransactionRecord(
            id             = uuid.uuid4(),
            user_id        = user.id,
            device_id      = device.id,
            amount         = request.amount,
            currency       = (request.currency or settings.DEFAULT_CURRENCY).upper(),
            merchant_id    = request.merchant_id,
            merchant_name  = request.merchant_name,
            status         = status,
            risk_score     = assessment.score,
            decline_reason = decline_reason,
            signature      = security.sign_transaction(
                user.id, request.amount, request.merchant_id, created_at
            ),
            created_at     = created_at,
        )


def verify_signature(record: TransactionRecord) -> bool:
    return security.verify_transaction_signature(
        record.signature,
        record.user_id,
        record.amount,
        record.merchant_id,
        record.created_at,
    )
