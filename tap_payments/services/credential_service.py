"""
credential_service.py
---------------------
Verificación de PIN con lockout, alta de usuarios y operaciones
administrativas sobre credenciales.

Reglas de lockout:
  - Cada PIN incorrecto incrementa failed_auth_attempts y registra un
    evento invalid_pin (medium).
  - Al llegar a MAX_FAILED_PIN_ATTEMPTS la cuenta pasa a 'locked' y se
    registra UN evento account_locked (critical).
  - Una cuenta 'locked' se rechaza ANTES de comparar el PIN: el intento
    falla aunque el PIN sea correcto y no vuelve a tocar el contador.
  - Un PIN correcto resetea el contador a 0.
  - No hay desbloqueo self-service: solo reset_lockout(), que es una
    operación administrativa fuera de banda.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from tap_payments.core import security
from tap_payments.core.config import settings
from tap_payments.core.exceptions import (
    AccountLockedException,
    EmailAlreadyExistsException,
    InvalidDailyLimitException,
    InvalidPinException,
    UserNotFoundException,
)
from tap_payments.domain.schemas import (
    SecurityEventType,
    Severity,
    UserRecord,
    UserStatus,
)
from tap_payments.infrastructure.database.user_repository import UserRepository
from tap_payments.services.audit_trail import AuditTrail

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialService:

    def __init__(
        self,
        users:        UserRepository,
        audit:        AuditTrail,
        clock:        Callable[[], datetime] = _utcnow,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.users        = users
        self.audit        = audit
        self.clock        = clock
        self.max_attempts = max_attempts or settings.MAX_FAILED_PIN_ATTEMPTS

    async def enroll(
        self,
        email:       str,
        pin:         str,
        daily_limit: Optional[Decimal] = None,
    ) -> UserRecord:
        if daily_limit is not None and daily_limit <= 0:
            raise InvalidDailyLimitException()
        # El UNIQUE de email sigue cubriendo altas simultáneas
        if await self.users.get_by_email(email) is not None:
            raise EmailAlreadyExistsException()

        user = await self.users.create(
            email       = email,
            pin_hash    = security.hash_pin(pin),
            daily_limit = daily_limit,
        )
        await self.audit.record(
            user.id,
            SecurityEventType.USER_SIGNUP,
            Severity.LOW,
            "Nueva cuenta creada",
        )
        logger.info(f"[Credentials] Usuario registrado id={user.id}")
        return user

    async def verify_pin(self, user_id: uuid.UUID, pin: str) -> UserRecord:
        """
        Paso 1 del pipeline. Retorna el usuario con el contador ya
        reseteado, o lanza InvalidPinException / AccountLockedException.
        """
        user = await self.users.get(user_id)

        if user is None:
            # user_id NULL: el id reclamado no existe y la FK lo rechazaría
            await self.audit.record(
                None,
                SecurityEventType.PIN_VERIFICATION_FAILED,
                Severity.MEDIUM,
                "Verificación de PIN para un usuario inexistente",
                {"claimed_user_id": str(user_id)},
            )
            raise InvalidPinException()

        if user.status == UserStatus.LOCKED:
            await self.audit.record(
                user.id,
                SecurityEventType.LOCKED_ACCOUNT_ATTEMPT,
                Severity.MEDIUM,
                "Intento de pago sobre una cuenta bloqueada",
            )
            raise AccountLockedException()

        if not security.verify_pin(pin, user.pin_hash):
            await self._register_failure(user)
            raise InvalidPinException()

        if user.failed_auth_attempts:
            await self.users.reset_failed_attempts(user.id)
            user = user.model_copy(
                update={"failed_auth_attempts": 0, "last_failed_auth": None}
            )
        return user

    async def _register_failure(self, user: UserRecord) -> None:
        attempts = await self.users.record_failed_pin(user.id, self.clock())
        if attempts is None:
            attempts = user.failed_auth_attempts + 1

        await self.audit.record(
            user.id,
            SecurityEventType.INVALID_PIN,
            Severity.MEDIUM,
            "PIN incorrecto",
            {"failed_attempts": attempts},
        )

        if attempts >= self.max_attempts and await self.users.lock_if_not_locked(user.id):
            logger.warning(
                f"[Credentials] Cuenta bloqueada user={user.id} intentos={attempts}"
            )
            await self.audit.record(
                user.id,
                SecurityEventType.ACCOUNT_LOCKED,
                Severity.CRITICAL,
                f"Cuenta bloqueada tras {attempts} intentos fallidos",
                {"failed_attempts": attempts},
            )

    async def reset_lockout(self, user_id: uuid.UUID, performed_by: str) -> UserRecord:
        """Desbloqueo administrativo: estado active y contador en 0."""
        user = await self.users.get(user_id)
        if user is None:
            raise UserNotFoundException()

        await self.users.reset_failed_attempts(user_id)
        await self.users.set_status(user_id, UserStatus.ACTIVE)
        await self.audit.record(
            user_id,
            SecurityEventType.ACCOUNT_UNLOCKED,
            Severity.MEDIUM,
            f"Cuenta desbloqueada por {performed_by}",
            {"previous_status": user.status.value, "performed_by": performed_by},
        )
        logger.info(f"[Credentials] Lockout reseteado user={user_id} por={performed_by}")
        return await self.users.get(user_id)

    async def change_daily_limit(self, user_id: uuid.UUID, limit: Decimal) -> UserRecord:
        if limit <= 0:
            raise InvalidDailyLimitException()
        if not await self.users.set_daily_limit(user_id, limit):
            raise UserNotFoundException()

        await self.audit.record(
            user_id,
            SecurityEventType.DAILY_LIMIT_CHANGED,
            Severity.LOW,
            f"Límite diario cambiado a {limit}",
            {"daily_limit": str(limit)},
        )
        return await self.users.get(user_id)
