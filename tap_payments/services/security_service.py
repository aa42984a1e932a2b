"""
security_service.py
-------------------
Vista de seguridad de la cuenta para el panel del usuario.

Security score: parte de 100 y resta
  -10 por cada PIN fallido pendiente
  -20 por cada evento critical de las últimas 24h
  -10 por cada evento high de las últimas 24h
con piso en 0.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List

from tap_payments.core.exceptions import UserNotFoundException
from tap_payments.domain.schemas import (
    AccountSecurityStatus,
    SecurityEventRecord,
    Severity,
)
from tap_payments.infrastructure.database.security_log_repository import (
    SecurityLogRepository,
)
from tap_payments.infrastructure.database.user_repository import UserRepository

RECENT_WINDOW            = timedelta(hours=24)
PENALTY_FAILED_ATTEMPT   = 10
PENALTY_CRITICAL_EVENT   = 20
PENALTY_HIGH_EVENT       = 10


def calculate_security_score(failed_attempts: int, critical: int, high: int) -> int:
    score = 100
    score -= failed_attempts * PENALTY_FAILED_ATTEMPT
    score -= critical * PENALTY_CRITICAL_EVENT
    score -= high * PENALTY_HIGH_EVENT
    return max(0, score)


class SecurityService:

    def __init__(
        self,
        users: UserRepository,
        logs:  SecurityLogRepository,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.users = users
        self.logs  = logs
        self.clock = clock

    async def get_security_logs(
        self, user_id: uuid.UUID, limit: int = 100
    ) -> List[SecurityEventRecord]:
        return await self.logs.find_by_user(user_id, limit=limit)

    async def get_account_status(self, user_id: uuid.UUID) -> AccountSecurityStatus:
        user = await self.users.get(user_id)
        if user is None:
            raise UserNotFoundException()

        recent   = await self.logs.find_by_user(user_id, since=self.clock() - RECENT_WINDOW)
        critical = sum(1 for e in recent if e.severity == Severity.CRITICAL)
        high     = sum(1 for e in recent if e.severity == Severity.HIGH)

        return AccountSecurityStatus(
            account_status         = user.status,
            failed_auth_attempts   = user.failed_auth_attempts,
            last_failed_auth       = user.last_failed_auth,
            recent_critical_events = critical,
            recent_high_events     = high,
            total_recent_events    = len(recent),
            security_score         = calculate_security_score(
                user.failed_auth_attempts, critical, high
            ),
        )
