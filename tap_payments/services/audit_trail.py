"""
audit_trail.py
--------------
Emisión best-effort de eventos de seguridad.

Si la bitácora no está disponible, la decisión ya tomada (transacción
persistida, lockout aplicado) NO se revierte. La falla tampoco se
traga: se reporta al canal operacional con el evento completo para que
pueda reconstruirse, y nunca llega al resultado que ve el usuario.
"""

import logging
import uuid
from typing import Any, Optional

from tap_payments.core.exceptions import StoreUnavailableException
from tap_payments.core.logging_config import OPERATIONAL_LOGGER
from tap_payments.domain.schemas import (
    SecurityEventRecord,
    SecurityEventType,
    Severity,
)
from tap_payments.infrastructure.database.security_log_repository import (
    SecurityLogRepository,
)

logger     = logging.getLogger(__name__)
ops_logger = logging.getLogger(OPERATIONAL_LOGGER)


class AuditTrail:

    def __init__(self, logs: SecurityLogRepository) -> None:
        self.logs = logs

    async def record(
        self,
        user_id:     Optional[uuid.UUID],
        event_type:  SecurityEventType,
        severity:    Severity,
        description: str,
        metadata:    Optional[dict[str, Any]] = None,
    ) -> Optional[SecurityEventRecord]:
        """Retorna el evento persistido, o None si la bitácora falló."""
        try:
            event = await self.logs.append(
                user_id     = user_id,
                event_type  = event_type,
                severity    = severity,
                description = description,
                metadata    = metadata,
            )
        except StoreUnavailableException as exc:
            ops_logger.error(
                f"[AuditTrail] Evento NO persistido "
                f"type={event_type.value} severity={severity.value} "
                f"user={user_id} description={description!r} "
                f"metadata={metadata or {}}",
                exc_info=exc,
            )
            return None

        if severity in (Severity.HIGH, Severity.CRITICAL):
            logger.warning(
                f"[AuditTrail] {event_type.value} ({severity.value}) "
                f"user={user_id}: {description}"
            )
        return event
