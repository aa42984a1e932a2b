"""
security_log_repository.py
--------------------------
Audit log append-only. append() propaga StoreUnavailableException: quien
llama decide si la falla es tolerable y la reporta al canal operacional.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import select

from tap_payments.domain.models import SecurityLog
from tap_payments.domain.schemas import (
    SecurityEventRecord,
    SecurityEventType,
    Severity,
)
from tap_payments.infrastructure.database.base_repository import (
    BaseRepository,
    store_operation,
    to_utc,
)


class SecurityLogRepository(BaseRepository):

    @store_operation
    async def append(
        self,
        user_id:     Optional[uuid.UUID],
        event_type:  SecurityEventType,
        severity:    Severity,
        description: str,
        metadata:    Optional[dict[str, Any]] = None,
        at:          Optional[datetime] = None,
    ) -> SecurityEventRecord:
        log = SecurityLog(
            id             = uuid.uuid4(),
            user_id        = user_id,
            event_type     = event_type.value,
            severity       = severity.value,
            description    = description,
            event_metadata = metadata or {},
            created_at     = to_utc(at or datetime.now(timezone.utc)),
        )
        self.db.add(log)
        await self.db.commit()
        return SecurityEventRecord.model_validate(log)

    @store_operation
    async def find_by_user(
        self,
        user_id: uuid.UUID,
        since:   Optional[datetime] = None,
        limit:   Optional[int] = None,
    ) -> List[SecurityEventRecord]:
        """Eventos del usuario, el más reciente primero."""
        stmt = select(SecurityLog).where(SecurityLog.user_id == user_id)
        if since is not None:
            stmt = stmt.where(SecurityLog.created_at >= to_utc(since))
        stmt = stmt.order_by(SecurityLog.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.db.execute(stmt)
        return [SecurityEventRecord.model_validate(e) for e in result.scalars().all()]
