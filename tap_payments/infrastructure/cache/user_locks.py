"""
user_locks.py
-------------
Punto de serialización por usuario para el tramo
límite diario → riesgo → persistencia del pipeline.

Sin este lock dos autorizaciones simultáneas del mismo usuario leen el
mismo total diario, ambas pasan el límite y la suma lo excede.

  - Con Redis conectado: lock distribuido (SET NX PX) en
    lock:authorize:{user_id}, válido entre procesos/workers.
  - Sin Redis: asyncio.Lock por usuario, válido solo dentro del proceso.

Si el lock no se obtiene dentro de USER_LOCK_WAIT_SECONDS la solicitud
se abandona con StoreUnavailableException (sin reintento).
"""

import asyncio
import logging
import uuid
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.exceptions import LockError, RedisError

from tap_payments.core.config import settings
from tap_payments.core.exceptions import StoreUnavailableException
from tap_payments.core.logging_config import OPERATIONAL_LOGGER
from tap_payments.infrastructure.cache.redis_client import RedisManager, redis_manager

logger     = logging.getLogger(__name__)
ops_logger = logging.getLogger(OPERATIONAL_LOGGER)


class UserLockManager:

    KEY_PREFIX = "lock:authorize"

    def __init__(
        self,
        redis:        Optional[RedisManager] = None,
        timeout:      Optional[float] = None,
        wait_timeout: Optional[float] = None,
    ) -> None:
        self._redis        = redis or redis_manager
        self._timeout      = timeout or settings.USER_LOCK_TIMEOUT_SECONDS
        self._wait_timeout = wait_timeout or settings.USER_LOCK_WAIT_SECONDS
        # Se liberan solas cuando nadie retiene el lock del usuario
        self._local_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @asynccontextmanager
    async def hold(self, user_id: uuid.UUID) -> AsyncIterator[None]:
        if self._redis.is_connected:
            async with self._hold_distributed(str(user_id)):
                yield
        else:
            async with self._hold_local(str(user_id)):
                yield

    @asynccontextmanager
    async def _hold_local(self, key: str) -> AsyncIterator[None]:
        lock = self._local_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._local_locks[key] = lock

        try:
            await asyncio.wait_for(lock.acquire(), timeout=self._wait_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[UserLock] Timeout esperando lock local user={key}")
            raise StoreUnavailableException()

        try:
            yield
        finally:
            lock.release()

    @asynccontextmanager
    async def _hold_distributed(self, key: str) -> AsyncIterator[None]:
        try:
            lock = self._redis.lock(
                f"{self.KEY_PREFIX}:{key}",
                timeout          = self._timeout,
                blocking_timeout = self._wait_timeout,
            )
            acquired = await lock.acquire()
        except RedisError as exc:
            ops_logger.error(f"[UserLock] Redis no disponible para user={key}: {exc}")
            raise StoreUnavailableException() from exc

        if not acquired:
            logger.warning(f"[UserLock] Timeout esperando lock Redis user={key}")
            raise StoreUnavailableException()

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as exc:
                # El TTL expiró antes de terminar: otro request pudo entrar
                ops_logger.error(
                    f"[UserLock] Lock de user={key} expiró antes de liberarse: {exc}"
                )
            except RedisError as exc:
                ops_logger.error(f"[UserLock] Error liberando lock user={key}: {exc}")
