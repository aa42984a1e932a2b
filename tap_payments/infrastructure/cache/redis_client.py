"""
redis_client.py
---------------
Conexión a Redis para coordinar workers.

El sistema de pagos no guarda estado en Redis: solo lo usa como backend
del lock por usuario del pipeline (ver user_locks.py). Por eso Redis es
opcional. Sin REDIS_URL la app arranca igual y los locks son locales al
proceso, lo cual solo es correcto con un único worker.

Si REDIS_URL está configurado el arranque falla cuando Redis no
responde: correr varios workers con locks locales permitiría exceder
el límite diario.
"""

import asyncio
import logging

import redis.asyncio as redis
from redis.asyncio.lock import Lock
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import BusyLoadingError, ConnectionError, RedisError, TimeoutError

logger = logging.getLogger(__name__)

PING_TIMEOUT_SECONDS = 2.0


class RedisManager:

    def __init__(self) -> None:
        self.client: redis.Redis | None = None
        self._ready = False

    @property
    def is_connected(self) -> bool:
        return self._ready and self.client is not None

    async def connect(self, url: str) -> None:
        """Crea el pool y exige un PING exitoso antes de declararse listo."""
        logger.info("[Redis] Conectando backend de locks ...")
        self.client = redis.Redis.from_url(
            url,
            max_connections        = 50,
            socket_timeout         = 1.0,
            socket_connect_timeout = 2.0,
            health_check_interval  = 30,
            retry                  = Retry(ExponentialBackoff(cap=0.5, base=0.05), 3),
            retry_on_error         = [ConnectionError, TimeoutError, BusyLoadingError],
        )
        if not await self.ping():
            await self.disconnect()
            raise ConnectionError("Redis no respondió al PING de arranque")

        self._ready = True
        logger.info("[Redis] Backend de locks listo")

    async def disconnect(self) -> None:
        client, self.client, self._ready = self.client, None, False
        if client is None:
            return
        try:
            await client.aclose()
        except RedisError as exc:
            logger.error(f"[Redis] Cierre con error: {exc}")

    async def ping(self) -> bool:
        """True si Redis responde dentro de PING_TIMEOUT_SECONDS. Nunca lanza."""
        if self.client is None:
            return False
        try:
            return bool(
                await asyncio.wait_for(self.client.ping(), timeout=PING_TIMEOUT_SECONDS)
            )
        except asyncio.TimeoutError:
            logger.error("[Redis] PING sin respuesta")
        except RedisError as exc:
            logger.error(f"[Redis] PING falló: {exc}")
        return False

    def lock(self, name: str, timeout: float, blocking_timeout: float) -> Lock:
        """Lock con TTL: si el dueño muere, se libera solo tras `timeout` segundos."""
        if self.client is None:
            raise ConnectionError("Redis no está conectado")
        return self.client.lock(name, timeout=timeout, blocking_timeout=blocking_timeout)


redis_manager = RedisManager()
