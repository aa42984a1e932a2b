import asyncio
import uuid

import pytest
from redis.exceptions import ConnectionError, LockError

from tap_payments.core.exceptions import StoreUnavailableException
from tap_payments.infrastructure.cache.redis_client import RedisManager
from tap_payments.infrastructure.cache.user_locks import UserLockManager


class FakeRedisLock:

    def __init__(self, acquired=True, release_error=None):
        self.acquired      = acquired
        self.release_error = release_error
        self.released      = False

    async def acquire(self):
        return self.acquired

    async def release(self):
        if self.release_error:
            raise self.release_error
        self.released = True


class ConnectedRedis(RedisManager):
    """RedisManager que se declara conectado y entrega locks falsos."""

    def __init__(self, lock=None, error=None):
        super().__init__()
        self._lock  = lock or FakeRedisLock()
        self._error = error
        self.names  = []

    @property
    def is_connected(self) -> bool:
        return True

    def lock(self, name, timeout, blocking_timeout):
        if self._error:
            raise self._error
        self.names.append(name)
        return self._lock


class TestLocalLocks:
    """Lock en proceso cuando no hay Redis"""

    async def test_same_user_is_serialized(self):
        locks   = UserLockManager(redis=RedisManager())
        user_id = uuid.uuid4()
        trace   = []

        async def critical(tag):
            async with locks.hold(user_id):
                trace.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                trace.append(f"{tag}-out")

        await asyncio.gather(critical("a"), critical("b"))

        assert trace in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    async def test_different_users_do_not_block(self):
        locks = UserLockManager(redis=RedisManager(), wait_timeout=0.05)

        async with locks.hold(uuid.uuid4()):
            async with locks.hold(uuid.uuid4()):
                pass

    async def test_wait_timeout_raises_store_unavailable(self):
        locks   = UserLockManager(redis=RedisManager(), wait_timeout=0.05)
        user_id = uuid.uuid4()

        async with locks.hold(user_id):
            with pytest.raises(StoreUnavailableException):
                async with locks.hold(user_id):
                    pass


class TestDistributedLocks:
    """Lock en Redis cuando hay conexión"""

    async def test_uses_per_user_key_and_releases(self):
        fake    = FakeRedisLock()
        redis   = ConnectedRedis(lock=fake)
        user_id = uuid.uuid4()

        async with UserLockManager(redis=redis).hold(user_id):
            assert not fake.released

        assert redis.names == [f"lock:authorize:{user_id}"]
        assert fake.released

    async def test_not_acquired_raises_store_unavailable(self):
        redis = ConnectedRedis(lock=FakeRedisLock(acquired=False))

        with pytest.raises(StoreUnavailableException):
            async with UserLockManager(redis=redis).hold(uuid.uuid4()):
                pass

    async def test_redis_error_raises_store_unavailable(self):
        redis = ConnectedRedis(error=ConnectionError("sin conexión"))

        with pytest.raises(StoreUnavailableException):
            async with UserLockManager(redis=redis).hold(uuid.uuid4()):
                pass

    async def test_expired_lock_on_release_does_not_fail_request(self):
        redis = ConnectedRedis(lock=FakeRedisLock(release_error=LockError("expirado")))

        async with UserLockManager(redis=redis).hold(uuid.uuid4()):
            pass
