from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from tap_payments.domain.schemas import PaymentRequest
from tap_payments.infrastructure.cache.redis_client import RedisManager
from tap_payments.infrastructure.cache.user_locks import UserLockManager
from tap_payments.infrastructure.database.device_repository import DeviceRepository
from tap_payments.infrastructure.database.security_log_repository import (
    SecurityLogRepository,
)
from tap_payments.infrastructure.database.session import build_session_factory, init_db
from tap_payments.infrastructure.database.transaction_repository import (
    TransactionRepository,
)
from tap_payments.infrastructure.database.user_repository import UserRepository
from tap_payments.services.account_service import AccountService
from tap_payments.services.audit_trail import AuditTrail
from tap_payments.services.authorization_pipeline import AuthorizationPipeline
from tap_payments.services.credential_service import CredentialService
from tap_payments.services.device_registry import DeviceRegistry
from tap_payments.services.security_service import SecurityService

TEST_PIN = "4821"


class FakeClock:
    """Reloj controlable: mediodía local para no cruzar la medianoche."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class Stack:
    """Servicios armados sobre una misma sesión, como en un request."""

    def __init__(self, session, clock, locks, logs=None) -> None:
        self.session     = session
        self.users       = UserRepository(session)
        self.device_repo = DeviceRepository(session)
        self.ledger      = TransactionRepository(session)
        self.logs        = logs or SecurityLogRepository(session)
        self.audit       = AuditTrail(self.logs)
        self.credentials = CredentialService(self.users, self.audit, clock=clock)
        self.devices     = DeviceRegistry(self.device_repo, self.audit)
        self.security    = SecurityService(self.users, SecurityLogRepository(session))
        self.accounts    = AccountService(
            self.users, self.devices, self.ledger, self.security, clock=clock
        )
        self.pipeline    = AuthorizationPipeline(
            credentials = self.credentials,
            devices     = self.devices,
            ledger      = self.ledger,
            audit       = self.audit,
            locks       = locks,
            clock       = clock,
        )


@pytest.fixture
def clock():
    local_noon = datetime(2026, 3, 10, 12, 0).astimezone()
    return FakeClock(local_noon.astimezone(timezone.utc))


@pytest.fixture
def locks():
    # RedisManager sin conectar: el lock cae a asyncio.Lock local
    return UserLockManager(redis=RedisManager())


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass    = StaticPool,
        connect_args = {"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    async with build_session_factory(engine)() as session:
        yield session


@pytest.fixture
def stack(session, clock, locks):
    return Stack(session, clock, locks)


@pytest.fixture
async def user(stack):
    return await stack.credentials.enroll("ana@example.com", TEST_PIN)


@pytest.fixture
def make_payment():
    def _make(user_id, **overrides) -> PaymentRequest:
        data = {
            "user_id":           user_id,
            "device_identifier": "NFC-04A1B2C3",
            "amount":            Decimal("10.00"),
            "merchant_id":       "M1",
            "merchant_name":     "Café Central",
            "pin":               TEST_PIN,
        }
        data.update(overrides)
        return PaymentRequest(**data)
    return _make
