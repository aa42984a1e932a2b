import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from tap_payments.core.exceptions import (
    AccountInactiveException,
    AccountLockedException,
    EmailAlreadyExistsException,
    InvalidDailyLimitException,
    InvalidPinException,
    UserNotFoundException,
)
from tap_payments.domain.models import SecurityLog
from tap_payments.domain.schemas import SecurityEventType, Severity, UserStatus
from tap_payments.infrastructure.database.user_repository import UserRepository
from tap_payments.services.credential_service import CredentialService

from conftest import TEST_PIN


def events_of(events, event_type):
    return [e for e in events if e.event_type == event_type.value]


class RecordingUserRepository(UserRepository):
    """Registra cada alta; `hide_existing` simula un alta concurrente que aún no se ve."""

    def __init__(self, session, hide_existing=False):
        super().__init__(session)
        self.hide_existing = hide_existing
        self.created       = []

    async def get_by_email(self, email):
        if self.hide_existing:
            return None
        return await super().get_by_email(email)

    async def create(self, email, pin_hash, daily_limit=None):
        self.created.append(email)
        return await super().create(email=email, pin_hash=pin_hash, daily_limit=daily_limit)


class TestEnroll:
    """Alta de usuarios"""

    async def test_enroll_creates_active_user_with_default_limit(self, stack, user):
        assert user.status == UserStatus.ACTIVE
        assert user.daily_limit == Decimal("1000.00")
        assert user.failed_auth_attempts == 0
        assert user.pin_hash != TEST_PIN

        events = await stack.logs.find_by_user(user.id)
        assert [e.event_type for e in events] == [SecurityEventType.USER_SIGNUP.value]

    async def test_duplicate_email_is_rejected_case_insensitive(self, stack, user):
        with pytest.raises(EmailAlreadyExistsException):
            await stack.credentials.enroll("ANA@example.com", "9137")

    async def test_duplicate_email_is_rejected_before_insert(self, stack, user):
        users       = RecordingUserRepository(stack.session)
        credentials = CredentialService(users, stack.audit)

        with pytest.raises(EmailAlreadyExistsException):
            await credentials.enroll("ana@example.com", "9137")

        assert users.created == []
        events = await stack.logs.find_by_user(user.id)
        assert len(events_of(events, SecurityEventType.USER_SIGNUP)) == 1

    async def test_concurrent_duplicate_is_caught_by_unique_email(self, stack, user):
        users       = RecordingUserRepository(stack.session, hide_existing=True)
        credentials = CredentialService(users, stack.audit)

        with pytest.raises(EmailAlreadyExistsException):
            await credentials.enroll("ana@example.com", "9137")

        assert users.created == ["ana@example.com"]

    async def test_non_positive_daily_limit_is_rejected(self, stack):
        with pytest.raises(InvalidDailyLimitException):
            await stack.credentials.enroll("bruno@example.com", "7306", Decimal("-5"))

        assert await stack.users.get_by_email("bruno@example.com") is None


class TestVerifyPin:
    """Verificación de PIN y lockout"""

    async def test_correct_pin_returns_user(self, stack, user):
        result = await stack.credentials.verify_pin(user.id, TEST_PIN)

        assert result.id == user.id

    async def test_wrong_pin_increments_counter(self, stack, user, clock):
        with pytest.raises(InvalidPinException):
            await stack.credentials.verify_pin(user.id, "0000")

        stored = await stack.users.get(user.id)
        assert stored.failed_auth_attempts == 1
        assert stored.last_failed_auth == clock()

        events = await stack.logs.find_by_user(user.id)
        invalid = events_of(events, SecurityEventType.INVALID_PIN)
        assert len(invalid) == 1
        assert invalid[0].severity == Severity.MEDIUM

    async def test_fifth_failure_locks_account_once(self, stack, user):
        for _ in range(5):
            with pytest.raises(InvalidPinException):
                await stack.credentials.verify_pin(user.id, "0000")

        stored = await stack.users.get(user.id)
        assert stored.status == UserStatus.LOCKED
        assert stored.failed_auth_attempts == 5

        events = await stack.logs.find_by_user(user.id)
        assert len(events_of(events, SecurityEventType.INVALID_PIN)) == 5
        locked = events_of(events, SecurityEventType.ACCOUNT_LOCKED)
        assert len(locked) == 1
        assert locked[0].severity == Severity.CRITICAL

    async def test_locked_account_rejects_correct_pin(self, stack, user):
        for _ in range(5):
            with pytest.raises(InvalidPinException):
                await stack.credentials.verify_pin(user.id, "0000")

        with pytest.raises(AccountLockedException) as exc_info:
            await stack.credentials.verify_pin(user.id, TEST_PIN)

        # Un bloqueo también es una cuenta no activa para quien lo capture
        assert isinstance(exc_info.value, AccountInactiveException)

        stored = await stack.users.get(user.id)
        assert stored.failed_auth_attempts == 5
        assert stored.status == UserStatus.LOCKED

        events = await stack.logs.find_by_user(user.id)
        assert len(events_of(events, SecurityEventType.ACCOUNT_LOCKED)) == 1
        assert len(events_of(events, SecurityEventType.LOCKED_ACCOUNT_ATTEMPT)) == 1

    async def test_success_resets_counter(self, stack, user):
        for _ in range(2):
            with pytest.raises(InvalidPinException):
                await stack.credentials.verify_pin(user.id, "0000")

        result = await stack.credentials.verify_pin(user.id, TEST_PIN)

        assert result.failed_auth_attempts == 0
        stored = await stack.users.get(user.id)
        assert stored.failed_auth_attempts == 0
        assert stored.last_failed_auth is None

    async def test_unknown_user_is_logged_without_user_id(self, stack, session):
        claimed = uuid.uuid4()

        with pytest.raises(InvalidPinException):
            await stack.credentials.verify_pin(claimed, TEST_PIN)

        result = await session.execute(
            select(SecurityLog).where(SecurityLog.user_id.is_(None))
        )
        logs = result.scalars().all()
        assert len(logs) == 1
        assert logs[0].event_type == SecurityEventType.PIN_VERIFICATION_FAILED.value
        assert logs[0].event_metadata == {"claimed_user_id": str(claimed)}


class TestAdministrativeOperations:
    """Desbloqueo y cambio de límite diario"""

    async def test_reset_lockout_reactivates_account(self, stack, user):
        for _ in range(5):
            with pytest.raises(InvalidPinException):
                await stack.credentials.verify_pin(user.id, "0000")

        result = await stack.credentials.reset_lockout(user.id, performed_by="soporte")

        assert result.status == UserStatus.ACTIVE
        assert result.failed_auth_attempts == 0
        assert (await stack.credentials.verify_pin(user.id, TEST_PIN)).id == user.id

        events = await stack.logs.find_by_user(user.id)
        unlocked = events_of(events, SecurityEventType.ACCOUNT_UNLOCKED)
        assert len(unlocked) == 1
        assert unlocked[0].metadata["previous_status"] == "locked"

    async def test_reset_lockout_unknown_user(self, stack):
        with pytest.raises(UserNotFoundException):
            await stack.credentials.reset_lockout(uuid.uuid4(), performed_by="soporte")

    async def test_change_daily_limit(self, stack, user):
        result = await stack.credentials.change_daily_limit(user.id, Decimal("250.00"))

        assert result.daily_limit == Decimal("250.00")
        events = await stack.logs.find_by_user(user.id)
        assert len(events_of(events, SecurityEventType.DAILY_LIMIT_CHANGED)) == 1

    async def test_change_daily_limit_rejects_non_positive(self, stack, user):
        with pytest.raises(InvalidDailyLimitException) as exc:
            await stack.credentials.change_daily_limit(user.id, Decimal("0"))

        assert exc.value.status_code == 422
        assert (await stack.users.get(user.id)).daily_limit == Decimal("1000.00")
        events = await stack.logs.find_by_user(user.id)
        assert events_of(events, SecurityEventType.DAILY_LIMIT_CHANGED) == []
