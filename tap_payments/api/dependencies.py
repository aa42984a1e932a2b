"""
dependencies.py
---------------
Dependencias reutilizables para inyectar en los routers de FastAPI.

get_db_session:
  Una sesión por request, compartida por todos los servicios del request.

get_current_user:
  Lee el JWT del header Authorization y retorna la identidad. Los
  routers pasan current_user.user_id EXPLÍCITAMENTE a los servicios:
  ningún servicio consulta una sesión global.

get_*_service / get_pipeline:
  Construyen los servicios sobre los repositorios del request.
"""

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from tap_payments.core import security
from tap_payments.core.exceptions import InvalidTokenException
from tap_payments.domain.schemas import CurrentUser
from tap_payments.infrastructure.cache.user_locks import UserLockManager
from tap_payments.infrastructure.database.device_repository import DeviceRepository
from tap_payments.infrastructure.database.security_log_repository import (
    SecurityLogRepository,
)
from tap_payments.infrastructure.database.session import AsyncSessionLocal
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

# Un solo lock manager por proceso: los asyncio.Lock locales deben compartirse
user_lock_manager = UserLockManager()


# ── Sesión de base de datos ───────────────────────────────────────────

async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    session = AsyncSessionLocal()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


# ── Autenticación JWT ─────────────────────────────────────────────────

bearer_scheme = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> CurrentUser:
    """Lanza HTTP 401 si el token es inválido o expiró."""
    try:
        payload = security.decode_access_token(credentials.credentials)
        return CurrentUser(user_id=payload["sub"], email=payload.get("email", ""))
    except (InvalidTokenException, ValueError) as e:
        detail = e.message if isinstance(e, InvalidTokenException) else "Token inválido."
        raise HTTPException(
            status_code = status.HTTP_401_UNAUTHORIZED,
            detail      = detail,
            headers     = {"WWW-Authenticate": "Bearer"},
        )


# ── Servicios ─────────────────────────────────────────────────────────

def get_audit_trail(db: AsyncSession = Depends(get_db_session)) -> AuditTrail:
    return AuditTrail(SecurityLogRepository(db))


def get_credential_service(
    db:    AsyncSession = Depends(get_db_session),
    audit: AuditTrail   = Depends(get_audit_trail),
) -> CredentialService:
    return CredentialService(UserRepository(db), audit)


def get_device_registry(
    db:    AsyncSession = Depends(get_db_session),
    audit: AuditTrail   = Depends(get_audit_trail),
) -> DeviceRegistry:
    return DeviceRegistry(DeviceRepository(db), audit)


def get_security_service(db: AsyncSession = Depends(get_db_session)) -> SecurityService:
    return SecurityService(UserRepository(db), SecurityLogRepository(db))


def get_account_service(
    db:       AsyncSession    = Depends(get_db_session),
    devices:  DeviceRegistry  = Depends(get_device_registry),
    security: SecurityService = Depends(get_security_service),
) -> AccountService:
    return AccountService(UserRepository(db), devices, TransactionRepository(db), security)


def get_pipeline(
    db:          AsyncSession      = Depends(get_db_session),
    credentials: CredentialService = Depends(get_credential_service),
    devices:     DeviceRegistry    = Depends(get_device_registry),
    audit:       AuditTrail        = Depends(get_audit_trail),
) -> AuthorizationPipeline:
    return AuthorizationPipeline(
        credentials = credentials,
        devices     = devices,
        ledger      = TransactionRepository(db),
        audit       = audit,
        locks       = user_lock_manager,
    )
