"""
schemas.py
----------
Schemas Pydantic para requests, responses y los registros que los
repositorios devuelven al resto del sistema.

Los registros (*Record) son inmutables (frozen=True): el pipeline nunca
modifica un objeto leído del store, escribe uno nuevo.
"""

import re
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite devuelve fechas sin zona; se guardan siempre en UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ─────────────────────────────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────────────────────────────

class UserStatus(str, Enum):
    ACTIVE    = "active"
    SUSPENDED = "suspended"
    LOCKED    = "locked"


class TransactionStatus(str, Enum):
    PENDING  = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class Severity(str, Enum):
    LOW      = "low"
    MEDIUM   = "medium"
    HIGH     = "high"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    USER_SIGNUP             = "user_signup"
    INVALID_PIN             = "invalid_pin"
    PIN_VERIFICATION_FAILED = "pin_verification_failed"
    ACCOUNT_LOCKED          = "account_locked"
    LOCKED_ACCOUNT_ATTEMPT  = "locked_account_attempt"
    ACCOUNT_UNLOCKED        = "account_unlocked"
    DAILY_LIMIT_CHANGED     = "daily_limit_changed"
    DEVICE_REGISTERED       = "nfc_device_registered"
    DEVICE_DEACTIVATED      = "nfc_device_deactivated"
    TRANSACTION_PROCESSED   = "transaction_processed"


# ─────────────────────────────────────────────────────────────────────
# REGISTROS DEVUELTOS POR LOS REPOSITORIOS
# ─────────────────────────────────────────────────────────────────────

class UserRecord(BaseModel):
    id:                   uuid.UUID
    email:                str
    pin_hash:             Optional[str] = None
    daily_limit:          Optional[Decimal] = None
    status:               UserStatus
    failed_auth_attempts: int = 0
    last_failed_auth:     Optional[datetime] = None
    created_at:           Optional[datetime] = None

    @field_validator("last_failed_auth", "created_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    model_config = ConfigDict(from_attributes=True, frozen=True)


class DeviceRecord(BaseModel):
    id:          uuid.UUID
    user_id:     uuid.UUID
    device_uid:  str
    device_name: str
    is_active:   bool
    last_used:   Optional[datetime] = None
    created_at:  Optional[datetime] = None

    @field_validator("last_used", "created_at")
    @classmethod
    def to_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    model_config = ConfigDict(from_attributes=True, frozen=True)


class TransactionRecord(BaseModel):
    id:             uuid.UUID
    user_id:        uuid.UUID
    device_id:      uuid.UUID
    amount:         Decimal = Field(..., gt=0)
    currency:       str
    merchant_id:    str
    merchant_name:  str
    status:         TransactionStatus
    risk_score:     int = Field(..., ge=0, le=100)
    decline_reason: Optional[str] = None
    signature:      str
    created_at:     datetime

    @field_validator("created_at")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    model_config = ConfigDict(from_attributes=True, frozen=True)


class SecurityEventRecord(BaseModel):
    id:          uuid.UUID
    user_id:     Optional[uuid.UUID] = None
    event_type:  str
    severity:    Severity
    description: str
    metadata:    dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")
    created_at:  datetime

    @field_validator("created_at")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    model_config = ConfigDict(from_attributes=True, frozen=True, populate_by_name=True)


# ─────────────────────────────────────────────────────────────────────
# AUTORIZACIÓN DE PAGOS
# ─────────────────────────────────────────────────────────────────────

def _pin_digits(v: str) -> str:
    if not v.isdigit():
        raise ValueError("El PIN solo debe contener números.")
    return v


class PaymentRequest(BaseModel):
    """
    Entrada del pipeline. user_id es la identidad YA autenticada:
    la capa de presentación la pasa explícitamente, el pipeline no
    consulta ninguna sesión global.
    """
    user_id:           uuid.UUID
    device_identifier: str             = Field(..., min_length=1, max_length=255)
    amount:            Decimal         = Field(..., gt=0, max_digits=12, decimal_places=2)
    merchant_id:       str             = Field(..., min_length=1, max_length=100)
    merchant_name:     str             = Field(..., min_length=1, max_length=255)
    currency:          Optional[str]   = Field(None, min_length=3, max_length=3)
    pin:               str             = Field(..., min_length=4, max_length=12, repr=False)

    @field_validator("pin")
    @classmethod
    def pin_numeric(cls, v: str) -> str:
        return _pin_digits(v)

    model_config = ConfigDict(extra="forbid")


class TapPaymentBody(BaseModel):
    """Body HTTP de /authorize — el user_id sale del JWT, no del cliente."""
    device_identifier: str           = Field(..., min_length=1, max_length=255)
    amount:            Decimal       = Field(..., gt=0, max_digits=12, decimal_places=2)
    merchant_id:       str           = Field(..., min_length=1, max_length=100)
    merchant_name:     str           = Field(..., min_length=1, max_length=255)
    currency:          Optional[str] = Field(None, min_length=3, max_length=3)
    pin:               str           = Field(..., min_length=4, max_length=12, repr=False)

    @field_validator("pin")
    @classmethod
    def pin_numeric(cls, v: str) -> str:
        return _pin_digits(v)

    model_config = ConfigDict(extra="forbid")


class ScoreEntry(BaseModel):
    """Explicación de una regla de riesgo que se activó."""
    code:        str
    points:      int
    description: str


class SignatureVerification(BaseModel):
    transaction_id: uuid.UUID
    valid:          bool


# ─────────────────────────────────────────────────────────────────────
# USUARIOS
# ─────────────────────────────────────────────────────────────────────

class EnrollRequest(BaseModel):
    email:       EmailStr
    pin:         str               = Field(..., min_length=4, max_length=12)
    daily_limit: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)

    @field_validator("pin")
    @classmethod
    def pin_not_trivial(cls, v: str) -> str:
        v = _pin_digits(v)
        if re.fullmatch(r"(\d)\1+", v):
            raise ValueError("El PIN no puede ser un solo dígito repetido.")
        return v

    model_config = ConfigDict(extra="forbid")


class EnrollResponse(BaseModel):
    user_id:      uuid.UUID
    email:        str
    access_token: str
    token_type:   str = "bearer"
    expires_in:   int


class CurrentUser(BaseModel):
    """Identidad extraída del JWT. Se inyecta con Depends(get_current_user)."""
    user_id: uuid.UUID
    email:   str


# ─────────────────────────────────────────────────────────────────────
# DISPOSITIVOS
# ─────────────────────────────────────────────────────────────────────

class DeviceRegisterRequest(BaseModel):
    device_identifier: str = Field(..., min_length=1, max_length=255)
    device_name:       str = Field(..., min_length=1, max_length=100)

    model_config = ConfigDict(extra="forbid")


# ─────────────────────────────────────────────────────────────────────
# SEGURIDAD / PANEL
# ─────────────────────────────────────────────────────────────────────

class AccountSecurityStatus(BaseModel):
    account_status:         UserStatus
    failed_auth_attempts:   int
    last_failed_auth:       Optional[datetime] = None
    recent_critical_events: int
    recent_high_events:     int
    total_recent_events:    int
    security_score:         int = Field(..., ge=0, le=100)


class AccountSnapshot(BaseModel):
    """Resultado de refresh(): todo lo que el panel necesita en una llamada."""
    user_id:      uuid.UUID
    email:        str
    status:       UserStatus
    daily_limit:  Decimal
    devices:      List[DeviceRecord]
    transactions: List[TransactionRecord]
    security:     AccountSecurityStatus
    refreshed_at: datetime
