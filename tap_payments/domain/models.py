"""
models.py
---------
Modelos SQLAlchemy del sistema de pagos por contacto.

Tablas:
  - User         → identidad, digest del PIN, límite diario, lockout
  - NfcDevice    → dispositivo de pago asociado a un único dueño
  - Transaction  → registro inmutable de cada autorización
  - SecurityLog  → bitácora append-only de eventos de seguridad

Principios de diseño:
  - Todos los IDs son UUID v4 → no secuenciales, no predecibles
  - created_at siempre con timezone=True → auditoría correcta
  - Montos como Numeric(12, 2) → sin errores de float
  - Tipos portables (Uuid, JSON) → mismo esquema en PostgreSQL y SQLite
  - Transaction y SecurityLog nunca se actualizan ni se borran, solo INSERT
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_JSON = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


# ─────────────────────────────────────────────────────────────────────
# USUARIOS
# Credenciales y configuración de gasto. El pipeline lee de aquí el
# digest del PIN, el estado y el límite diario.
# ─────────────────────────────────────────────────────────────────────
class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)

    # Digest del PIN (sha256 hex o bcrypt) — nunca el PIN en claro
    pin_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # None → se aplica DEFAULT_DAILY_LIMIT
    daily_limit: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True, default=Decimal("1000.00")
    )

    # "active" | "suspended" | "locked"
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="active", server_default="active"
    )

    # Lockout: al llegar a MAX_FAILED_PIN_ATTEMPTS el estado pasa a "locked"
    failed_auth_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    last_failed_auth: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'suspended', 'locked')",
            name="ck_users_status",
        ),
    )


# ─────────────────────────────────────────────────────────────────────
# DISPOSITIVOS NFC
# device_uid es único global: el primer usuario que lo registra lo
# reclama. La propiedad nunca se transfiere.
# ─────────────────────────────────────────────────────────────────────
class NfcDevice(Base):
    __tablename__ = "nfc_devices"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    device_uid: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    device_name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_used: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    __table_args__ = (
        Index("idx_nfc_devices_user_id", "user_id"),
    )


# ─────────────────────────────────────────────────────────────────────
# TRANSACCIONES
# Registro inmutable. Una corrección requiere un registro nuevo.
# ─────────────────────────────────────────────────────────────────────
class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    device_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("nfc_devices.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    merchant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    merchant_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # "pending" | "approved" | "declined"
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    decline_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # sha256 hex de user:amount:merchant:timestamp
    signature: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "risk_score >= 0 AND risk_score <= 100",
            name="ck_transactions_risk_score_range",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'declined')",
            name="ck_transactions_status",
        ),
        Index("idx_transactions_user_created", "user_id", "created_at"),
        Index("idx_transactions_status", "status"),
    )


# ─────────────────────────────────────────────────────────────────────
# BITÁCORA DE SEGURIDAD
# Append-only. user_id queda en NULL si el usuario se elimina.
# ─────────────────────────────────────────────────────────────────────
class SecurityLog(Base):
    __tablename__ = "security_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # "low" | "medium" | "high" | "critical"
    severity: Mapped[str] = mapped_column(String(10), nullable=False, default="low")
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # "metadata" está reservado en DeclarativeBase
    event_metadata: Mapped[dict] = mapped_column(
        "metadata", _JSON, nullable=False, default=dict
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "severity IN ('low', 'medium', 'high', 'critical')",
            name="ck_security_logs_severity",
        ),
        Index("idx_security_logs_user_created", "user_id", "created_at"),
        Index("idx_security_logs_severity", "severity"),
    )
