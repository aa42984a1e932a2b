"""
security.py
-----------
Primitivas criptográficas del sistema:

  - Digest del PIN (algoritmo configurable: sha256 | bcrypt)
  - Firma de transacciones: sha256("user:amount:merchant:timestamp")
  - JWT de sesión (HS256) para la capa HTTP

Limitación conocida de la firma: es un digest SIN clave. Detecta
manipulación posterior de monto o comercio, pero cualquiera que lea los
cuatro campos puede producir una firma válida. No es un MAC.

Limitación conocida del PIN con sha256: es un hash rápido sin salt,
un PIN de 4-6 dígitos se rompe por fuerza bruta en milisegundos.
Usar PIN_HASH_ALGORITHM=bcrypt en producción.
"""

import hashlib
import hmac
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import bcrypt
import jwt

from tap_payments.core.config import settings
from tap_payments.core.exceptions import InvalidTokenException

JWT_ALGORITHM       = "HS256"
SIGNATURE_DELIMITER = ":"
_CENTS              = Decimal("0.01")
_BCRYPT_PREFIX      = "$2"


# ─────────────────────────────────────────────────────────────────────
# PIN
# ─────────────────────────────────────────────────────────────────────

def hash_pin(pin: str, algorithm: str | None = None) -> str:
    """Genera el digest del PIN con el algoritmo configurado."""
    algorithm = algorithm or settings.PIN_HASH_ALGORITHM
    if algorithm == "bcrypt":
        return bcrypt.hashpw(
            pin.encode(),
            bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS),
        ).decode()
    return hashlib.sha256(pin.encode()).hexdigest()


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    """
    Compara el PIN contra el digest almacenado.

    El algoritmo se deduce del digest, no de la configuración actual:
    cambiar PIN_HASH_ALGORITHM no invalida los PIN ya registrados.
    """
    if not pin_hash:
        return False
    if pin_hash.startswith(_BCRYPT_PREFIX):
        return bcrypt.checkpw(pin.encode(), pin_hash.encode())
    candidate = hashlib.sha256(pin.encode()).hexdigest()
    return hmac.compare_digest(candidate, pin_hash)


# ─────────────────────────────────────────────────────────────────────
# FIRMA DE TRANSACCIONES
# ─────────────────────────────────────────────────────────────────────

def canonical_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(_CENTS))


def canonical_timestamp(timestamp: datetime) -> str:
    # Las fechas sin zona se interpretan como UTC (así las devuelve SQLite)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat()


def sign_transaction(
    user_id:     uuid.UUID | str,
    amount:      Decimal,
    merchant_id: str,
    timestamp:   datetime,
) -> str:
    message = SIGNATURE_DELIMITER.join((
        str(user_id),
        canonical_amount(amount),
        merchant_id,
        canonical_timestamp(timestamp),
    ))
    return hashlib.sha256(message.encode()).hexdigest()


def verify_transaction_signature(
    signature:   str,
    user_id:     uuid.UUID | str,
    amount:      Decimal,
    merchant_id: str,
    timestamp:   datetime,
) -> bool:
    expected = sign_transaction(user_id, amount, merchant_id, timestamp)
    return hmac.compare_digest(expected, signature)


# ─────────────────────────────────────────────────────────────────────
# JWT
# ─────────────────────────────────────────────────────────────────────

def create_access_token(user_id: uuid.UUID, email: str) -> tuple[str, int]:
    """Crea el token JWT para la sesión del usuario. Retorna (token, expires_in)."""
    expires_in = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    now        = datetime.now(timezone.utc)
    payload = {
        "sub":   str(user_id),
        "email": email,
        "iat":   now,
        "exp":   now + timedelta(seconds=expires_in),
    }
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=JWT_ALGORITHM)
    return token, expires_in


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise InvalidTokenException("Token expirado. Inicia sesión nuevamente.")
    except jwt.InvalidTokenError:
        raise InvalidTokenException()

    if not payload.get("sub"):
        raise InvalidTokenException("El token no contiene identificación de usuario.")
    return payload
