"""
exceptions.py
-------------
Excepciones personalizadas del sistema de pagos por contacto.

Todas heredan de TapPaymentException para poder capturarlas
en un solo handler global en main.py.

Las fallas del pipeline de autorización heredan además de
AuthorizationError y llevan un `reason` estable para que la capa
de presentación pueda decidir qué mostrar sin parsear mensajes.
"""

from enum import Enum


class TapPaymentException(Exception):
    """Base de todas las excepciones del sistema."""
    status_code: int = 500
    message: str = "Error interno del sistema de pagos."

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)


# ─────────────────────────────────────────────────────────────────────
# Errores de autorización de transacciones
# ─────────────────────────────────────────────────────────────────────

class AuthorizationFailure(str, Enum):
    INVALID_PIN          = "invalid_pin"
    ACCOUNT_INACTIVE     = "account_inactive"
    ACCOUNT_LOCKED       = "account_locked"
    DEVICE_NOT_OWNED     = "device_not_owned"
    DEVICE_INACTIVE      = "device_inactive"
    DAILY_LIMIT_EXCEEDED = "daily_limit_exceeded"


class AuthorizationError(TapPaymentException):
    """Falla terminal de un paso del pipeline. Nunca se reintenta."""
    status_code = 403
    message = "Transacción no autorizada."
    reason: AuthorizationFailure


class InvalidPinException(AuthorizationError):
    """El PIN no coincide o el usuario no tiene PIN registrado."""
    status_code = 401
    message = "PIN incorrecto."
    reason = AuthorizationFailure.INVALID_PIN


class AccountInactiveException(AuthorizationError):
    """La cuenta no está en estado 'active'."""
    status_code = 403
    message = "La cuenta no está activa."
    reason = AuthorizationFailure.ACCOUNT_INACTIVE


class AccountLockedException(AccountInactiveException):
    """La cuenta fue bloqueada tras demasiados PIN incorrectos."""
    status_code = 423
    message = "Cuenta bloqueada por intentos fallidos. Contacta a soporte."
    reason = AuthorizationFailure.ACCOUNT_LOCKED


class DeviceNotOwnedException(AuthorizationError):
    """El dispositivo ya pertenece a otro usuario."""
    status_code = 403
    message = "El dispositivo no pertenece a esta cuenta."
    reason = AuthorizationFailure.DEVICE_NOT_OWNED


class DeviceInactiveException(AuthorizationError):
    """El dispositivo fue desactivado por su dueño."""
    status_code = 403
    message = "El dispositivo está desactivado."
    reason = AuthorizationFailure.DEVICE_INACTIVE


class DailyLimitExceededException(AuthorizationError):
    """El monto supera el límite diario configurado."""
    status_code = 422
    message = "Límite diario de transacciones excedido."
    reason = AuthorizationFailure.DAILY_LIMIT_EXCEEDED


# ─────────────────────────────────────────────────────────────────────
# Errores de recursos
# ─────────────────────────────────────────────────────────────────────

class UserNotFoundException(TapPaymentException):
    status_code = 404
    message = "Usuario no encontrado."


class EmailAlreadyExistsException(TapPaymentException):
    status_code = 409
    message = "Ya existe una cuenta con ese email."


class DeviceNotFoundException(TapPaymentException):
    status_code = 404
    message = "Dispositivo no encontrado."


class DeviceAlreadyRegisteredException(TapPaymentException):
    """El identificador de dispositivo ya fue reclamado (es único global)."""
    status_code = 409
    message = "El dispositivo ya está registrado."


class InvalidDailyLimitException(TapPaymentException):
    status_code = 422
    message = "El límite diario debe ser positivo."


class TransactionNotFoundException(TapPaymentException):
    status_code = 404
    message = "Transacción no encontrada."


class InvalidTokenException(TapPaymentException):
    status_code = 401
    message = "Token inválido o expirado."


# ─────────────────────────────────────────────────────────────────────
# Errores de infraestructura
# ─────────────────────────────────────────────────────────────────────

class StoreUnavailableException(TapPaymentException):
    """Falla de I/O de un colaborador externo (DB, Redis)."""
    status_code = 503
    message = "Servicio temporalmente no disponible. Intenta en unos momentos."
