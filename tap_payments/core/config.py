from decimal import Decimal
from typing import Annotated, Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    # Configuracion general
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    SECRET_KEY: str = "dev-secret-key-change-me-in-production"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Base de datos (asyncpg en producción, aiosqlite en local)
    DATABASE_URL: str = "sqlite+aiosqlite:///./tap_payments.db"

    # Redis — opcional. Sin Redis el lock por usuario es solo en proceso.
    REDIS_URL: str | None = None

    # Lock por usuario alrededor de límite → riesgo → persistencia
    USER_LOCK_TIMEOUT_SECONDS: float = 10.0
    USER_LOCK_WAIT_SECONDS: float = 5.0

    # PIN: "sha256" es el digest rápido original, "bcrypt" el lento con salt
    PIN_HASH_ALGORITHM: Literal["sha256", "bcrypt"] = "sha256"
    BCRYPT_ROUNDS: int = 12
    MAX_FAILED_PIN_ATTEMPTS: int = 5

    # Límites de gasto
    DEFAULT_DAILY_LIMIT: Decimal = Decimal("1000.00")
    DEFAULT_CURRENCY: str = "USD"

    # CORS — lista de orígenes permitidos separados por coma en el .env
    # NoDecode: el valor del entorno llega crudo a parse_origins, no como JSON
    ALLOWED_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:3000", "http://localhost:5173"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v):
        """Permite definir ALLOWED_ORIGINS como string separado por comas en .env"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    model_config = SettingsConfigDict(
        env_file          = ".env",
        env_file_encoding = "utf-8",
        case_sensitive    = True,
        extra             = "ignore",
    )


settings = Settings()
