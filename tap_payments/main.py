"""
main.py
-------
Entry point de la API de pagos por contacto.

Orden de registro de middlewares (se ejecutan al revés):
  1. CORS            → primero en registrarse, último en ejecutarse
  2. PaymentHeaders  → headers de seguridad en todas las respuestas
  3. RequestContext  → request_id y log de acceso, el más externo
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tap_payments.api.middlewares import (
    PaymentHeadersMiddleware,
    RequestContextMiddleware,
    setup_cors,
)
from tap_payments.api.routers import devices, security, transactions, users
from tap_payments.core.config import settings
from tap_payments.core.exceptions import AuthorizationError, TapPaymentException
from tap_payments.core.logging_config import setup_logging
from tap_payments.infrastructure.cache.redis_client import redis_manager
from tap_payments.infrastructure.database.session import init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ───────────────────────────────────────────────────────
    setup_logging(settings.LOG_LEVEL)
    if settings.REDIS_URL:
        await redis_manager.connect(settings.REDIS_URL)
    else:
        logger.warning("[Startup] REDIS_URL no configurado: lock por usuario local")
    if settings.DEBUG:
        await init_db()
    yield
    # ── Shutdown ──────────────────────────────────────────────────────
    await redis_manager.disconnect()


app = FastAPI(
    title    = "Tap Payments API",
    version  = "1.0.0",
    docs_url = "/docs"  if settings.DEBUG else None,
    redoc_url= "/redoc" if settings.DEBUG else None,
    lifespan = lifespan,
)

# ── Middlewares ───────────────────────────────────────────────────────
setup_cors(app, allowed_origins=settings.ALLOWED_ORIGINS)
app.add_middleware(PaymentHeadersMiddleware)
app.add_middleware(RequestContextMiddleware)

# ── Routers ───────────────────────────────────────────────────────────
app.include_router(users.router)
app.include_router(transactions.router)
app.include_router(devices.router)
app.include_router(security.router)


# ── Handler global de excepciones ────────────────────────────────────
@app.exception_handler(TapPaymentException)
async def tap_payment_exception_handler(
    request: Request, exc: TapPaymentException
) -> JSONResponse:
    content = {"error": exc.message}
    if isinstance(exc, AuthorizationError):
        content["code"] = exc.reason.value
    return JSONResponse(status_code=exc.status_code, content=content)


# ── Health check ──────────────────────────────────────────────────────
@app.get("/health")
async def health_check():
    redis_ok = await redis_manager.ping()
    return {
        "status":      "ok",
        "environment": settings.ENVIRONMENT,
        "redis":       "ok" if redis_ok else ("degraded" if settings.REDIS_URL else "disabled"),
    }
