"""
middlewares.py
--------------
Middlewares HTTP de la API de pagos.

  RequestContextMiddleware → asigna request.state.request_id y registra
                             método, ruta, status y latencia
  PaymentHeadersMiddleware → las respuestas llevan datos de pagos: sin
                             cache, sin sniffing, sin iframes
  setup_cors()             → orígenes de la app web/móvil

Registro en main.py: CORS primero para que los preflight pasen.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

_PAYMENT_HEADERS = {
    "X-Content-Type-Options":    "nosniff",
    "X-Frame-Options":           "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy":           "no-referrer",
    "Cache-Control":             "no-store, private",
    "Pragma":                    "no-cache",
}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Respeta el X-Request-ID del cliente si viene, si no genera uno.
    El mismo id vuelve en la respuesta para correlacionar con los logs.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        started  = time.perf_counter()
        response = await call_next(request)
        elapsed  = (time.perf_counter() - started) * 1000

        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            f"[HTTP] {request.method} {request.url.path} → {response.status_code} "
            f"({elapsed:.1f} ms) rid={request_id}"
        )
        return response


class PaymentHeadersMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for header, value in _PAYMENT_HEADERS.items():
            response.headers.setdefault(header, value)
        return response


def setup_cors(app: FastAPI, allowed_origins: list[str]) -> None:
    """Solo los verbos que usan los routers (GET, POST, DELETE) más el preflight."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins     = allowed_origins,
        allow_credentials = True,
        allow_methods     = ["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers     = ["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers    = [REQUEST_ID_HEADER],
        max_age           = 600,
    )
