"""
risk_engine.py
--------------
Score de riesgo 0-100 para una transacción candidata.

Reglas aditivas e independientes del orden. TODAS se evalúan siempre
(sin corto circuito) para que la auditoría refleje la señal combinada
real, y el total se recorta a 100:

  Regla                  Condición                                   Puntos
  LARGE_AMOUNT           monto > 500                                   +30
  HIGH_VELOCITY          >= 3 transacciones en los últimos 5 minutos   +40
  DAILY_ACCUMULATION     aprobado hoy + monto > 1000                   +50
  DUPLICATE_TRANSACTION  mismo comercio, |Δmonto| < 0.01, < 60s        +70

El motor es puro: no consulta stores. El pipeline le pasa el historial
de los últimos 5 minutos y el total aprobado del día.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Sequence

from tap_payments.domain.schemas import ScoreEntry, TransactionRecord

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
#  Umbrales y puntos por regla                                        #
# ------------------------------------------------------------------ #

LARGE_AMOUNT_THRESHOLD       = Decimal("500")
LARGE_AMOUNT_POINTS          = 30

VELOCITY_WINDOW              = timedelta(minutes=5)
VELOCITY_MIN_TRANSACTIONS    = 3
VELOCITY_POINTS              = 40

DAILY_ACCUMULATION_THRESHOLD = Decimal("1000")
DAILY_ACCUMULATION_POINTS    = 50

DUPLICATE_WINDOW             = timedelta(seconds=60)
DUPLICATE_AMOUNT_TOLERANCE   = Decimal("0.01")
DUPLICATE_POINTS             = 70

MAX_SCORE                    = 100


@dataclass(frozen=True)
class RiskCandidate:
    """Lo mínimo del request que el motor necesita para puntuar."""
    amount:      Decimal
    merchant_id: str


@dataclass
class RiskAssessment:
    score:        int = 0
    reason_codes: list[str] = field(default_factory=list)
    breakdown:    list[ScoreEntry] = field(default_factory=list)

    def add(self, code: str, points: int, description: str) -> None:
        self.reason_codes.append(code)
        self.breakdown.append(
            ScoreEntry(code=code, points=points, description=description)
        )


class RiskEngine:

    def assess(
        self,
        candidate:            RiskCandidate,
        history:              Sequence[TransactionRecord],
        approved_today_total: Decimal = Decimal("0"),
        now:                  Optional[datetime] = None,
    ) -> RiskAssessment:
        now        = now or datetime.now(timezone.utc)
        assessment = RiskAssessment()

        # Solo cuenta lo que realmente cae en la ventana de 5 min,
        # aunque quien llama pase un historial más amplio
        window_start = now - VELOCITY_WINDOW
        recent = [t for t in history if t.created_at >= window_start]

        if candidate.amount > LARGE_AMOUNT_THRESHOLD:
            assessment.add(
                "LARGE_AMOUNT", LARGE_AMOUNT_POINTS,
                f"Monto {candidate.amount} supera {LARGE_AMOUNT_THRESHOLD}",
            )

        if len(recent) >= VELOCITY_MIN_TRANSACTIONS:
            assessment.add(
                "HIGH_VELOCITY", VELOCITY_POINTS,
                f"{len(recent)} transacciones en los últimos 5 minutos",
            )

        if approved_today_total + candidate.amount > DAILY_ACCUMULATION_THRESHOLD:
            assessment.add(
                "DAILY_ACCUMULATION", DAILY_ACCUMULATION_POINTS,
                f"Acumulado del día {approved_today_total + candidate.amount} "
                f"supera {DAILY_ACCUMULATION_THRESHOLD}",
            )

        if self._has_duplicate(candidate, recent, now):
            assessment.add(
                "DUPLICATE_TRANSACTION", DUPLICATE_POINTS,
                f"Mismo monto en {candidate.merchant_id} hace menos de 60 segundos",
            )

        raw_score        = sum(entry.points for entry in assessment.breakdown)
        assessment.score = min(raw_score, MAX_SCORE)

        if assessment.reason_codes:
            logger.info(
                f"[RiskEngine] merchant={candidate.merchant_id} "
                f"amount={candidate.amount} score={assessment.score} "
                f"codes={assessment.reason_codes}"
            )
        return assessment

    def score(
        self,
        candidate:            RiskCandidate,
        history:              Sequence[TransactionRecord],
        approved_today_total: Decimal = Decimal("0"),
        now:                  Optional[datetime] = None,
    ) -> int:
        return self.assess(candidate, history, approved_today_total, now).score

    @staticmethod
    def _has_duplicate(
        candidate: RiskCandidate,
        recent:    Sequence[TransactionRecord],
        now:       datetime,
    ) -> bool:
        return any(
            t.merchant_id == candidate.merchant_id
            and abs(t.amount - candidate.amount) < DUPLICATE_AMOUNT_TOLERANCE
            and now - t.created_at < DUPLICATE_WINDOW
            for t in recent
        )


risk_engine = RiskEngine()
