from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select

from .db import db_session
from .models import LogAttivita

logger = logging.getLogger(__name__)


def registra_attivita(
    utente: str,
    azione: str,
    tipo_entita: str | None = None,
    entita_id: str | None = None,
    dettagli: dict[str, Any] | None = None,
) -> int:
    with db_session() as s:
        log = LogAttivita(
            utente=utente,
            azione=azione,
            tipo_entita=tipo_entita,
            entita_id=entita_id,
            dettagli=dettagli,
        )
        s.add(log)
        s.flush()
        logger.debug("Attività %s: %s %s %s", utente, azione, tipo_entita or "-", entita_id or "-")
        return log.id


def lista_attivita(limit: int | None = None) -> list[dict]:
    q = select(LogAttivita).order_by(LogAttivita.creato_il.desc(), LogAttivita.id.desc())
    if limit:
        q = q.limit(limit)
    with db_session() as s:
        return [
            {
                "id": log.id,
                "utente": log.utente,
                "azione": log.azione,
                "tipo_entita": log.tipo_entita,
                "entita_id": log.entita_id,
                "dettagli": log.dettagli,
                "creato_il": log.creato_il.isoformat(),
            }
            for log in s.scalars(q)
        ]
