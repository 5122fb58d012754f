from __future__ import annotations

import logging

from sqlalchemy import select

from .db import db_session
from .models import Appuntamento, Medico, Pagamento, Valuta
from .services import richiedi

logger = logging.getLogger(__name__)

SIMBOLI = {Valuta.SYP: "ل.س", Valuta.USD: "$"}


def formatta_valuta(importo: float | None, valuta: Valuta | str = Valuta.SYP) -> str:
    """Importo arrotondato con separatore delle migliaia: '$1,234' oppure '1,234 ل.س'."""
    if importo is None:
        return "0"
    valuta = Valuta(valuta)
    testo = f"{round(importo):,}"
    return f"${testo}" if valuta == Valuta.USD else f"{testo} {SIMBOLI[valuta]}"


def _valida_importo(importo: float) -> None:
    if importo is None or importo <= 0:
        raise ValueError("L'importo deve essere positivo.")


def registra_pagamento(appuntamento_id: str, importo: float, valuta: Valuta = Valuta.SYP) -> str:
    _valida_importo(importo)
    with db_session() as s:
        richiedi(s, Appuntamento, appuntamento_id, "Appuntamento")
        p = Pagamento(appuntamento_id=appuntamento_id, importo=importo, valuta=valuta)
        s.add(p)
        s.flush()
        logger.info("Pagamento %s registrato: %s", p.id, formatta_valuta(importo, valuta))
        return p.id


def aggiorna_pagamento(pagamento_id: str, importo: float) -> None:
    _valida_importo(importo)
    with db_session() as s:
        richiedi(s, Pagamento, pagamento_id, "Pagamento").importo = importo


def elimina_pagamento(pagamento_id: str) -> None:
    with db_session() as s:
        s.delete(richiedi(s, Pagamento, pagamento_id, "Pagamento"))


def _pagamento_flat(p: Pagamento, inizio=None, medico: str | None = None) -> dict:
    out = {
        "id": p.id,
        "appuntamento_id": p.appuntamento_id,
        "importo": p.importo,
        "valuta": p.valuta.value,
        "pagato_il": p.pagato_il.isoformat(),
    }
    if inizio is not None:
        out["appuntamento_inizio"] = inizio.isoformat()
        out["medico"] = medico
    return out


def pagamenti_appuntamento(appuntamento_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(Pagamento).where(Pagamento.appuntamento_id == appuntamento_id).order_by(Pagamento.pagato_il.desc())
        )
        return [_pagamento_flat(p) for p in rows]


def pagamenti_paziente(paziente_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Pagamento, Appuntamento.inizio, Medico.nome, Medico.cognome)
            .join(Appuntamento, Appuntamento.id == Pagamento.appuntamento_id)
            .join(Medico, Medico.id == Appuntamento.medico_id)
            .where(Appuntamento.paziente_id == paziente_id)
            .order_by(Pagamento.pagato_il.desc())
        ).all()
        return [_pagamento_flat(p, inizio, f"{nome} {cognome}") for p, inizio, nome, cognome in rows]
