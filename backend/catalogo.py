"""Catalogo trattamenti: trattamento -> sotto-trattamenti -> passi."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import db_session
from .errors import OperazioneNonConsentita
from .models import (
    AssociazioneDenti,
    PassoEseguito,
    PassoTrattamento,
    PianoTrattamento,
    RegistroTrattamento,
    SottoTrattamento,
    Trattamento,
)
from .services import richiedi

logger = logging.getLogger(__name__)


def progresso_sotto_trattamento(percentuali: list[float]) -> int:
    """Media arrotondata delle percentuali dei passi (0 se non ci sono passi)."""
    if not percentuali:
        return 0
    return round(sum(p or 0 for p in percentuali) / len(percentuali))


def _valida_percentuale(percentuale: float) -> float:
    if not 0 <= percentuale <= 100:
        raise ValueError("La percentuale deve essere tra 0 e 100.")
    return percentuale


def crea_trattamento(nome: str, costo_stimato: float, descrizione: str | None = None) -> str:
    nome = nome.strip()
    if not nome:
        raise ValueError("Il nome del trattamento è obbligatorio.")
    if costo_stimato < 0:
        raise ValueError("Il costo stimato non può essere negativo.")

    with db_session() as s:
        if s.execute(select(Trattamento.id).where(Trattamento.nome == nome)).first():
            raise ValueError("Trattamento già presente in catalogo.")
        t = Trattamento(nome=nome, descrizione=descrizione or None, costo_stimato=costo_stimato)
        s.add(t)
        s.flush()
        return t.id


def _in_uso(s: Session, colonna_registro, colonna_piano, valore: str) -> bool:
    """True se registri o piani di trattamento fanno ancora riferimento alla voce di catalogo."""
    return bool(
        s.scalar(select(RegistroTrattamento.id).where(colonna_registro == valore).limit(1))
        or s.scalar(select(PianoTrattamento.id).where(colonna_piano == valore).limit(1))
    )


def elimina_trattamento(trattamento_id: str) -> None:
    with db_session() as s:
        t = richiedi(s, Trattamento, trattamento_id, "Trattamento")
        if _in_uso(s, RegistroTrattamento.trattamento_id, PianoTrattamento.trattamento_id, t.id):
            logger.warning("Trattamento %s in uso, eliminazione rifiutata", t.id)
            raise OperazioneNonConsentita("Il trattamento è usato da registri o piani di trattamento.")
        s.delete(t)


def crea_sotto_trattamento(
    trattamento_id: str,
    nome: str,
    associazione_denti: AssociazioneDenti = AssociazioneDenti.NON_CORRELATO,
) -> str:
    if not nome.strip():
        raise ValueError("Il nome del sotto-trattamento è obbligatorio.")
    with db_session() as s:
        richiedi(s, Trattamento, trattamento_id, "Trattamento")
        st = SottoTrattamento(trattamento_id=trattamento_id, nome=nome.strip(), associazione_denti=associazione_denti)
        s.add(st)
        s.flush()
        return st.id


def elimina_sotto_trattamento(sotto_trattamento_id: str) -> None:
    with db_session() as s:
        st = richiedi(s, SottoTrattamento, sotto_trattamento_id, "Sotto-trattamento")
        if _in_uso(s, RegistroTrattamento.sotto_trattamento_id, PianoTrattamento.sotto_trattamento_id, st.id):
            logger.warning("Sotto-trattamento %s in uso, eliminazione rifiutata", st.id)
            raise OperazioneNonConsentita("Il sotto-trattamento è usato da registri o piani di trattamento.")
        s.delete(st)


def lista_sotto_trattamenti_flat(trattamento_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(SottoTrattamento)
            .where(SottoTrattamento.trattamento_id == trattamento_id)
            .order_by(SottoTrattamento.nome)
        )
        return [
            {"id": st.id, "nome": st.nome, "associazione_denti": st.associazione_denti.value}
            for st in rows
        ]


def crea_passo(
    sotto_trattamento_id: str,
    nome: str,
    ordine: int = 1,
    percentuale_completamento: float = 0,
    descrizione: str | None = None,
) -> str:
    if not nome.strip():
        raise ValueError("Il nome del passo è obbligatorio.")
    if ordine < 1:
        raise ValueError("L'ordine del passo parte da 1.")
    _valida_percentuale(percentuale_completamento)

    with db_session() as s:
        richiedi(s, SottoTrattamento, sotto_trattamento_id, "Sotto-trattamento")
        p = PassoTrattamento(
            sotto_trattamento_id=sotto_trattamento_id,
            nome=nome.strip(),
            descrizione=descrizione or None,
            ordine=ordine,
            percentuale_completamento=percentuale_completamento,
        )
        s.add(p)
        s.flush()
        return p.id


def aggiorna_percentuale_passo(passo_id: str, percentuale: float) -> None:
    _valida_percentuale(percentuale)
    with db_session() as s:
        richiedi(s, PassoTrattamento, passo_id, "Passo").percentuale_completamento = percentuale


def elimina_passo(passo_id: str) -> None:
    with db_session() as s:
        p = richiedi(s, PassoTrattamento, passo_id, "Passo")
        if s.scalar(select(PassoEseguito.id).where(PassoEseguito.passo_id == p.id).limit(1)) is not None:
            raise OperazioneNonConsentita("Il passo risulta già eseguito in qualche appuntamento.")
        s.delete(p)


def passi_sotto_trattamento(sotto_trattamento_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.scalars(
            select(PassoTrattamento)
            .where(PassoTrattamento.sotto_trattamento_id == sotto_trattamento_id)
            .order_by(PassoTrattamento.ordine)
        )
        return [_passo_flat(p) for p in rows]


def _passo_flat(p: PassoTrattamento) -> dict:
    return {
        "id": p.id,
        "nome": p.nome,
        "descrizione": p.descrizione,
        "ordine": p.ordine,
        "percentuale_completamento": p.percentuale_completamento,
    }


def catalogo_flat() -> list[dict]:
    """Catalogo completo annidato, trattamenti in ordine di nome."""
    with db_session() as s:
        out: list[dict] = []
        for t in s.scalars(select(Trattamento).order_by(Trattamento.nome)):
            sotto = []
            for st in sorted(t.sotto_trattamenti, key=lambda x: x.nome):
                passi = [_passo_flat(p) for p in sorted(st.passi, key=lambda x: x.ordine)]
                sotto.append(
                    {
                        "id": st.id,
                        "nome": st.nome,
                        "associazione_denti": st.associazione_denti.value,
                        "passi": passi,
                        "progresso": progresso_sotto_trattamento(
                            [p["percentuale_completamento"] for p in passi]
                        ),
                    }
                )
            out.append(
                {
                    "id": t.id,
                    "nome": t.nome,
                    "descrizione": t.descrizione,
                    "costo_stimato": t.costo_stimato,
                    "sotto_trattamenti": sotto,
                }
            )
        return out
