from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import func, or_, select

from .db import db_session
from .models import Appuntamento, Pagamento, Paziente, RegistroTrattamento, Valuta
from .services import richiedi

logger = logging.getLogger(__name__)

CAMPI_MODIFICABILI = (
    "nome",
    "cognome",
    "data_nascita",
    "telefono",
    "contatto",
    "indirizzo",
    "professione",
    "note_mediche",
)


def _paziente_flat(p: Paziente) -> dict:
    return {
        "id": p.id,
        "nome": p.nome,
        "cognome": p.cognome,
        "data_nascita": p.data_nascita.isoformat(),
        "telefono": p.telefono,
        "contatto": p.contatto,
        "indirizzo": p.indirizzo,
        "professione": p.professione,
        "note_mediche": p.note_mediche,
        "creato_il": p.creato_il.isoformat(),
    }


def crea_paziente(
    nome: str,
    cognome: str,
    data_nascita: date,
    telefono: str,
    contatto: str | None = None,
    indirizzo: str | None = None,
    professione: str | None = None,
    note_mediche: str | None = None,
) -> str:
    if not nome.strip() or not cognome.strip():
        raise ValueError("Nome e cognome sono obbligatori.")
    if not telefono or not telefono.strip():
        raise ValueError("Il numero di telefono è obbligatorio.")
    if data_nascita > date.today():
        raise ValueError("La data di nascita non può essere nel futuro.")

    with db_session() as s:
        p = Paziente(
            nome=nome.strip(),
            cognome=cognome.strip(),
            data_nascita=data_nascita,
            telefono=telefono.strip(),
            contatto=contatto or None,
            indirizzo=indirizzo or None,
            professione=professione or None,
            note_mediche=note_mediche or None,
        )
        s.add(p)
        s.flush()
        logger.info("Paziente creato: %s", p.id)
        return p.id


def aggiorna_paziente(paziente_id: str, **campi) -> dict:
    sconosciuti = set(campi) - set(CAMPI_MODIFICABILI)
    if sconosciuti:
        raise ValueError(f"Campi non modificabili: {', '.join(sorted(sconosciuti))}")

    with db_session() as s:
        p = richiedi(s, Paziente, paziente_id, "Paziente")
        for campo, valore in campi.items():
            if campo in ("nome", "cognome", "telefono"):
                if not valore or not str(valore).strip():
                    raise ValueError(f"Il campo {campo} è obbligatorio.")
                valore = str(valore).strip()
            setattr(p, campo, valore)
        s.flush()
        return _paziente_flat(p)


def elimina_paziente(paziente_id: str) -> None:
    with db_session() as s:
        p = richiedi(s, Paziente, paziente_id, "Paziente")
        s.delete(p)
        logger.info("Paziente eliminato: %s", paziente_id)


def get_paziente_flat(paziente_id: str) -> dict:
    with db_session() as s:
        return _paziente_flat(richiedi(s, Paziente, paziente_id, "Paziente"))


def cerca_pazienti(testo: str | None = None) -> list[dict]:
    """Ricerca per nome/cognome (contiene, case-insensitive)."""
    q = select(Paziente)
    if testo and testo.strip():
        like = f"%{testo.strip().lower()}%"
        nome_completo = func.lower(Paziente.nome + " " + Paziente.cognome)
        q = q.where(or_(nome_completo.like(like), func.lower(Paziente.cognome + " " + Paziente.nome).like(like)))

    with db_session() as s:
        return [_paziente_flat(p) for p in s.scalars(q.order_by(Paziente.cognome, Paziente.nome))]


def saldo_paziente(paziente_id: str) -> dict[str, float]:
    """
    Saldo per valuta: costo dei trattamenti registrati meno i pagamenti.
    Positivo = il paziente deve ancora pagare.
    """
    with db_session() as s:
        richiedi(s, Paziente, paziente_id, "Paziente")

        costo_syp, costo_usd = s.execute(
            select(
                func.coalesce(func.sum(RegistroTrattamento.costo_syp), 0),
                func.coalesce(func.sum(RegistroTrattamento.costo_usd), 0),
            )
            .join(Appuntamento, Appuntamento.id == RegistroTrattamento.appuntamento_id)
            .where(Appuntamento.paziente_id == paziente_id)
        ).one()

        pagato = dict(
            s.execute(
                select(Pagamento.valuta, func.coalesce(func.sum(Pagamento.importo), 0))
                .join(Appuntamento, Appuntamento.id == Pagamento.appuntamento_id)
                .where(Appuntamento.paziente_id == paziente_id)
                .group_by(Pagamento.valuta)
            ).all()
        )

        return {
            Valuta.SYP.value: float(costo_syp) - float(pagato.get(Valuta.SYP, 0)),
            Valuta.USD.value: float(costo_usd) - float(pagato.get(Valuta.USD, 0)),
        }
