"""
Permessi per ruolo su appuntamenti, registri di trattamento e pagamenti.
Il SUPER_ADMIN può sempre tutto; gli altri ruoli seguono la tabella permessi_ruolo.
"""
from __future__ import annotations

import logging

from sqlalchemy import select

from .db import db_session
from .errors import EntitaNonTrovata, PermessoNegato
from .models import PermessoRuolo, Ruolo

logger = logging.getLogger(__name__)

RISORSE = ("appuntamenti", "registri_trattamento", "pagamenti")
AZIONI = {"creare": "puo_creare", "modificare": "puo_modificare", "eliminare": "puo_eliminare"}

# (creare, modificare, eliminare)
PERMESSI_DEFAULT: dict[Ruolo, dict[str, tuple[bool, bool, bool]]] = {
    Ruolo.MEDICO: {
        "appuntamenti": (True, True, True),
        "registri_trattamento": (True, True, True),
        "pagamenti": (True, True, False),
    },
    Ruolo.ASSISTENTE: {
        "appuntamenti": (True, True, False),
        "registri_trattamento": (True, True, False),
        "pagamenti": (False, False, False),
    },
    Ruolo.RECEPTIONIST: {
        "appuntamenti": (True, True, True),
        "registri_trattamento": (False, False, False),
        "pagamenti": (True, True, False),
    },
}


def seed_permessi() -> None:
    """Inserisce i permessi mancanti (idempotente, non sovrascrive modifiche)."""
    with db_session() as s:
        esistenti = {(r.ruolo, r.risorsa) for r in s.execute(select(PermessoRuolo.ruolo, PermessoRuolo.risorsa))}
        for ruolo in Ruolo:
            for risorsa in RISORSE:
                if (ruolo, risorsa) in esistenti:
                    continue
                c, m, e = PERMESSI_DEFAULT.get(ruolo, {}).get(risorsa, (True, True, True))
                s.add(PermessoRuolo(ruolo=ruolo, risorsa=risorsa, puo_creare=c, puo_modificare=m, puo_eliminare=e))


def _controlla(risorsa: str, azione: str) -> str:
    if risorsa not in RISORSE:
        raise ValueError(f"Risorsa sconosciuta: {risorsa}")
    if azione not in AZIONI:
        raise ValueError(f"Azione sconosciuta: {azione}")
    return AZIONI[azione]


def puo_gestire_pagamenti(ruolo: Ruolo) -> bool:
    return ruolo != Ruolo.ASSISTENTE


def verifica_permesso(ruolo: Ruolo, risorsa: str, azione: str) -> bool:
    campo = _controlla(risorsa, azione)
    if ruolo == Ruolo.SUPER_ADMIN:
        return True
    # vale anche se la tabella permessi dice altro
    if risorsa == "pagamenti" and not puo_gestire_pagamenti(ruolo):
        return False
    with db_session() as s:
        p = s.execute(
            select(PermessoRuolo).where(PermessoRuolo.ruolo == ruolo, PermessoRuolo.risorsa == risorsa)
        ).scalar_one_or_none()
        return bool(p and getattr(p, campo))


def richiedi_permesso(ruolo: Ruolo, risorsa: str, azione: str) -> None:
    if not verifica_permesso(ruolo, risorsa, azione):
        logger.warning("Permesso negato: %s non può %s %s", ruolo.value, azione, risorsa)
        raise PermessoNegato(f"Il ruolo {ruolo.value} non può {azione} {risorsa}.")


def lista_permessi_flat(ruolo: Ruolo | None = None) -> list[dict]:
    q = select(PermessoRuolo).order_by(PermessoRuolo.ruolo, PermessoRuolo.risorsa)
    if ruolo:
        q = q.where(PermessoRuolo.ruolo == ruolo)
    with db_session() as s:
        return [
            {
                "id": p.id,
                "ruolo": p.ruolo.value,
                "risorsa": p.risorsa,
                "puo_creare": p.puo_creare,
                "puo_modificare": p.puo_modificare,
                "puo_eliminare": p.puo_eliminare,
            }
            for p in s.scalars(q)
        ]


def aggiorna_permesso(permesso_id: int, campo: str, valore: bool) -> None:
    if campo not in AZIONI.values():
        raise ValueError(f"Campo permesso non valido: {campo}")
    with db_session() as s:
        p = s.get(PermessoRuolo, permesso_id)
        if p is None:
            raise EntitaNonTrovata("Permesso", permesso_id)
        setattr(p, campo, valore)
        logger.info("Permesso %s.%s.%s = %s", p.ruolo.value, p.risorsa, campo, valore)
