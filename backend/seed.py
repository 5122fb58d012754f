from __future__ import annotations

from sqlalchemy import select

from .db import db_session
from .models import AssociazioneDenti, Medico, PassoTrattamento, SottoTrattamento, Trattamento
from .permessi import seed_permessi

# trattamento -> (costo stimato, [(sotto-trattamento, associazione, [(passo, percentuale)])])
CATALOGO_BASE = {
    "Endodonzia": (
        150,
        [
            (
                "Devitalizzazione",
                AssociazioneDenti.DENTE_SINGOLO,
                [("Apertura camera pulpare", 25), ("Sagomatura canali", 50), ("Otturazione canalare", 100)],
            ),
        ],
    ),
    "Conservativa": (
        60,
        [
            ("Otturazione composita", AssociazioneDenti.DENTI_MULTIPLI, [("Rimozione carie", 50), ("Restauro", 100)]),
        ],
    ),
    "Igiene orale": (
        40,
        [
            ("Ablazione tartaro", AssociazioneDenti.NON_CORRELATO, []),
        ],
    ),
}


def seed_base() -> None:
    """
    Popola dati minimi (idempotente):
    - medici
    - catalogo trattamenti con sotto-trattamenti e passi
    - permessi di default per ruolo
    """
    with db_session() as s:
        # Medici
        medici = [
            ("Mario", "Rossi", "Odontoiatria generale", "m.rossi@studio.local"),
            ("Laura", "Bianchi", "Endodonzia", "l.bianchi@studio.local"),
        ]
        for nome, cognome, spec, email in medici:
            exists = s.execute(
                select(Medico).where(Medico.nome == nome, Medico.cognome == cognome, Medico.specializzazione == spec)
            ).scalar_one_or_none()
            if exists is None:
                s.add(Medico(nome=nome, cognome=cognome, specializzazione=spec, email=email))

        # Catalogo
        for nome_t, (costo, sotto) in CATALOGO_BASE.items():
            if s.execute(select(Trattamento).where(Trattamento.nome == nome_t)).scalar_one_or_none() is not None:
                continue
            t = Trattamento(nome=nome_t, costo_stimato=costo)
            for nome_st, associazione, passi in sotto:
                st = SottoTrattamento(nome=nome_st, associazione_denti=associazione)
                st.passi = [
                    PassoTrattamento(nome=nome_p, ordine=i, percentuale_completamento=perc)
                    for i, (nome_p, perc) in enumerate(passi, start=1)
                ]
                t.sotto_trattamenti.append(st)
            s.add(t)

    seed_permessi()
