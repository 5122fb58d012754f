from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select

from .db import db_session
from .denti import stessi_denti, valida_denti
from .errors import OperazioneNonConsentita
from .models import (
    Appuntamento,
    Pagamento,
    Paziente,
    PianoTrattamento,
    RegistroTrattamento,
    SottoTrattamento,
    Trattamento,
    Valuta,
)
from .services import nuovo_appuntamento, richiedi
from .trattamenti import nuovo_registro, richiedi_programmato, richiedi_sotto_trattamento

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EsitoEsecuzionePiano:
    piano_id: str
    appuntamento_id: str
    registro_id: str
    pagamento_id: str | None
    completato: bool
    registri_chiusi: int
    piani_rimossi: int


def crea_piano(paziente_id: str, trattamento_id: str, sotto_trattamento_id: str, numero_dente: str | None = "") -> str:
    with db_session() as s:
        richiedi(s, Paziente, paziente_id, "Paziente")
        st = richiedi_sotto_trattamento(s, trattamento_id, sotto_trattamento_id)
        piano = PianoTrattamento(
            paziente_id=paziente_id,
            trattamento_id=trattamento_id,
            sotto_trattamento_id=sotto_trattamento_id,
            numero_dente=valida_denti(numero_dente, st.associazione_denti),
            eseguito=False,
        )
        s.add(piano)
        s.flush()
        return piano.id


def piani_paziente(paziente_id: str, solo_da_eseguire: bool = False) -> list[dict]:
    q = (
        select(PianoTrattamento, Trattamento.nome, SottoTrattamento.nome)
        .join(Trattamento, Trattamento.id == PianoTrattamento.trattamento_id)
        .join(SottoTrattamento, SottoTrattamento.id == PianoTrattamento.sotto_trattamento_id)
        .where(PianoTrattamento.paziente_id == paziente_id)
    )
    if solo_da_eseguire:
        q = q.where(PianoTrattamento.eseguito.is_(False))

    with db_session() as s:
        rows = s.execute(q.order_by(PianoTrattamento.creato_il.asc())).all()
        return [
            {
                "id": p.id,
                "trattamento_id": p.trattamento_id,
                "trattamento": nome_t,
                "sotto_trattamento_id": p.sotto_trattamento_id,
                "sotto_trattamento": nome_st,
                "numero_dente": p.numero_dente,
                "eseguito": p.eseguito,
                "eseguito_il": p.eseguito_il.isoformat() if p.eseguito_il else None,
                "appuntamento_id": p.appuntamento_id,
            }
            for p, nome_t, nome_st in rows
        ]


def elimina_piano(piano_id: str) -> None:
    with db_session() as s:
        s.delete(richiedi(s, PianoTrattamento, piano_id, "Piano di trattamento"))


def esegui_piano(
    piano_id: str,
    appuntamento_id: str | None = None,
    medico_id: str | None = None,
    inizio: datetime | None = None,
    costo_syp: float = 0,
    costo_usd: float = 0,
    completato: bool = False,
    importo_pagamento: float | None = None,
    valuta_pagamento: Valuta = Valuta.SYP,
    note: str | None = None,
) -> EsitoEsecuzionePiano:
    """
    Esegue un piano di trattamento, tutto in una transazione:
    - appuntamento esistente (programmato, stesso paziente) oppure nuovo (medico + inizio)
    - registro di trattamento per sotto-trattamento e denti del piano
    - pagamento se è indicato un importo
    - se il trattamento risulta completato: chiude gli altri registri aperti del
      paziente sullo stesso sotto-trattamento e denti, e rimuove i piani duplicati
    - il piano viene marcato eseguito
    """
    if importo_pagamento is not None and importo_pagamento <= 0:
        raise ValueError("L'importo del pagamento deve essere positivo.")

    with db_session() as s:
        piano = richiedi(s, PianoTrattamento, piano_id, "Piano di trattamento")
        if piano.eseguito:
            raise OperazioneNonConsentita("Il piano di trattamento è già stato eseguito.")

        if appuntamento_id:
            app = richiedi_programmato(s, appuntamento_id)
            if app.paziente_id != piano.paziente_id:
                raise OperazioneNonConsentita("L'appuntamento appartiene a un altro paziente.")
        else:
            if not medico_id or inizio is None:
                raise ValueError("Per un nuovo appuntamento servono medico e data/ora.")
            app = nuovo_appuntamento(s, piano.paziente_id, medico_id, inizio, note="Esecuzione piano di trattamento")

        registro = nuovo_registro(
            s,
            app,
            piano.trattamento_id,
            piano.sotto_trattamento_id,
            numero_dente=piano.numero_dente,
            costo_syp=costo_syp,
            costo_usd=costo_usd,
            completato=completato,
            note=note,
        )

        pagamento_id = None
        if importo_pagamento is not None:
            pag = Pagamento(appuntamento_id=app.id, importo=importo_pagamento, valuta=valuta_pagamento)
            s.add(pag)
            s.flush()
            pagamento_id = pag.id

        chiusi = 0
        rimossi = 0
        if registro.completato:
            aperti = list(s.scalars(
                select(RegistroTrattamento)
                .join(Appuntamento, Appuntamento.id == RegistroTrattamento.appuntamento_id)
                .where(
                    Appuntamento.paziente_id == piano.paziente_id,
                    RegistroTrattamento.sotto_trattamento_id == piano.sotto_trattamento_id,
                    RegistroTrattamento.completato.is_(False),
                    RegistroTrattamento.id != registro.id,
                )
            ))
            for r in aperti:
                if stessi_denti(r.numero_dente, piano.numero_dente):
                    r.completato = True
                    chiusi += 1

            duplicati = list(s.scalars(
                select(PianoTrattamento).where(
                    PianoTrattamento.paziente_id == piano.paziente_id,
                    PianoTrattamento.sotto_trattamento_id == piano.sotto_trattamento_id,
                    PianoTrattamento.eseguito.is_(False),
                    PianoTrattamento.id != piano.id,
                )
            ))
            for d in duplicati:
                if stessi_denti(d.numero_dente, piano.numero_dente):
                    s.delete(d)
                    rimossi += 1

        piano.eseguito = True
        piano.eseguito_il = datetime.now()
        piano.appuntamento_id = app.id
        piano.registro_id = registro.id

        logger.info(
            "Piano %s eseguito (appuntamento %s, registro %s, chiusi %d, piani rimossi %d)",
            piano.id,
            app.id,
            registro.id,
            chiusi,
            rimossi,
        )
        return EsitoEsecuzionePiano(
            piano_id=piano.id,
            appuntamento_id=app.id,
            registro_id=registro.id,
            pagamento_id=pagamento_id,
            completato=registro.completato,
            registri_chiusi=chiusi,
            piani_rimossi=rimossi,
        )
