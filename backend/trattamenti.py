"""
Flusso clinico: registrazione dei trattamenti durante un appuntamento,
passi eseguiti, ripresa dei trattamenti non completati.

Un registro con completato=False è un "sotto-trattamento non completato":
resta aperto finché tutti i passi del sotto-trattamento non risultano
eseguiti (anche in appuntamenti successivi) o finché non viene chiuso a mano.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .db import db_session
from .denti import valida_denti
from .errors import OperazioneNonConsentita
from .models import (
    Appuntamento,
    Medico,
    PassoEseguito,
    PassoTrattamento,
    Paziente,
    PianoTrattamento,
    RegistroTrattamento,
    SottoTrattamento,
    StatoAppuntamento,
    Trattamento,
)
from .services import intervallo_giorni, richiedi

logger = logging.getLogger(__name__)

STATI_FILTRO = ("tutti", "completati", "in_corso")


# =========================
# Controlli
# =========================
def richiedi_programmato(s: Session, appuntamento_id: str) -> Appuntamento:
    app = richiedi(s, Appuntamento, appuntamento_id, "Appuntamento")
    if app.stato != StatoAppuntamento.PROGRAMMATO:
        raise OperazioneNonConsentita(
            f"Operazione possibile solo su appuntamenti programmati (stato attuale: {app.stato.value})."
        )
    return app


def richiedi_sotto_trattamento(s: Session, trattamento_id: str, sotto_trattamento_id: str) -> SottoTrattamento:
    richiedi(s, Trattamento, trattamento_id, "Trattamento")
    st = richiedi(s, SottoTrattamento, sotto_trattamento_id, "Sotto-trattamento")
    if st.trattamento_id != trattamento_id:
        raise ValueError("Il sotto-trattamento non appartiene al trattamento indicato.")
    return st


def _valida_costi(costo_syp: float, costo_usd: float) -> None:
    if costo_syp < 0 or costo_usd < 0:
        raise ValueError("I costi non possono essere negativi.")


def _passi_di(s: Session, sotto_trattamento_id: str) -> set[str]:
    return set(
        s.scalars(select(PassoTrattamento.id).where(PassoTrattamento.sotto_trattamento_id == sotto_trattamento_id))
    )


def _valida_passi(s: Session, sotto_trattamento_id: str, passi: Iterable[str]) -> list[str]:
    """Deduplica e verifica che i passi appartengano al sotto-trattamento."""
    richiesti = list(dict.fromkeys(passi))
    estranei = set(richiesti) - _passi_di(s, sotto_trattamento_id)
    if estranei:
        raise ValueError("Alcuni passi non appartengono al sotto-trattamento selezionato.")
    return richiesti


def _passi_eseguiti(s: Session, registro_id: str) -> set[str]:
    return set(s.scalars(select(PassoEseguito.passo_id).where(PassoEseguito.registro_id == registro_id)))


def _tutti_eseguiti(s: Session, registro: RegistroTrattamento) -> bool:
    return _passi_di(s, registro.sotto_trattamento_id) <= _passi_eseguiti(s, registro.id)


# =========================
# Registrazione
# =========================
def nuovo_registro(
    s: Session,
    app: Appuntamento,
    trattamento_id: str,
    sotto_trattamento_id: str,
    numero_dente: str | None = "",
    costo_syp: float = 0,
    costo_usd: float = 0,
    passi: Iterable[str] = (),
    completato: bool = False,
    note: str | None = None,
) -> RegistroTrattamento:
    """Inserisce registro + passi eseguiti nella sessione data."""
    st = richiedi_sotto_trattamento(s, trattamento_id, sotto_trattamento_id)
    denti = valida_denti(numero_dente, st.associazione_denti)
    _valida_costi(costo_syp, costo_usd)
    passi = _valida_passi(s, sotto_trattamento_id, passi)

    registro = RegistroTrattamento(
        appuntamento_id=app.id,
        trattamento_id=trattamento_id,
        sotto_trattamento_id=sotto_trattamento_id,
        numero_dente=denti,
        costo_syp=costo_syp,
        costo_usd=costo_usd,
        completato=completato,
        note=note or None,
    )
    s.add(registro)
    s.flush()

    adesso = datetime.now()
    for passo_id in passi:
        s.add(PassoEseguito(appuntamento_id=app.id, passo_id=passo_id, registro_id=registro.id, completato_il=adesso))
    s.flush()

    # passi tutti eseguiti nella stessa seduta: trattamento concluso
    if not registro.completato and passi and _tutti_eseguiti(s, registro):
        registro.completato = True

    logger.info(
        "Trattamento registrato su appuntamento %s (sotto-trattamento %s, denti '%s', completato=%s)",
        app.id,
        sotto_trattamento_id,
        denti,
        registro.completato,
    )
    return registro


def registra_trattamento(
    appuntamento_id: str,
    trattamento_id: str,
    sotto_trattamento_id: str,
    numero_dente: str | None = "",
    costo_syp: float = 0,
    costo_usd: float = 0,
    passi: Iterable[str] = (),
    completato: bool = False,
    note: str | None = None,
) -> str:
    with db_session() as s:
        app = richiedi_programmato(s, appuntamento_id)
        return nuovo_registro(
            s,
            app,
            trattamento_id,
            sotto_trattamento_id,
            numero_dente=numero_dente,
            costo_syp=costo_syp,
            costo_usd=costo_usd,
            passi=passi,
            completato=completato,
            note=note,
        ).id


def salva_passi_appuntamento(appuntamento_id: str, passi: Iterable[str]) -> int:
    """
    Sostituisce i passi eseguiti nell'appuntamento.
    I passi già presenti restano collegati al loro registro (anche se ripreso da
    un appuntamento precedente); quelli nuovi vanno al registro dell'appuntamento
    con lo stesso sotto-trattamento.
    """
    with db_session() as s:
        app = richiedi(s, Appuntamento, appuntamento_id, "Appuntamento")
        passi = list(dict.fromkeys(passi))

        per_passo = dict(
            s.execute(
                select(PassoTrattamento.id, PassoTrattamento.sotto_trattamento_id).where(
                    PassoTrattamento.id.in_(passi)
                )
            ).all()
        )
        mancanti = set(passi) - set(per_passo)
        if mancanti:
            raise ValueError("Passi non trovati: " + ", ".join(sorted(mancanti)))

        registri = {r.sotto_trattamento_id: r.id for r in app.registri}
        toccati: set[str] = set()
        presenti: set[str] = set()
        for pe in list(app.passi_eseguiti):
            if pe.passo_id in passi and pe.passo_id not in presenti:
                presenti.add(pe.passo_id)
            else:
                app.passi_eseguiti.remove(pe)
            if pe.registro_id:
                toccati.add(pe.registro_id)

        adesso = datetime.now()
        for passo_id in passi:
            if passo_id in presenti:
                continue
            registro_id = registri.get(per_passo[passo_id])
            app.passi_eseguiti.append(
                PassoEseguito(passo_id=passo_id, registro_id=registro_id, completato_il=adesso)
            )
            if registro_id:
                toccati.add(registro_id)
        s.flush()

        for registro in s.scalars(select(RegistroTrattamento).where(RegistroTrattamento.id.in_(toccati))):
            if not registro.completato and _passi_di(s, registro.sotto_trattamento_id) and _tutti_eseguiti(s, registro):
                registro.completato = True
                logger.info("Trattamento %s completato nell'appuntamento %s", registro.id, app.id)
        return len(passi)


def passi_eseguiti_appuntamento(appuntamento_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(PassoEseguito.passo_id, PassoEseguito.registro_id, PassoEseguito.completato_il, PassoTrattamento.nome)
            .join(PassoTrattamento, PassoTrattamento.id == PassoEseguito.passo_id)
            .where(PassoEseguito.appuntamento_id == appuntamento_id)
            .order_by(PassoTrattamento.ordine)
        ).all()
        return [
            {
                "passo_id": r.passo_id,
                "registro_id": r.registro_id,
                "nome": r.nome,
                "completato_il": r.completato_il.isoformat(),
            }
            for r in rows
        ]


# =========================
# Non completati / ripresa
# =========================
def trattamenti_non_completati(paziente_id: str) -> list[dict]:
    with db_session() as s:
        richiedi(s, Paziente, paziente_id, "Paziente")
        rows = s.execute(
            select(RegistroTrattamento, Trattamento.nome, SottoTrattamento.nome, Appuntamento.inizio)
            .join(Appuntamento, Appuntamento.id == RegistroTrattamento.appuntamento_id)
            .join(Trattamento, Trattamento.id == RegistroTrattamento.trattamento_id)
            .join(SottoTrattamento, SottoTrattamento.id == RegistroTrattamento.sotto_trattamento_id)
            .where(Appuntamento.paziente_id == paziente_id, RegistroTrattamento.completato.is_(False))
            .order_by(RegistroTrattamento.eseguito_il.asc())
        ).all()

        out = []
        for r, nome_t, nome_st, inizio in rows:
            tutti = _passi_di(s, r.sotto_trattamento_id)
            fatti = _passi_eseguiti(s, r.id)
            out.append(
                {
                    "id": r.id,
                    "appuntamento_id": r.appuntamento_id,
                    "paziente_id": paziente_id,
                    "trattamento": nome_t,
                    "sotto_trattamento": nome_st,
                    "sotto_trattamento_id": r.sotto_trattamento_id,
                    "numero_dente": r.numero_dente,
                    "iniziato_il": inizio.isoformat(),
                    "passi_eseguiti": len(fatti & tutti),
                    "passi_totali": len(tutti),
                }
            )
        return out


def riprendi_trattamento(registro_id: str, appuntamento_id: str, passi: Iterable[str]) -> bool:
    """
    Registra nell'appuntamento corrente i passi eseguiti per un trattamento aperto.
    Ritorna True se con questi passi il trattamento risulta completato.
    """
    with db_session() as s:
        registro = richiedi(s, RegistroTrattamento, registro_id, "Registro trattamento")
        if registro.completato:
            raise OperazioneNonConsentita("Il trattamento è già completato.")

        app = richiedi_programmato(s, appuntamento_id)
        if app.paziente_id != registro.appuntamento.paziente_id:
            raise OperazioneNonConsentita("L'appuntamento appartiene a un altro paziente.")

        passi = _valida_passi(s, registro.sotto_trattamento_id, passi)
        gia_fatti = _passi_eseguiti(s, registro.id)

        adesso = datetime.now()
        for passo_id in passi:
            if passo_id in gia_fatti:
                continue
            s.add(PassoEseguito(appuntamento_id=app.id, passo_id=passo_id, registro_id=registro.id, completato_il=adesso))
        s.flush()

        if _tutti_eseguiti(s, registro):
            registro.completato = True
            logger.info("Trattamento %s completato nell'appuntamento %s", registro.id, app.id)
        return registro.completato


# =========================
# Gestione registri
# =========================
def segna_completato(registro_id: str) -> None:
    with db_session() as s:
        richiedi(s, RegistroTrattamento, registro_id, "Registro trattamento").completato = True


def aggiorna_costo(registro_id: str, costo_syp: float, costo_usd: float) -> None:
    _valida_costi(costo_syp, costo_usd)
    with db_session() as s:
        r = richiedi(s, RegistroTrattamento, registro_id, "Registro trattamento")
        r.costo_syp = costo_syp
        r.costo_usd = costo_usd


def elimina_registro(registro_id: str) -> None:
    with db_session() as s:
        registro = richiedi(s, RegistroTrattamento, registro_id, "Registro trattamento")
        s.execute(
            update(PianoTrattamento).where(PianoTrattamento.registro_id == registro.id).values(registro_id=None)
        )
        s.delete(registro)


def _nomi_passi(s: Session, registro_id: str) -> list[str]:
    return list(
        s.scalars(
            select(PassoTrattamento.nome)
            .join(PassoEseguito, PassoEseguito.passo_id == PassoTrattamento.id)
            .where(PassoEseguito.registro_id == registro_id)
            .order_by(PassoTrattamento.ordine)
        )
    )


def _registro_flat(
    s: Session, r: RegistroTrattamento, app: Appuntamento, paziente: Paziente, medico: Medico
) -> dict:
    return {
        "id": r.id,
        "eseguito_il": r.eseguito_il.isoformat(),
        "appuntamento_id": app.id,
        "appuntamento_inizio": app.inizio.isoformat(),
        "paziente_id": paziente.id,
        "paziente": paziente.nome_completo,
        "paziente_telefono": paziente.telefono,
        "medico_id": medico.id,
        "medico": medico.nome_completo,
        "trattamento": r.trattamento.nome,
        "sotto_trattamento": r.sotto_trattamento.nome,
        "numero_dente": r.numero_dente,
        "costo_syp": r.costo_syp,
        "costo_usd": r.costo_usd,
        "completato": r.completato,
        "note": r.note,
        "passi_eseguiti": _nomi_passi(s, r.id),
    }


def _query_registri():
    return (
        select(RegistroTrattamento, Appuntamento, Paziente, Medico)
        .join(Appuntamento, Appuntamento.id == RegistroTrattamento.appuntamento_id)
        .join(Paziente, Paziente.id == Appuntamento.paziente_id)
        .join(Medico, Medico.id == Appuntamento.medico_id)
    )


def registri_paziente(paziente_id: str) -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            _query_registri()
            .where(Appuntamento.paziente_id == paziente_id)
            .order_by(RegistroTrattamento.creato_il.desc())
        ).all()
        return [_registro_flat(s, *row) for row in rows]


def trattamenti_in_corso(
    nome_paziente: str | None = None,
    medico_id: str | None = None,
    stato: str = "tutti",
    da: date | None = None,
    a: date | None = None,
) -> list[dict]:
    """Vista 'trattamenti in corso' con filtri, dal più recente."""
    if stato not in STATI_FILTRO:
        raise ValueError(f"Stato filtro non valido: {stato}")

    q = _query_registri()
    start, end = intervallo_giorni(da, a)
    if start:
        q = q.where(RegistroTrattamento.eseguito_il >= start)
    if end:
        q = q.where(RegistroTrattamento.eseguito_il < end)
    if stato != "tutti":
        q = q.where(RegistroTrattamento.completato.is_(stato == "completati"))
    if medico_id:
        q = q.where(Appuntamento.medico_id == medico_id)

    with db_session() as s:
        rows = s.execute(q.order_by(RegistroTrattamento.eseguito_il.desc())).all()
        out = [_registro_flat(s, *row) for row in rows]

    if nome_paziente and nome_paziente.strip():
        cerca = nome_paziente.strip().lower()
        out = [r for r in out if cerca in r["paziente"].lower()]
    return out
