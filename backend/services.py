from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import TypeVar
from urllib.parse import quote

from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from .db import db_session
from .errors import EntitaNonTrovata, OperazioneNonConsentita
from .models import (
    Appuntamento,
    Medico,
    Paziente,
    PianoTrattamento,
    StatoAppuntamento,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =========================
# Helper
# =========================
def richiedi(s: Session, modello: type[T], entita_id: object, nome: str) -> T:
    """s.get che solleva EntitaNonTrovata invece di ritornare None."""
    obj = s.get(modello, entita_id)
    if obj is None:
        raise EntitaNonTrovata(nome, entita_id)
    return obj


def intervallo_giorni(da: date | None, a: date | None) -> tuple[datetime | None, datetime | None]:
    """[da 00:00, a+1 00:00): giorni inclusi, fine esclusa."""
    start = datetime.combine(da, datetime.min.time()) if da else None
    end = datetime.combine(a, datetime.min.time()) + timedelta(days=1) if a else None
    return start, end


def fmt_data_ora(dt: datetime) -> str:
    return dt.strftime("%d/%m/%Y %H:%M")


def _app_flat(a: Appuntamento, paziente: Paziente, medico: Medico) -> dict:
    return {
        "id": a.id,
        "inizio": a.inizio.isoformat(),
        "stato": a.stato.value,
        "note": a.note,
        "paziente_id": paziente.id,
        "paziente": paziente.nome_completo,
        "paziente_telefono": paziente.telefono,
        "medico_id": medico.id,
        "medico": medico.nome_completo,
        "specializzazione": medico.specializzazione,
    }


# =========================
# Medici
# =========================
def crea_medico(
    nome: str,
    cognome: str,
    specializzazione: str,
    email: str | None = None,
    telefono: str | None = None,
) -> str:
    if not nome.strip() or not cognome.strip() or not specializzazione.strip():
        raise ValueError("Nome, cognome e specializzazione sono obbligatori.")
    with db_session() as s:
        m = Medico(
            nome=nome.strip(),
            cognome=cognome.strip(),
            specializzazione=specializzazione.strip(),
            email=email,
            telefono=telefono,
        )
        s.add(m)
        s.flush()
        return m.id


def lista_medici_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Medico.id, Medico.nome, Medico.cognome, Medico.specializzazione, Medico.telefono, Medico.email)
            .where(Medico.attivo.is_(True))
            .order_by(Medico.cognome, Medico.nome)
        ).all()
        return [
            {
                "id": r.id,
                "nome": r.nome,
                "cognome": r.cognome,
                "specializzazione": r.specializzazione,
                "telefono": r.telefono,
                "email": r.email,
            }
            for r in rows
        ]


def get_medico_flat(medico_id: str) -> dict:
    with db_session() as s:
        m = richiedi(s, Medico, medico_id, "Medico")
        return {
            "id": m.id,
            "nome": m.nome,
            "cognome": m.cognome,
            "specializzazione": m.specializzazione,
            "telefono": m.telefono,
            "email": m.email,
        }


def elimina_medico(medico_id: str) -> None:
    with db_session() as s:
        m = richiedi(s, Medico, medico_id, "Medico")
        # gli appuntamenti del medico vanno via a cascata
        _scollega_piani(s, [a.id for a in m.appuntamenti])
        s.delete(m)


# =========================
# Disponibilità
# =========================
def _inizio_libero(s: Session, medico_id: str, inizio: datetime, escludi_id: str | None = None) -> bool:
    """Un medico non ha due appuntamenti attivi con lo stesso orario di inizio."""
    q = select(Appuntamento.id).where(
        and_(
            Appuntamento.medico_id == medico_id,
            Appuntamento.inizio == inizio,
            Appuntamento.stato != StatoAppuntamento.ANNULLATO,
        )
    )
    if escludi_id:
        q = q.where(Appuntamento.id != escludi_id)
    return s.execute(q.limit(1)).first() is None


def nuovo_appuntamento(
    s: Session,
    paziente_id: str,
    medico_id: str,
    inizio: datetime,
    note: str | None = None,
) -> Appuntamento:
    """Inserimento dentro una sessione esistente (usato anche dai piani di trattamento)."""
    richiedi(s, Paziente, paziente_id, "Paziente")
    richiedi(s, Medico, medico_id, "Medico")

    if not _inizio_libero(s, medico_id, inizio):
        logger.warning("Orario occupato: medico %s alle %s", medico_id, inizio.isoformat())
        raise OperazioneNonConsentita("Il medico ha già un appuntamento a quest'ora.")

    app = Appuntamento(
        paziente_id=paziente_id,
        medico_id=medico_id,
        inizio=inizio,
        stato=StatoAppuntamento.PROGRAMMATO,
        note=note or None,
    )
    s.add(app)
    s.flush()
    logger.info("Appuntamento %s creato per %s", app.id, fmt_data_ora(inizio))
    return app


# =========================
# Appuntamenti (use case core)
# =========================
def crea_appuntamento(paziente_id: str, medico_id: str, inizio: datetime, note: str | None = None) -> str:
    with db_session() as s:
        return nuovo_appuntamento(s, paziente_id, medico_id, inizio, note).id


def get_appuntamento_flat(appuntamento_id: str) -> dict:
    with db_session() as s:
        a = richiedi(s, Appuntamento, appuntamento_id, "Appuntamento")
        return _app_flat(a, a.paziente, a.medico)


def lista_appuntamenti_flat(
    medico_id: str | None = None,
    giorno: date | None = None,
    stato: StatoAppuntamento | None = None,
    paziente_id: str | None = None,
) -> list[dict]:
    """Elenco filtrabile, dal più recente."""
    q = (
        select(Appuntamento, Paziente, Medico)
        .join(Paziente, Paziente.id == Appuntamento.paziente_id)
        .join(Medico, Medico.id == Appuntamento.medico_id)
    )
    if medico_id:
        q = q.where(Appuntamento.medico_id == medico_id)
    if paziente_id:
        q = q.where(Appuntamento.paziente_id == paziente_id)
    if giorno:
        start, end = intervallo_giorni(giorno, giorno)
        q = q.where(Appuntamento.inizio >= start, Appuntamento.inizio < end)
    if stato:
        q = q.where(Appuntamento.stato == stato)

    with db_session() as s:
        rows = s.execute(q.order_by(Appuntamento.inizio.desc())).all()
        return [_app_flat(a, p, m) for a, p, m in rows]


def agenda_giornaliera_flat(medico_id: str, giorno: date) -> list[dict]:
    """
    Versione 'flat' (safe per Streamlit): ritorna dict serializzabili.
    Appuntamenti non annullati del giorno, in ordine di orario.
    """
    start_day, end_day = intervallo_giorni(giorno, giorno)

    with db_session() as s:
        q = (
            select(
                Appuntamento.id,
                Appuntamento.inizio,
                Appuntamento.stato,
                Appuntamento.note,
                Paziente.nome,
                Paziente.cognome,
                Paziente.telefono,
            )
            .join(Paziente, Paziente.id == Appuntamento.paziente_id)
            .where(
                and_(
                    Appuntamento.medico_id == medico_id,
                    Appuntamento.inizio >= start_day,
                    Appuntamento.inizio < end_day,
                    Appuntamento.stato != StatoAppuntamento.ANNULLATO,
                )
            )
            .order_by(Appuntamento.inizio.asc())
        )

        rows = s.execute(q).all()
        return [
            {
                "id": r.id,
                "ora": r.inizio.strftime("%H:%M"),
                "stato": r.stato.value,
                "note": r.note,
                "paziente": f"{r.nome} {r.cognome}",
                "telefono": r.telefono,
            }
            for r in rows
        ]


def appuntamenti_futuri_paziente(paziente_id: str, adesso: datetime | None = None) -> list[dict]:
    adesso = adesso or datetime.now()
    with db_session() as s:
        rows = s.execute(
            select(Appuntamento.id, Appuntamento.inizio, Appuntamento.stato, Medico.nome, Medico.cognome)
            .join(Medico, Medico.id == Appuntamento.medico_id)
            .where(Appuntamento.paziente_id == paziente_id, Appuntamento.inizio >= adesso)
            .order_by(Appuntamento.inizio.asc())
        ).all()
        return [
            {
                "id": r.id,
                "inizio": r.inizio.isoformat(),
                "stato": r.stato.value,
                "medico": f"{r.nome} {r.cognome}",
            }
            for r in rows
        ]


def aggiorna_stato(appuntamento_id: str, stato: StatoAppuntamento) -> None:
    with db_session() as s:
        app = richiedi(s, Appuntamento, appuntamento_id, "Appuntamento")
        if stato != StatoAppuntamento.ANNULLATO and app.stato == StatoAppuntamento.ANNULLATO:
            if not _inizio_libero(s, app.medico_id, app.inizio, escludi_id=app.id):
                raise OperazioneNonConsentita("Il medico ha già un appuntamento a quest'ora.")
        app.stato = stato
        logger.info("Appuntamento %s -> %s", app.id, stato.value)


def _scollega_piani(s: Session, appuntamento_ids: list[str]) -> None:
    # i piani eseguiti restano eseguiti, perdono solo il riferimento
    s.execute(
        update(PianoTrattamento)
        .where(PianoTrattamento.appuntamento_id.in_(appuntamento_ids))
        .values(appuntamento_id=None, registro_id=None)
    )


def elimina_appuntamento(appuntamento_id: str) -> None:
    with db_session() as s:
        app = richiedi(s, Appuntamento, appuntamento_id, "Appuntamento")
        _scollega_piani(s, [app.id])
        s.delete(app)


def elimina_appuntamenti_intervallo(
    da: date,
    a: date,
    medico_id: str | None = None,
    stato: StatoAppuntamento | None = None,
) -> int:
    """
    Cancellazione massiva degli appuntamenti con inizio nei giorni [da, a].
    Registri, pagamenti e passi eseguiti vengono rimossi a cascata.
    """
    if a < da:
        raise ValueError("La data finale precede la data iniziale.")

    start, end = intervallo_giorni(da, a)
    q = select(Appuntamento).where(Appuntamento.inizio >= start, Appuntamento.inizio < end)
    if medico_id:
        q = q.where(Appuntamento.medico_id == medico_id)
    if stato:
        q = q.where(Appuntamento.stato == stato)

    with db_session() as s:
        apps = list(s.scalars(q))
        if not apps:
            return 0
        _scollega_piani(s, [app.id for app in apps])
        for app in apps:
            s.delete(app)
        logger.info("Cancellati %d appuntamenti tra %s e %s", len(apps), da.isoformat(), a.isoformat())
        return len(apps)


# =========================
# Promemoria WhatsApp
# =========================
def link_whatsapp(appuntamento_id: str) -> str:
    """Deep link wa.me con il promemoria dell'appuntamento."""
    with db_session() as s:
        app = richiedi(s, Appuntamento, appuntamento_id, "Appuntamento")
        paziente, medico = app.paziente, app.medico

        numero = re.sub(r"[^0-9]", "", paziente.telefono or "")
        if not numero:
            raise ValueError("Numero di telefono del paziente non disponibile.")

        righe = [
            f"Gentile {paziente.nome_completo},",
            "",
            "le ricordiamo il suo appuntamento presso lo studio:",
            f"Data: {app.inizio.strftime('%d/%m/%Y')}",
            f"Ora: {app.inizio.strftime('%H:%M')}",
            f"Medico: {medico.nome_completo}",
            f"Specializzazione: {medico.specializzazione}",
        ]
        if app.note:
            righe.append(f"Note: {app.note}")
        righe += ["", "La preghiamo di presentarsi 15 minuti prima.", "", "Grazie"]

        return f"https://wa.me/{numero}?text={quote(chr(10).join(righe))}"
