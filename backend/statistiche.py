from __future__ import annotations

from datetime import date

from sqlalchemy import func, select

from .db import db_session
from .models import Appuntamento, Pagamento, Paziente, RegistroTrattamento, Trattamento, Valuta
from .services import intervallo_giorni


def statistiche_dashboard() -> dict:
    """Totali generali per la dashboard."""
    with db_session() as s:
        pagamenti = dict(
            s.execute(select(Pagamento.valuta, func.sum(Pagamento.importo)).group_by(Pagamento.valuta)).all()
        )
        return {
            "pazienti": s.scalar(select(func.count(Paziente.id))),
            "appuntamenti": s.scalar(select(func.count(Appuntamento.id))),
            "trattamenti": s.scalar(select(func.count(Trattamento.id))),
            "incassi": {v.value: float(pagamenti.get(v) or 0) for v in Valuta},
        }


def statistiche_periodo(da: date | None = None, a: date | None = None) -> dict:
    """
    Statistiche nel periodo [da, a] (giorni inclusi).
    Default: dal primo del mese corrente a oggi.
    """
    oggi = date.today()
    da = da or oggi.replace(day=1)
    a = a or oggi
    if a < da:
        raise ValueError("La data finale precede la data iniziale.")
    start, end = intervallo_giorni(da, a)

    with db_session() as s:
        nuovi = s.scalar(select(func.count(Paziente.id)).where(Paziente.creato_il >= start, Paziente.creato_il < end))
        appuntamenti = s.scalar(
            select(func.count(Appuntamento.id)).where(Appuntamento.inizio >= start, Appuntamento.inizio < end)
        )
        n_trattamenti, costo_syp, costo_usd = s.execute(
            select(
                func.count(RegistroTrattamento.id),
                func.coalesce(func.sum(RegistroTrattamento.costo_syp), 0),
                func.coalesce(func.sum(RegistroTrattamento.costo_usd), 0),
            ).where(RegistroTrattamento.eseguito_il >= start, RegistroTrattamento.eseguito_il < end)
        ).one()
        pagato = dict(
            s.execute(
                select(Pagamento.valuta, func.sum(Pagamento.importo))
                .where(Pagamento.pagato_il >= start, Pagamento.pagato_il < end)
                .group_by(Pagamento.valuta)
            ).all()
        )

    costi = {Valuta.SYP.value: float(costo_syp), Valuta.USD.value: float(costo_usd)}
    incassi = {v.value: float(pagato.get(v) or 0) for v in Valuta}
    return {
        "da": da.isoformat(),
        "a": a.isoformat(),
        "nuovi_pazienti": nuovi,
        "appuntamenti": appuntamenti,
        "trattamenti_eseguiti": n_trattamenti,
        "costo_trattamenti": costi,
        "incassi": incassi,
        "ricavo": {v: incassi[v] - costi[v] for v in costi},
    }
