"""Import/export fogli Excel (.xlsx) con openpyxl."""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from .attivita import lista_attivita
from .models import Valuta
from .pagamenti import pagamenti_paziente
from .pazienti import crea_paziente, get_paziente_flat
from .services import lista_appuntamenti_flat
from .trattamenti import registri_paziente, trattamenti_in_corso

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

COLONNE_OBBLIGATORIE = ("nome", "cognome", "data_nascita", "telefono")
COLONNE_OPZIONALI = ("contatto", "indirizzo", "professione", "note_mediche")


def _data(iso: str | None) -> str:
    return datetime.fromisoformat(iso).strftime("%d/%m/%Y") if iso else ""


def _foglio(wb: Workbook, titolo: str, righe: list[dict], intestazioni: list[str] | None = None) -> None:
    ws = wb.create_sheet(title=titolo[:31])
    intestazioni = intestazioni or (list(righe[0].keys()) if righe else [])
    ws.append(intestazioni)
    for riga in righe:
        ws.append([riga.get(h) for h in intestazioni])
    for i, h in enumerate(intestazioni, start=1):
        larghezza = max([len(str(h))] + [len(str(r.get(h) or "")) for r in righe])
        ws.column_dimensions[get_column_letter(i)].width = min(larghezza + 2, 60)


def _salva(wb: Workbook) -> bytes:
    # il foglio vuoto creato di default non serve
    if "Sheet" in wb.sheetnames and len(wb.sheetnames) > 1:
        del wb["Sheet"]
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def esporta_scheda_paziente(paziente_id: str) -> bytes:
    paziente = get_paziente_flat(paziente_id)
    appuntamenti = lista_appuntamenti_flat(paziente_id=paziente_id)
    registri = registri_paziente(paziente_id)
    pagamenti = pagamenti_paziente(paziente_id)

    costo = {v.value: 0.0 for v in Valuta}
    for r in registri:
        costo["SYP"] += r["costo_syp"] or 0
        costo["USD"] += r["costo_usd"] or 0
    pagato = {v.value: 0.0 for v in Valuta}
    for p in pagamenti:
        pagato[p["valuta"]] += p["importo"]

    wb = Workbook()
    _foglio(
        wb,
        "Paziente",
        [
            {
                "Nome": f"{paziente['nome']} {paziente['cognome']}",
                "Data di nascita": _data(paziente["data_nascita"]),
                "Telefono": paziente["telefono"],
                "Contatto": paziente["contatto"] or "-",
                "Note mediche": paziente["note_mediche"] or "-",
            }
        ],
    )
    _foglio(
        wb,
        "Riepilogo",
        [
            {
                "Costo totale SYP": round(costo["SYP"]),
                "Costo totale USD": costo["USD"],
                "Pagato SYP": round(pagato["SYP"]),
                "Pagato USD": pagato["USD"],
                "Saldo SYP": round(costo["SYP"] - pagato["SYP"]),
                "Saldo USD": costo["USD"] - pagato["USD"],
            }
        ],
    )
    _foglio(
        wb,
        "Appuntamenti",
        [
            {
                "Data": _data(a["inizio"]),
                "Ora": datetime.fromisoformat(a["inizio"]).strftime("%H:%M"),
                "Medico": a["medico"],
                "Stato": a["stato"],
                "Note": a["note"] or "-",
            }
            for a in appuntamenti
        ],
        ["Data", "Ora", "Medico", "Stato", "Note"],
    )
    _foglio(
        wb,
        "Trattamenti",
        [
            {
                "Data": _data(r["appuntamento_inizio"]),
                "Medico": r["medico"],
                "Trattamento": r["trattamento"],
                "Sotto-trattamento": r["sotto_trattamento"],
                "Dente": r["numero_dente"],
                "Costo SYP": round(r["costo_syp"] or 0),
                "Costo USD": r["costo_usd"] or 0,
                "Stato": "Completato" if r["completato"] else "Non completato",
            }
            for r in registri
        ],
        ["Data", "Medico", "Trattamento", "Sotto-trattamento", "Dente", "Costo SYP", "Costo USD", "Stato"],
    )
    _foglio(
        wb,
        "Pagamenti",
        [
            {
                "Data": _data(p["pagato_il"]),
                "Importo": round(p["importo"]),
                "Valuta": p["valuta"],
                "Appuntamento": _data(p["appuntamento_inizio"]),
                "Medico": p["medico"],
            }
            for p in pagamenti
        ],
        ["Data", "Importo", "Valuta", "Appuntamento", "Medico"],
    )
    return _salva(wb)


def esporta_trattamenti_in_corso(**filtri) -> bytes:
    righe = [
        {
            "Data": _data(r["eseguito_il"]),
            "Paziente": r["paziente"],
            "Dente": r["numero_dente"],
            "Trattamento": r["trattamento"],
            "Sotto-trattamento": r["sotto_trattamento"],
            "Passi eseguiti": ", ".join(r["passi_eseguiti"]),
            "Costo SYP": r["costo_syp"] or 0,
            "Costo USD": r["costo_usd"] or 0,
            "Stato": "Completato" if r["completato"] else "In corso",
            "Medico": r["medico"],
            "Note": r["note"] or "",
        }
        for r in trattamenti_in_corso(**filtri)
    ]
    wb = Workbook()
    _foglio(
        wb,
        "Trattamenti in corso",
        righe,
        [
            "Data",
            "Paziente",
            "Dente",
            "Trattamento",
            "Sotto-trattamento",
            "Passi eseguiti",
            "Costo SYP",
            "Costo USD",
            "Stato",
            "Medico",
            "Note",
        ],
    )
    return _salva(wb)


def esporta_log_attivita() -> bytes:
    righe = [
        {
            "Utente": log["utente"],
            "Azione": log["azione"],
            "Tipo": log["tipo_entita"] or "-",
            "Dettagli": str(log["dettagli"]) if log["dettagli"] else "-",
            "Data e ora": datetime.fromisoformat(log["creato_il"]).strftime("%d/%m/%Y %H:%M:%S"),
        }
        for log in lista_attivita()
    ]
    wb = Workbook()
    _foglio(wb, "Log attività", righe, ["Utente", "Azione", "Tipo", "Dettagli", "Data e ora"])
    return _salva(wb)


# =========================
# Import pazienti
# =========================
@dataclass
class EsitoImport:
    importati: list[str] = field(default_factory=list)
    errori: list[str] = field(default_factory=list)


def _parse_data(valore) -> date:
    if isinstance(valore, datetime):
        return valore.date()
    if isinstance(valore, date):
        return valore
    testo = str(valore or "").strip()
    for formato in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(testo, formato).date()
        except ValueError:
            continue
    raise ValueError(f"data non valida '{testo}'")


def importa_pazienti(contenuto: bytes) -> EsitoImport:
    """
    Prima riga: intestazioni (nome, cognome, data_nascita, telefono + opzionali).
    Le righe non valide vengono saltate e riportate in `errori`.
    """
    try:
        wb = load_workbook(io.BytesIO(contenuto), read_only=True, data_only=True)
    except (BadZipFile, InvalidFileException, KeyError) as e:
        logger.warning("Import pazienti: file non leggibile (%s)", e)
        raise ValueError("File Excel non valido.") from e

    esito = EsitoImport()
    try:
        righe = wb.active.iter_rows(values_only=True)
        try:
            intestazioni = [str(h or "").strip().lower() for h in next(righe)]
        except StopIteration:
            raise ValueError("Il file è vuoto.")

        mancanti = [c for c in COLONNE_OBBLIGATORIE if c not in intestazioni]
        if mancanti:
            raise ValueError(f"Colonne mancanti: {', '.join(mancanti)}")

        for n, valori in enumerate(righe, start=2):
            if not any(v not in (None, "") for v in valori):
                continue
            riga = dict(zip(intestazioni, valori))
            try:
                pid = crea_paziente(
                    nome=str(riga.get("nome") or ""),
                    cognome=str(riga.get("cognome") or ""),
                    data_nascita=_parse_data(riga.get("data_nascita")),
                    telefono=str(riga.get("telefono") or ""),
                    **{
                        c: (str(riga[c]) if riga.get(c) not in (None, "") else None)
                        for c in COLONNE_OPZIONALI
                        if c in riga
                    },
                )
                esito.importati.append(pid)
            except ValueError as e:
                esito.errori.append(f"Riga {n}: {e}")
    finally:
        wb.close()

    logger.info("Import pazienti: %d importati, %d errori", len(esito.importati), len(esito.errori))
    return esito
