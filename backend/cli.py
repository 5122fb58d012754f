from __future__ import annotations

import argparse
from datetime import date, datetime
from pathlib import Path

from backend.config import VALUTA_PREDEFINITA, configura_logging
from backend.db import init_db
from backend.esportazione import esporta_log_attivita, esporta_scheda_paziente, esporta_trattamenti_in_corso
from backend.models import StatoAppuntamento
from backend.pazienti import cerca_pazienti, crea_paziente, saldo_paziente
from backend.pagamenti import formatta_valuta
from backend.seed import seed_base
from backend.services import (
    aggiorna_stato,
    crea_appuntamento,
    elimina_appuntamenti_intervallo,
    fmt_data_ora,
    lista_appuntamenti_flat,
    lista_medici_flat,
)
from backend.catalogo import catalogo_flat


def cmd_init(args: argparse.Namespace) -> None:
    seed_base()
    print("DB inizializzato e seed completato.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "medici":
        for m in lista_medici_flat():
            print(f"{m['id']} | {m['cognome']} {m['nome']} | {m['specializzazione']}")
    elif args.entity == "pazienti":
        for p in cerca_pazienti(args.cerca):
            saldo = saldo_paziente(p["id"])
            print(
                f"{p['id']} | {p['cognome']} {p['nome']} | {p['telefono']} | "
                f"saldo {formatta_valuta(saldo['SYP'], 'SYP')} / {formatta_valuta(saldo['USD'], 'USD')}"
            )
    elif args.entity == "appuntamenti":
        for a in lista_appuntamenti_flat():
            inizio = fmt_data_ora(datetime.fromisoformat(a["inizio"]))
            print(f"{a['id']} | {inizio} | {a['paziente']} | {a['medico']} | {a['stato']}")
    elif args.entity == "trattamenti":
        for t in catalogo_flat():
            print(f"{t['id']} | {t['nome']} | {formatta_valuta(t['costo_stimato'], VALUTA_PREDEFINITA)}")
            for st in t["sotto_trattamenti"]:
                print(f"    {st['id']} | {st['nome']} ({st['associazione_denti']}, {st['progresso']}%)")


def cmd_add_patient(args: argparse.Namespace) -> None:
    pid = crea_paziente(
        args.nome,
        args.cognome,
        date.fromisoformat(args.data_nascita),
        args.telefono,
        contatto=args.contatto,
        note_mediche=args.note_mediche,
    )
    print(f"Paziente creato: {pid}")


def cmd_book(args: argparse.Namespace) -> None:
    inizio = datetime.fromisoformat(args.inizio)  # formato: 2026-01-14T10:30
    aid = crea_appuntamento(args.paziente_id, args.medico_id, inizio, args.note)
    print(f"Appuntamento ID: {aid}")


def cmd_status(args: argparse.Namespace) -> None:
    aggiorna_stato(args.appuntamento_id, StatoAppuntamento(args.stato))
    print(f"Appuntamento {args.appuntamento_id}: {args.stato}")


def cmd_bulk_delete(args: argparse.Namespace) -> None:
    n = elimina_appuntamenti_intervallo(
        date.fromisoformat(args.da),
        date.fromisoformat(args.a),
        medico_id=args.medico_id,
        stato=StatoAppuntamento(args.stato) if args.stato else None,
    )
    print(f"Appuntamenti eliminati: {n}")


def cmd_export(args: argparse.Namespace) -> None:
    """Scrive su file il foglio Excel richiesto."""
    if args.cosa == "paziente":
        if not args.paziente_id:
            raise SystemExit("--paziente-id è obbligatorio per l'export del paziente")
        contenuto = esporta_scheda_paziente(args.paziente_id)
    elif args.cosa == "trattamenti":
        contenuto = esporta_trattamenti_in_corso()
    else:
        contenuto = esporta_log_attivita()

    out = Path(args.output or f"{args.cosa}_{date.today().isoformat()}.xlsx")
    out.write_bytes(contenuto)
    print(f"File scritto: {out}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="studio_dentistico_cli", description="CLI Studio Dentistico")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB e carica seed")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista entità")
    p_list.add_argument("entity", choices=["medici", "pazienti", "appuntamenti", "trattamenti"])
    p_list.add_argument("--cerca", default=None, help="Filtro per nome (solo pazienti)")
    p_list.set_defaults(func=cmd_list)

    p_addp = sub.add_parser("add-patient", help="Crea paziente")
    p_addp.add_argument("--nome", required=True)
    p_addp.add_argument("--cognome", required=True)
    p_addp.add_argument("--data-nascita", required=True, help="ISO date es: 1990-05-20")
    p_addp.add_argument("--telefono", required=True)
    p_addp.add_argument("--contatto", default=None)
    p_addp.add_argument("--note-mediche", default=None)
    p_addp.set_defaults(func=cmd_add_patient)

    p_book = sub.add_parser("book", help="Prenota appuntamento")
    p_book.add_argument("--paziente-id", required=True)
    p_book.add_argument("--medico-id", required=True)
    p_book.add_argument("--inizio", required=True, help="ISO datetime es: 2026-01-14T10:30")
    p_book.add_argument("--note", default=None)
    p_book.set_defaults(func=cmd_book)

    p_status = sub.add_parser("status", help="Cambia stato appuntamento")
    p_status.add_argument("--appuntamento-id", required=True)
    p_status.add_argument("--stato", required=True, choices=[s.value for s in StatoAppuntamento])
    p_status.set_defaults(func=cmd_status)

    p_bulk = sub.add_parser("bulk-delete", help="Elimina appuntamenti in un intervallo di giorni")
    p_bulk.add_argument("--da", required=True, help="ISO date")
    p_bulk.add_argument("--a", required=True, help="ISO date (inclusa)")
    p_bulk.add_argument("--medico-id", default=None)
    p_bulk.add_argument("--stato", default=None, choices=[s.value for s in StatoAppuntamento])
    p_bulk.set_defaults(func=cmd_bulk_delete)

    p_exp = sub.add_parser("export", help="Esporta fogli Excel")
    p_exp.add_argument("cosa", choices=["paziente", "trattamenti", "log"])
    p_exp.add_argument("--paziente-id", default=None)
    p_exp.add_argument("--output", default=None)
    p_exp.set_defaults(func=cmd_export)

    return p


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configura_logging()
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except ValueError as e:
        raise SystemExit(f"Errore: {e}")


if __name__ == "__main__":
    main()
