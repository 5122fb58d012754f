import pytest

from backend.cli import main
from backend.pazienti import cerca_pazienti
from backend.services import lista_appuntamenti_flat, lista_medici_flat


def test_init_e_list(capsys):
    main(["init"])
    main(["list", "medici"])
    out = capsys.readouterr().out
    assert "DB inizializzato" in out
    assert "Rossi Mario" in out


def test_paziente_prenotazione_stato(capsys):
    main(["init"])
    main(["add-patient", "--nome", "Anna", "--cognome", "Verdi", "--data-nascita", "1985-03-12", "--telefono", "0611"])
    paziente = cerca_pazienti("verdi")[0]
    medico = lista_medici_flat()[0]

    main(["book", "--paziente-id", paziente["id"], "--medico-id", medico["id"], "--inizio", "2026-01-14T10:30"])
    appuntamento = lista_appuntamenti_flat()[0]
    main(["status", "--appuntamento-id", appuntamento["id"], "--stato", "COMPLETATO"])
    assert lista_appuntamenti_flat()[0]["stato"] == "COMPLETATO"

    main(["bulk-delete", "--da", "2026-01-14", "--a", "2026-01-14"])
    assert "Appuntamenti eliminati: 1" in capsys.readouterr().out


def test_errore_di_dominio(capsys):
    with pytest.raises(SystemExit, match="obbligatorio"):
        main(["add-patient", "--nome", "Anna", "--cognome", "Verdi", "--data-nascita", "1985-03-12", "--telefono", " "])


def test_export(tmp_path):
    out = tmp_path / "log.xlsx"
    main(["export", "log", "--output", str(out)])
    assert out.read_bytes()[:2] == b"PK"


def test_list_trattamenti_valuta_predefinita(capsys, monkeypatch):
    main(["init"])
    capsys.readouterr()

    main(["list", "trattamenti"])
    assert "Endodonzia | 150 ل.س" in capsys.readouterr().out

    monkeypatch.setattr("backend.cli.VALUTA_PREDEFINITA", "USD")
    main(["list", "trattamenti"])
    assert "Endodonzia | $150" in capsys.readouterr().out
