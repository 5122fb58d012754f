import io
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from backend.api_main import app
from backend.auth_security import create_access_token, get_ruolo, get_subject
from backend.esportazione import XLSX_MEDIA_TYPE
from backend.models import Ruolo


@pytest.fixture
def client():
    # il context manager esegue lo startup (tabelle + seed)
    with TestClient(app) as c:
        yield c


def _headers(client: TestClient, username: str, password: str = "segreta123") -> dict[str, str]:
    """Registra l'utente, fa login e ritorna l'header Authorization."""
    r = client.post("/api/auth/register", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    r = client.post("/api/auth/login", data={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def admin(client):
    return _headers(client, "admin")


@pytest.fixture
def dati(client, admin):
    """Paziente, medico e appuntamento di domani alle 10 creati come admin."""
    medico = client.get("/api/medici", headers=admin).json()[0]
    r = client.post(
        "/api/pazienti",
        json={"nome": "Anna", "cognome": "Verdi", "data_nascita": "1985-03-12", "telefono": "+39 333 1234567"},
        headers=admin,
    )
    paziente_id = r.json()["paziente_id"]
    inizio = (datetime.now() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)
    r = client.post(
        "/api/appuntamenti",
        json={"paziente_id": paziente_id, "medico_id": medico["id"], "inizio": inizio.isoformat()},
        headers=admin,
    )
    assert r.status_code == 200, r.text
    return {
        "paziente_id": paziente_id,
        "medico_id": medico["id"],
        "inizio": inizio,
        "appuntamento_id": r.json()["appuntamento_id"],
    }


def _devitalizzazione(client, headers) -> tuple[dict, dict]:
    catalogo = client.get("/api/catalogo", headers=headers).json()
    t = next(t for t in catalogo if t["nome"] == "Endodonzia")
    return t, t["sotto_trattamenti"][0]


def _imposta_ruolo(client, admin, username, ruolo) -> None:
    utente = next(u for u in client.get("/api/utenti", headers=admin).json() if u["username"] == username)
    r = client.put(f"/api/utenti/{utente['id']}/ruolo", json={"ruolo": ruolo}, headers=admin)
    assert r.status_code == 200


def test_primo_utente_super_admin(client, admin):
    me = client.get("/api/me", headers=admin).json()
    assert me["username"] == "admin"
    assert me["ruolo"] == "SUPER_ADMIN"

    altro = _headers(client, "reception")
    assert client.get("/api/me", headers=altro).json()["ruolo"] == "RECEPTIONIST"


def test_registrazione_duplicata(client, admin):
    r = client.post("/api/auth/register", json={"username": "ADMIN", "password": "x"})
    assert r.status_code == 400


def test_login_errato(client, admin):
    r = client.post("/api/auth/login", data={"username": "admin", "password": "sbagliata"})
    assert r.status_code == 401


def test_token_obbligatorio(client):
    assert client.get("/api/pazienti").status_code == 401
    r = client.get("/api/pazienti", headers={"Authorization": "Bearer non-valido"})
    assert r.status_code == 401


def test_seed_base(client, admin):
    assert len(client.get("/api/medici", headers=admin).json()) == 2
    _, devit = _devitalizzazione(client, admin)
    assert devit["associazione_denti"] == "DENTE_SINGOLO"
    assert len(devit["passi"]) == 3
    assert len(client.get("/api/permessi", headers=admin).json()) == 12


def test_paziente_inesistente_404(client, admin):
    r = client.get("/api/pazienti/non-esiste", headers=admin)
    assert r.status_code == 404
    assert "non trovato" in r.json()["detail"]


def test_appuntamento_duplicato_400(client, admin, dati):
    r = client.post(
        "/api/appuntamenti",
        json={
            "paziente_id": dati["paziente_id"],
            "medico_id": dati["medico_id"],
            "inizio": dati["inizio"].isoformat(),
        },
        headers=admin,
    )
    assert r.status_code == 400
    assert "già un appuntamento" in r.json()["detail"]


def test_flusso_trattamento(client, admin, dati):
    t, devit = _devitalizzazione(client, admin)
    passi = [p["id"] for p in devit["passi"]]

    r = client.post(
        "/api/registri",
        json={
            "appuntamento_id": dati["appuntamento_id"],
            "trattamento_id": t["id"],
            "sotto_trattamento_id": devit["id"],
            "numero_dente": "36",
            "costo_syp": 150000,
            "passi": passi[:1],
        },
        headers=admin,
    )
    assert r.status_code == 200, r.text
    registro_id = r.json()["registro_id"]

    pid = dati["paziente_id"]
    aperti = client.get(f"/api/pazienti/{pid}/non-completati", headers=admin).json()
    assert [a["id"] for a in aperti] == [registro_id]

    r = client.post(
        "/api/appuntamenti",
        json={
            "paziente_id": pid,
            "medico_id": dati["medico_id"],
            "inizio": (dati["inizio"] + timedelta(days=7)).isoformat(),
        },
        headers=admin,
    )
    seconda = r.json()["appuntamento_id"]
    r = client.post(
        f"/api/registri/{registro_id}/riprendi",
        json={"appuntamento_id": seconda, "passi": passi[1:]},
        headers=admin,
    )
    assert r.json() == {"ok": True, "completato": True}
    assert client.get(f"/api/pazienti/{pid}/non-completati", headers=admin).json() == []

    r = client.post(
        "/api/pagamenti",
        json={"appuntamento_id": seconda, "importo": 100000, "valuta": "SYP"},
        headers=admin,
    )
    assert r.status_code == 200
    assert client.get(f"/api/pazienti/{pid}/saldo", headers=admin).json() == {"SYP": 50000, "USD": 0}

    in_corso = client.get("/api/trattamenti-in-corso", params={"stato": "completati"}, headers=admin).json()
    assert [r["id"] for r in in_corso] == [registro_id]


def test_dente_non_valido_400(client, admin, dati):
    t, devit = _devitalizzazione(client, admin)
    r = client.post(
        "/api/registri",
        json={
            "appuntamento_id": dati["appuntamento_id"],
            "trattamento_id": t["id"],
            "sotto_trattamento_id": devit["id"],
            "numero_dente": "99",
        },
        headers=admin,
    )
    assert r.status_code == 400


def test_permessi_receptionist(client, admin, dati):
    reception = _headers(client, "reception")
    t, devit = _devitalizzazione(client, admin)

    # può gestire appuntamenti e pagamenti
    r = client.post(
        "/api/pagamenti",
        json={"appuntamento_id": dati["appuntamento_id"], "importo": 5000},
        headers=reception,
    )
    assert r.status_code == 200
    pagamento_id = r.json()["pagamento_id"]

    # ma non registrare trattamenti o eliminare pagamenti
    r = client.post(
        "/api/registri",
        json={
            "appuntamento_id": dati["appuntamento_id"],
            "trattamento_id": t["id"],
            "sotto_trattamento_id": devit["id"],
            "numero_dente": "11",
        },
        headers=reception,
    )
    assert r.status_code == 403
    assert client.delete(f"/api/pagamenti/{pagamento_id}", headers=reception).status_code == 403

    # né accedere al log attività
    assert client.get("/api/log-attivita", headers=reception).status_code == 403


def test_assistente_senza_pagamenti(client, admin, dati):
    assistente = _headers(client, "assistente")
    _imposta_ruolo(client, admin, "assistente", "ASSISTENTE")

    r = client.post(
        "/api/pagamenti",
        json={"appuntamento_id": dati["appuntamento_id"], "importo": 5000},
        headers=assistente,
    )
    assert r.status_code == 403
    r = client.get("/api/permessi/verifica", params={"risorsa": "pagamenti", "azione": "creare"}, headers=assistente)
    assert r.json() == {"consentito": False}


def test_aggiorna_permesso_solo_super_admin(client, admin):
    reception = _headers(client, "reception")
    riga = next(
        p
        for p in client.get("/api/permessi", params={"ruolo": "RECEPTIONIST"}, headers=admin).json()
        if p["risorsa"] == "registri_trattamento"
    )

    payload = {"campo": "puo_creare", "valore": True}
    assert client.put(f"/api/permessi/{riga['id']}", json=payload, headers=reception).status_code == 403
    assert client.put(f"/api/permessi/{riga['id']}", json=payload, headers=admin).status_code == 200

    r = client.get(
        "/api/permessi/verifica", params={"risorsa": "registri_trattamento", "azione": "creare"}, headers=reception
    )
    assert r.json() == {"consentito": True}


def test_esegui_piano(client, admin, dati):
    t, devit = _devitalizzazione(client, admin)
    pid = dati["paziente_id"]
    r = client.post(
        "/api/piani",
        json={"paziente_id": pid, "trattamento_id": t["id"], "sotto_trattamento_id": devit["id"], "numero_dente": "46"},
        headers=admin,
    )
    piano_id = r.json()["piano_id"]

    r = client.post(
        f"/api/piani/{piano_id}/esegui",
        json={"appuntamento_id": dati["appuntamento_id"], "importo_pagamento": 20, "valuta_pagamento": "USD"},
        headers=admin,
    )
    assert r.status_code == 200, r.text
    assert r.json()["appuntamento_id"] == dati["appuntamento_id"]
    assert r.json()["pagamento_id"]

    r = client.post(f"/api/piani/{piano_id}/esegui", json={"appuntamento_id": dati["appuntamento_id"]}, headers=admin)
    assert r.status_code == 400


def test_elimina_intervallo(client, admin, dati):
    giorno = dati["inizio"].date()
    r = client.post(
        "/api/appuntamenti/elimina-intervallo",
        json={"da": giorno.isoformat(), "a": giorno.isoformat()},
        headers=admin,
    )
    assert r.json() == {"ok": True, "eliminati": 1}
    assert client.get("/api/appuntamenti", headers=admin).json() == []


def test_whatsapp_e_agenda(client, admin, dati):
    r = client.get(f"/api/appuntamenti/{dati['appuntamento_id']}/whatsapp", headers=admin)
    assert r.json()["url"].startswith("https://wa.me/393331234567?text=")

    agenda = client.get(
        "/api/agenda",
        params={"medico_id": dati["medico_id"], "giorno": dati["inizio"].date().isoformat()},
        headers=admin,
    ).json()
    assert [a["paziente"] for a in agenda] == ["Anna Verdi"]


def test_statistiche(client, admin, dati):
    dash = client.get("/api/statistiche/dashboard", headers=admin).json()
    assert dash["pazienti"] == 1
    r = client.get("/api/statistiche", params={"da": "2026-05-01", "a": "2026-04-01"}, headers=admin)
    assert r.status_code == 400


def test_export_e_log(client, admin, dati):
    r = client.get(f"/api/pazienti/{dati['paziente_id']}/export", headers=admin)
    assert r.status_code == 200
    assert r.headers["content-type"] == XLSX_MEDIA_TYPE
    assert r.content[:2] == b"PK"

    azioni = [log["azione"] for log in client.get("/api/log-attivita", headers=admin).json()]
    assert "crea_paziente" in azioni
    assert "crea_appuntamento" in azioni
    assert "esporta_paziente" in azioni

    r = client.get("/api/log-attivita/export", headers=admin)
    assert r.headers["content-type"] == XLSX_MEDIA_TYPE


def test_import_pazienti(client, admin):
    wb = Workbook()
    wb.active.append(["nome", "cognome", "data_nascita", "telefono"])
    wb.active.append(["Giulia", "Russo", "1992-07-04", "0611"])
    buf = io.BytesIO()
    wb.save(buf)

    r = client.post(
        "/api/pazienti/import",
        files={"file": ("pazienti.xlsx", buf.getvalue(), XLSX_MEDIA_TYPE)},
        headers=admin,
    )
    assert r.status_code == 200, r.text
    assert r.json()["importati"] == 1
    assert [p["cognome"] for p in client.get("/api/pazienti", params={"q": "russo"}, headers=admin).json()] == [
        "Russo"
    ]


def test_catalogo_solo_super_admin(client, admin):
    reception = _headers(client, "reception")
    payload = {"nome": "Ortodonzia", "costo_stimato": 900}
    assert client.post("/api/trattamenti", json=payload, headers=reception).status_code == 403
    r = client.post("/api/trattamenti", json=payload, headers=admin)
    assert r.status_code == 200
    tid = r.json()["trattamento_id"]

    r = client.post(
        f"/api/trattamenti/{tid}/sotto-trattamenti",
        json={"nome": "Apparecchio fisso", "associazione_denti": "DENTI_MULTIPLI"},
        headers=admin,
    )
    sid = r.json()["sotto_trattamento_id"]
    r = client.post(f"/api/sotto-trattamenti/{sid}/passi", json={"nome": "Impronte", "ordine": 1}, headers=admin)
    assert r.status_code == 200
    assert [p["nome"] for p in client.get(f"/api/sotto-trattamenti/{sid}/passi", headers=admin).json()] == ["Impronte"]

    assert client.post("/api/trattamenti", json=payload, headers=admin).status_code == 400


def test_assistente_pagamenti_anche_se_abilitato(client, admin, dati):
    assistente = _headers(client, "assistente")
    _imposta_ruolo(client, admin, "assistente", "ASSISTENTE")
    riga = next(
        p
        for p in client.get("/api/permessi", params={"ruolo": "ASSISTENTE"}, headers=admin).json()
        if p["risorsa"] == "pagamenti"
    )
    r = client.put(f"/api/permessi/{riga['id']}", json={"campo": "puo_creare", "valore": True}, headers=admin)
    assert r.status_code == 200

    r = client.post(
        "/api/pagamenti",
        json={"appuntamento_id": dati["appuntamento_id"], "importo": 5000},
        headers=assistente,
    )
    assert r.status_code == 403

    t, devit = _devitalizzazione(client, admin)
    r = client.post(
        "/api/piani",
        json={
            "paziente_id": dati["paziente_id"],
            "trattamento_id": t["id"],
            "sotto_trattamento_id": devit["id"],
            "numero_dente": "46",
        },
        headers=admin,
    )
    piano_id = r.json()["piano_id"]
    r = client.post(
        f"/api/piani/{piano_id}/esegui",
        json={"appuntamento_id": dati["appuntamento_id"], "importo_pagamento": 20},
        headers=assistente,
    )
    assert r.status_code == 403


def test_import_file_non_excel_400(client, admin):
    r = client.post(
        "/api/pazienti/import",
        files={"file": ("pazienti.xlsx", b"not a spreadsheet", XLSX_MEDIA_TYPE)},
        headers=admin,
    )
    assert r.status_code == 400
    assert r.json()["detail"] == "File Excel non valido."


def test_trattamento_in_uso_non_eliminabile(client, admin, dati):
    t, devit = _devitalizzazione(client, admin)
    r = client.post(
        "/api/registri",
        json={
            "appuntamento_id": dati["appuntamento_id"],
            "trattamento_id": t["id"],
            "sotto_trattamento_id": devit["id"],
            "numero_dente": "11",
            "costo_usd": 100,
        },
        headers=admin,
    )
    assert r.status_code == 200, r.text

    assert client.delete(f"/api/trattamenti/{t['id']}", headers=admin).status_code == 400
    assert client.delete(f"/api/sotto-trattamenti/{devit['id']}", headers=admin).status_code == 400

    r = client.get(f"/api/pazienti/{dati['paziente_id']}/registri", headers=admin)
    assert r.status_code == 200
    assert [x["trattamento"] for x in r.json()] == ["Endodonzia"]


def test_token_con_ruolo():
    token = create_access_token("u-1", "admin", Ruolo.MEDICO)
    assert get_subject(token) == "u-1"
    assert get_ruolo(token) == Ruolo.MEDICO
    assert get_ruolo("non-valido") is None
