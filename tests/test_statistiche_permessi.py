from datetime import date, timedelta

import pytest

from backend.attivita import lista_attivita, registra_attivita
from backend.errors import PermessoNegato
from backend.models import Ruolo, Valuta
from backend.pagamenti import registra_pagamento
from backend.permessi import (
    aggiorna_permesso,
    lista_permessi_flat,
    puo_gestire_pagamenti,
    richiedi_permesso,
    seed_permessi,
    verifica_permesso,
)
from backend.statistiche import statistiche_dashboard, statistiche_periodo
from backend.trattamenti import registra_trattamento


def test_dashboard(appuntamento_id, endodonzia, igiene):
    registra_pagamento(appuntamento_id, 3000)
    registra_pagamento(appuntamento_id, 2000)
    registra_pagamento(appuntamento_id, 15, Valuta.USD)

    dash = statistiche_dashboard()
    assert dash["pazienti"] == 1
    assert dash["appuntamenti"] == 1
    assert dash["trattamenti"] == 2
    assert dash["incassi"] == {"SYP": 5000, "USD": 15}


def test_statistiche_periodo(appuntamento_id, endodonzia):
    registra_trattamento(
        appuntamento_id,
        endodonzia["trattamento_id"],
        endodonzia["sotto_trattamento_id"],
        "11",
        costo_syp=80000,
        costo_usd=10,
    )
    registra_pagamento(appuntamento_id, 100000)

    oggi = date.today()
    stat = statistiche_periodo(oggi - timedelta(days=1), oggi + timedelta(days=2))
    assert stat["nuovi_pazienti"] == 1
    assert stat["appuntamenti"] == 1
    assert stat["trattamenti_eseguiti"] == 1
    assert stat["costo_trattamenti"] == {"SYP": 80000, "USD": 10}
    assert stat["incassi"] == {"SYP": 100000, "USD": 0}
    assert stat["ricavo"] == {"SYP": 20000, "USD": -10}


def test_statistiche_periodo_default_e_date_invertite():
    stat = statistiche_periodo()
    assert stat["da"] == date.today().replace(day=1).isoformat()
    assert stat["a"] == date.today().isoformat()
    with pytest.raises(ValueError):
        statistiche_periodo(date(2026, 5, 1), date(2026, 4, 1))


def test_seed_permessi_idempotente():
    seed_permessi()
    seed_permessi()
    assert len(lista_permessi_flat()) == len(Ruolo) * 3


def test_matrice_default():
    seed_permessi()
    assert verifica_permesso(Ruolo.MEDICO, "pagamenti", "creare")
    assert not verifica_permesso(Ruolo.MEDICO, "pagamenti", "eliminare")
    assert not verifica_permesso(Ruolo.ASSISTENTE, "pagamenti", "creare")
    assert not verifica_permesso(Ruolo.RECEPTIONIST, "registri_trattamento", "creare")
    assert verifica_permesso(Ruolo.RECEPTIONIST, "appuntamenti", "eliminare")
    assert verifica_permesso(Ruolo.SUPER_ADMIN, "pagamenti", "eliminare")


def test_super_admin_sempre_autorizzato():
    # anche senza righe in tabella
    assert verifica_permesso(Ruolo.SUPER_ADMIN, "appuntamenti", "eliminare")
    assert not verifica_permesso(Ruolo.MEDICO, "appuntamenti", "creare")


def test_richiedi_permesso_e_aggiornamento():
    seed_permessi()
    with pytest.raises(PermessoNegato):
        richiedi_permesso(Ruolo.ASSISTENTE, "appuntamenti", "eliminare")

    riga = next(p for p in lista_permessi_flat(Ruolo.ASSISTENTE) if p["risorsa"] == "appuntamenti")
    aggiorna_permesso(riga["id"], "puo_eliminare", True)
    richiedi_permesso(Ruolo.ASSISTENTE, "appuntamenti", "eliminare")

    # il seed non sovrascrive le modifiche
    seed_permessi()
    assert verifica_permesso(Ruolo.ASSISTENTE, "appuntamenti", "eliminare")


def test_risorsa_o_azione_sconosciuta():
    with pytest.raises(ValueError):
        verifica_permesso(Ruolo.MEDICO, "fatture", "creare")
    with pytest.raises(ValueError):
        verifica_permesso(Ruolo.MEDICO, "pagamenti", "stampare")
    with pytest.raises(ValueError):
        aggiorna_permesso(1, "puo_volare", True)


def test_puo_gestire_pagamenti():
    assert puo_gestire_pagamenti(Ruolo.RECEPTIONIST)
    assert puo_gestire_pagamenti(Ruolo.SUPER_ADMIN)
    assert not puo_gestire_pagamenti(Ruolo.ASSISTENTE)


def test_log_attivita():
    registra_attivita("admin", "login")
    registra_attivita("admin", "crea_paziente", "paziente", "p-1", {"nome": "Anna Verdi"})
    logs = lista_attivita()
    assert [log["azione"] for log in logs] == ["crea_paziente", "login"]
    assert logs[0]["dettagli"] == {"nome": "Anna Verdi"}
    assert len(lista_attivita(limit=1)) == 1


def test_assistente_mai_sui_pagamenti():
    seed_permessi()
    riga = next(p for p in lista_permessi_flat(Ruolo.ASSISTENTE) if p["risorsa"] == "pagamenti")
    aggiorna_permesso(riga["id"], "puo_creare", True)

    assert not verifica_permesso(Ruolo.ASSISTENTE, "pagamenti", "creare")
    with pytest.raises(PermessoNegato):
        richiedi_permesso(Ruolo.ASSISTENTE, "pagamenti", "creare")


def test_movimenti_di_oggi_nel_giorno_locale(appuntamento_id, endodonzia):
    registra_trattamento(
        appuntamento_id, endodonzia["trattamento_id"], endodonzia["sotto_trattamento_id"], "11", costo_syp=1000
    )
    registra_pagamento(appuntamento_id, 700)

    oggi = date.today()
    stat = statistiche_periodo(oggi, oggi)
    assert stat["nuovi_pazienti"] == 1
    assert stat["trattamenti_eseguiti"] == 1
    assert stat["incassi"]["SYP"] == 700
