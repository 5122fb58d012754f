from datetime import date, timedelta

import pytest

from backend.catalogo import (
    catalogo_flat,
    crea_trattamento,
    elimina_passo,
    elimina_sotto_trattamento,
    elimina_trattamento,
    progresso_sotto_trattamento,
)
from backend.errors import OperazioneNonConsentita
from backend.models import StatoAppuntamento
from backend.pazienti import crea_paziente, saldo_paziente
from backend.piani import crea_piano
from backend.services import aggiorna_stato, crea_appuntamento, elimina_appuntamento
from backend.trattamenti import (
    aggiorna_costo,
    elimina_registro,
    passi_eseguiti_appuntamento,
    registra_trattamento,
    registri_paziente,
    riprendi_trattamento,
    salva_passi_appuntamento,
    segna_completato,
    trattamenti_in_corso,
    trattamenti_non_completati,
)


def _registra(appuntamento_id, endodonzia, passi=(), **kw):
    return registra_trattamento(
        appuntamento_id,
        endodonzia["trattamento_id"],
        endodonzia["sotto_trattamento_id"],
        numero_dente=kw.pop("numero_dente", "11"),
        passi=passi,
        **kw,
    )


def test_progresso_sotto_trattamento():
    assert progresso_sotto_trattamento([]) == 0
    assert progresso_sotto_trattamento([25, 50, 100]) == 58


def test_catalogo_annidato(endodonzia, igiene):
    catalogo = catalogo_flat()
    assert [t["nome"] for t in catalogo] == ["Endodonzia", "Igiene orale"]
    devit = catalogo[0]["sotto_trattamenti"][0]
    assert [p["nome"] for p in devit["passi"]] == ["Apertura", "Sagomatura", "Otturazione"]
    assert devit["progresso"] == 58
    assert catalogo[1]["sotto_trattamenti"][0]["progresso"] == 0


def test_trattamento_duplicato(endodonzia):
    with pytest.raises(ValueError):
        crea_trattamento("Endodonzia", 10)


def test_registro_aperto_con_passi_parziali(appuntamento_id, paziente_id, endodonzia):
    rid = _registra(appuntamento_id, endodonzia, passi=[endodonzia["passi"][0]], costo_syp=50000)

    aperti = trattamenti_non_completati(paziente_id)
    assert len(aperti) == 1
    assert aperti[0]["id"] == rid
    assert aperti[0]["passi_eseguiti"] == 1
    assert aperti[0]["passi_totali"] == 3
    assert aperti[0]["numero_dente"] == "11"


def test_tutti_i_passi_completano_il_registro(appuntamento_id, paziente_id, endodonzia):
    _registra(appuntamento_id, endodonzia, passi=endodonzia["passi"])
    assert trattamenti_non_completati(paziente_id) == []
    assert registri_paziente(paziente_id)[0]["completato"] is True


def test_senza_passi_resta_aperto(appuntamento_id, paziente_id, igiene):
    registra_trattamento(appuntamento_id, igiene["trattamento_id"], igiene["sotto_trattamento_id"])
    assert len(trattamenti_non_completati(paziente_id)) == 1


def test_appuntamento_non_programmato(appuntamento_id, endodonzia):
    aggiorna_stato(appuntamento_id, StatoAppuntamento.ANNULLATO)
    with pytest.raises(OperazioneNonConsentita):
        _registra(appuntamento_id, endodonzia)


def test_sotto_trattamento_di_altro_trattamento(appuntamento_id, endodonzia, igiene):
    with pytest.raises(ValueError):
        registra_trattamento(appuntamento_id, igiene["trattamento_id"], endodonzia["sotto_trattamento_id"], "11")


def test_passo_estraneo_rifiutato(appuntamento_id, endodonzia, igiene):
    with pytest.raises(ValueError):
        registra_trattamento(
            appuntamento_id,
            igiene["trattamento_id"],
            igiene["sotto_trattamento_id"],
            passi=[endodonzia["passi"][0]],
        )


def test_denti_validati_per_associazione(appuntamento_id, endodonzia):
    with pytest.raises(ValueError):
        _registra(appuntamento_id, endodonzia, numero_dente="11, 12")
    with pytest.raises(ValueError):
        _registra(appuntamento_id, endodonzia, numero_dente="")


def test_costo_negativo(appuntamento_id, endodonzia):
    with pytest.raises(ValueError):
        _registra(appuntamento_id, endodonzia, costo_usd=-1)


def test_ripresa_su_piu_appuntamenti(appuntamento_id, paziente_id, medico_id, inizio, endodonzia):
    p1, p2, p3 = endodonzia["passi"]
    rid = _registra(appuntamento_id, endodonzia, passi=[p1])

    seconda = crea_appuntamento(paziente_id, medico_id, inizio + timedelta(days=7))
    assert riprendi_trattamento(rid, seconda, [p1, p2]) is False
    assert trattamenti_non_completati(paziente_id)[0]["passi_eseguiti"] == 2

    terza = crea_appuntamento(paziente_id, medico_id, inizio + timedelta(days=14))
    assert riprendi_trattamento(rid, terza, [p3]) is True
    assert trattamenti_non_completati(paziente_id) == []

    # i passi restano registrati nell'appuntamento in cui sono stati eseguiti
    assert [p["nome"] for p in passi_eseguiti_appuntamento(seconda)] == ["Sagomatura"]
    assert registri_paziente(paziente_id)[0]["passi_eseguiti"] == ["Apertura", "Sagomatura", "Otturazione"]


def test_ripresa_registro_completato(appuntamento_id, paziente_id, medico_id, inizio, endodonzia):
    rid = _registra(appuntamento_id, endodonzia, completato=True)
    seconda = crea_appuntamento(paziente_id, medico_id, inizio + timedelta(days=7))
    with pytest.raises(OperazioneNonConsentita):
        riprendi_trattamento(rid, seconda, endodonzia["passi"])


def test_ripresa_paziente_diverso(appuntamento_id, medico_id, inizio, endodonzia):
    rid = _registra(appuntamento_id, endodonzia)
    altro = crea_paziente("Luca", "Neri", date(1990, 1, 1), "0999")
    app_altro = crea_appuntamento(altro, medico_id, inizio + timedelta(hours=1))
    with pytest.raises(OperazioneNonConsentita):
        riprendi_trattamento(rid, app_altro, endodonzia["passi"])


def test_salva_passi_sostituisce(appuntamento_id, endodonzia):
    p1, p2, p3 = endodonzia["passi"]
    rid = _registra(appuntamento_id, endodonzia, passi=[p1])

    assert salva_passi_appuntamento(appuntamento_id, [p2, p3, p3]) == 2
    passi = passi_eseguiti_appuntamento(appuntamento_id)
    assert [p["nome"] for p in passi] == ["Sagomatura", "Otturazione"]
    assert {p["registro_id"] for p in passi} == {rid}


def test_salva_passi_inesistenti(appuntamento_id):
    with pytest.raises(ValueError):
        salva_passi_appuntamento(appuntamento_id, ["non-esiste"])


def test_gestione_registro(appuntamento_id, paziente_id, endodonzia):
    rid = _registra(appuntamento_id, endodonzia)
    aggiorna_costo(rid, 75000, 20)
    segna_completato(rid)
    r = registri_paziente(paziente_id)[0]
    assert (r["costo_syp"], r["costo_usd"], r["completato"]) == (75000, 20, True)

    elimina_registro(rid)
    assert registri_paziente(paziente_id) == []


def test_trattamenti_in_corso_filtri(appuntamento_id, paziente_id, medico_id, inizio, endodonzia, igiene):
    aperto = _registra(appuntamento_id, endodonzia)
    chiuso = registra_trattamento(
        appuntamento_id, igiene["trattamento_id"], igiene["sotto_trattamento_id"], completato=True
    )

    assert {r["id"] for r in trattamenti_in_corso()} == {aperto, chiuso}
    assert [r["id"] for r in trattamenti_in_corso(stato="in_corso")] == [aperto]
    assert [r["id"] for r in trattamenti_in_corso(stato="completati")] == [chiuso]
    assert len(trattamenti_in_corso(nome_paziente="VERDI")) == 2
    assert trattamenti_in_corso(nome_paziente="Neri") == []
    assert trattamenti_in_corso(medico_id="altro") == []

    oggi = date.today()
    assert len(trattamenti_in_corso(da=oggi - timedelta(days=1), a=oggi + timedelta(days=1))) == 2
    assert trattamenti_in_corso(da=oggi + timedelta(days=2)) == []

    with pytest.raises(ValueError):
        trattamenti_in_corso(stato="boh")


def test_elimina_appuntamento_rimuove_registri(appuntamento_id, paziente_id, endodonzia):
    _registra(appuntamento_id, endodonzia, passi=[endodonzia["passi"][0]])
    elimina_appuntamento(appuntamento_id)
    assert registri_paziente(paziente_id) == []
    assert trattamenti_non_completati(paziente_id) == []


def test_catalogo_in_uso_non_eliminabile(appuntamento_id, paziente_id, endodonzia):
    p1, p2, _ = endodonzia["passi"]
    _registra(appuntamento_id, endodonzia, passi=[p1], costo_usd=100)

    with pytest.raises(OperazioneNonConsentita):
        elimina_trattamento(endodonzia["trattamento_id"])
    with pytest.raises(OperazioneNonConsentita):
        elimina_sotto_trattamento(endodonzia["sotto_trattamento_id"])
    with pytest.raises(OperazioneNonConsentita):
        elimina_passo(p1)

    # un passo mai eseguito si può togliere
    elimina_passo(p2)

    assert saldo_paziente(paziente_id) == {"SYP": 0, "USD": 100}
    assert [r["trattamento"] for r in registri_paziente(paziente_id)] == ["Endodonzia"]
    assert trattamenti_non_completati(paziente_id)[0]["passi_totali"] == 2


def test_trattamento_in_un_piano_non_eliminabile(paziente_id, endodonzia):
    crea_piano(paziente_id, endodonzia["trattamento_id"], endodonzia["sotto_trattamento_id"], "11")
    with pytest.raises(OperazioneNonConsentita):
        elimina_trattamento(endodonzia["trattamento_id"])


def test_elimina_trattamento_libero(endodonzia, igiene):
    elimina_trattamento(igiene["trattamento_id"])
    assert [t["nome"] for t in catalogo_flat()] == ["Endodonzia"]


def test_salva_passi_dopo_ripresa(appuntamento_id, paziente_id, medico_id, inizio, endodonzia):
    p1, p2, p3 = endodonzia["passi"]
    rid = _registra(appuntamento_id, endodonzia, passi=[p1])
    seconda = crea_appuntamento(paziente_id, medico_id, inizio + timedelta(days=7))
    riprendi_trattamento(rid, seconda, [p2])

    # stessi passi salvati di nuovo: il progresso del registro non cambia
    salva_passi_appuntamento(seconda, [p2])
    assert trattamenti_non_completati(paziente_id)[0]["passi_eseguiti"] == 2
    assert {p["registro_id"] for p in passi_eseguiti_appuntamento(seconda)} == {rid}

    # l'ultimo passo aggiunto qui non ha un registro nell'appuntamento
    salva_passi_appuntamento(seconda, [p2, p3])
    assert trattamenti_non_completati(paziente_id)[0]["passi_eseguiti"] == 2


def test_salva_passi_completa_il_registro(appuntamento_id, paziente_id, endodonzia):
    _registra(appuntamento_id, endodonzia, passi=[endodonzia["passi"][0]])
    salva_passi_appuntamento(appuntamento_id, endodonzia["passi"])
    assert trattamenti_non_completati(paziente_id) == []
