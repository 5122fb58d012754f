import pytest

from backend.denti import DENTI_ADULTO, DENTI_BAMBINO, alterna_dente, parse_denti, stessi_denti, valida_denti
from backend.models import AssociazioneDenti


def test_numerazione_fdi():
    assert len(DENTI_ADULTO) == 32
    assert len(DENTI_BAMBINO) == 20
    assert "18" in DENTI_ADULTO and "19" not in DENTI_ADULTO
    assert "85" in DENTI_BAMBINO and "56" not in DENTI_BAMBINO


def test_parse_denti_rimuove_vuoti_e_duplicati():
    assert parse_denti("11, 12,11 , ,21") == ["11", "12", "21"]
    assert parse_denti("") == []
    assert parse_denti(None) == []


def test_valida_non_correlato():
    assert valida_denti("", AssociazioneDenti.NON_CORRELATO) == ""
    with pytest.raises(ValueError):
        valida_denti("11", AssociazioneDenti.NON_CORRELATO)


def test_valida_dente_singolo():
    assert valida_denti(" 51 ", AssociazioneDenti.DENTE_SINGOLO) == "51"
    with pytest.raises(ValueError):
        valida_denti("11, 12", AssociazioneDenti.DENTE_SINGOLO)
    with pytest.raises(ValueError):
        valida_denti("", AssociazioneDenti.DENTE_SINGOLO)


def test_valida_denti_multipli():
    assert valida_denti("11,12", AssociazioneDenti.DENTI_MULTIPLI) == "11, 12"
    with pytest.raises(ValueError):
        valida_denti("", AssociazioneDenti.DENTI_MULTIPLI)


def test_numero_non_valido():
    with pytest.raises(ValueError, match="19"):
        valida_denti("11, 19", AssociazioneDenti.DENTI_MULTIPLI)


def test_alterna_dente():
    assert alterna_dente("11", "12", AssociazioneDenti.DENTE_SINGOLO) == "12"
    assert alterna_dente("11", "12", AssociazioneDenti.DENTI_MULTIPLI) == "11, 12"
    assert alterna_dente("11, 12", "11", AssociazioneDenti.DENTI_MULTIPLI) == "12"
    with pytest.raises(ValueError):
        alterna_dente("", "11", AssociazioneDenti.NON_CORRELATO)


def test_stessi_denti_ignora_ordine():
    assert stessi_denti("11, 12", "12,11")
    assert not stessi_denti("11", "11, 12")
    assert stessi_denti("", None)
