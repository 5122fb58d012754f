from __future__ import annotations

import os
import tempfile
from datetime import date, datetime, timedelta

# il database di test va configurato prima di importare backend
_TMP_DIR = tempfile.mkdtemp(prefix="studio_dentistico_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP_DIR, 'test.sqlite')}"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest  # noqa: E402

from backend import auth_models, models  # noqa: E402,F401
from backend.catalogo import crea_passo, crea_sotto_trattamento, crea_trattamento  # noqa: E402
from backend.db import Base, engine  # noqa: E402
from backend.models import AssociazioneDenti  # noqa: E402
from backend.pazienti import crea_paziente  # noqa: E402
from backend.services import crea_appuntamento, crea_medico  # noqa: E402


@pytest.fixture(autouse=True)
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def medico_id() -> str:
    return crea_medico("Mario", "Rossi", "Odontoiatria generale", telefono="0211111")


@pytest.fixture
def paziente_id() -> str:
    return crea_paziente("Anna", "Verdi", date(1985, 3, 12), "+39 333 123 4567", note_mediche="Allergia penicillina")


@pytest.fixture
def inizio() -> datetime:
    return (datetime.now() + timedelta(days=1)).replace(hour=10, minute=0, second=0, microsecond=0)


@pytest.fixture
def appuntamento_id(paziente_id, medico_id, inizio) -> str:
    return crea_appuntamento(paziente_id, medico_id, inizio, note="Controllo")


@pytest.fixture
def endodonzia() -> dict:
    """Trattamento con sotto-trattamento a dente singolo e tre passi."""
    tid = crea_trattamento("Endodonzia", 150)
    sid = crea_sotto_trattamento(tid, "Devitalizzazione", AssociazioneDenti.DENTE_SINGOLO)
    passi = [
        crea_passo(sid, "Apertura", ordine=1, percentuale_completamento=25),
        crea_passo(sid, "Sagomatura", ordine=2, percentuale_completamento=50),
        crea_passo(sid, "Otturazione", ordine=3, percentuale_completamento=100),
    ]
    return {"trattamento_id": tid, "sotto_trattamento_id": sid, "passi": passi}


@pytest.fixture
def igiene() -> dict:
    """Trattamento senza denti e senza passi."""
    tid = crea_trattamento("Igiene orale", 40)
    sid = crea_sotto_trattamento(tid, "Ablazione tartaro", AssociazioneDenti.NON_CORRELATO)
    return {"trattamento_id": tid, "sotto_trattamento_id": sid}
