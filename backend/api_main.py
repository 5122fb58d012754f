from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime
from typing import Any, Callable

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, Field

from backend.attivita import lista_attivita, registra_attivita
from backend.catalogo import (
    aggiorna_percentuale_passo,
    catalogo_flat,
    crea_passo,
    crea_sotto_trattamento,
    crea_trattamento,
    elimina_passo,
    elimina_sotto_trattamento,
    elimina_trattamento,
    lista_sotto_trattamenti_flat,
    passi_sotto_trattamento,
)
from backend.config import configura_logging
from backend.db import init_db
from backend.errors import EntitaNonTrovata, PermessoNegato
from backend.esportazione import (
    XLSX_MEDIA_TYPE,
    esporta_log_attivita,
    esporta_scheda_paziente,
    esporta_trattamenti_in_corso,
    importa_pazienti,
)
from backend.models import AssociazioneDenti, Ruolo, StatoAppuntamento, Valuta
from backend.pagamenti import (
    aggiorna_pagamento,
    elimina_pagamento,
    pagamenti_appuntamento,
    pagamenti_paziente,
    registra_pagamento,
)
from backend.pazienti import (
    aggiorna_paziente,
    cerca_pazienti,
    crea_paziente,
    elimina_paziente,
    get_paziente_flat,
    saldo_paziente,
)
from backend.permessi import aggiorna_permesso, lista_permessi_flat, richiedi_permesso, verifica_permesso
from backend.piani import crea_piano, elimina_piano, esegui_piano, piani_paziente
from backend.seed import seed_base
from backend.services import (
    agenda_giornaliera_flat,
    aggiorna_stato,
    appuntamenti_futuri_paziente,
    crea_appuntamento,
    crea_medico,
    elimina_appuntamenti_intervallo,
    elimina_appuntamento,
    elimina_medico,
    get_appuntamento_flat,
    get_medico_flat,
    link_whatsapp,
    lista_appuntamenti_flat,
    lista_medici_flat,
)
from backend.statistiche import statistiche_dashboard, statistiche_periodo
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

from backend.auth_models import Utente
from backend.auth_service import autentica, crea_utente, get_utente_by_id, imposta_ruolo, lista_utenti_flat
from backend.auth_security import create_access_token, get_ruolo, get_subject

logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

app = FastAPI(title="Studio Dentistico API", version="1.0.0")



# Startup

@app.on_event("startup")
def startup() -> None:
    # Crea tabelle (incluse Utente), catalogo base e permessi (idempotente)
    configura_logging()
    init_db()
    seed_base()



# Errori di dominio -> HTTP

@app.exception_handler(EntitaNonTrovata)
def entita_non_trovata_handler(request: Request, exc: EntitaNonTrovata) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(PermessoNegato)
def permesso_negato_handler(request: Request, exc: PermessoNegato) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(ValueError)
def valore_non_valido_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("%s %s rifiutata: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})



# Schemi Auth

class RegisterIn(BaseModel):
    username: str
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    username: str
    ruolo: Ruolo
    is_active: bool


class RuoloIn(BaseModel):
    ruolo: Ruolo



# Schemi Domain

class MedicoCreateIn(BaseModel):
    nome: str
    cognome: str
    specializzazione: str
    email: str | None = None
    telefono: str | None = None


class PazienteCreateIn(BaseModel):
    nome: str = Field(..., min_length=1)
    cognome: str = Field(..., min_length=1)
    data_nascita: date
    telefono: str = Field(..., min_length=1)
    contatto: str | None = None
    indirizzo: str | None = None
    professione: str | None = None
    note_mediche: str | None = None


class PazienteUpdateIn(BaseModel):
    nome: str | None = None
    cognome: str | None = None
    data_nascita: date | None = None
    telefono: str | None = None
    contatto: str | None = None
    indirizzo: str | None = None
    professione: str | None = None
    note_mediche: str | None = None


class AppuntamentoCreateIn(BaseModel):
    paziente_id: str
    medico_id: str
    inizio: datetime
    note: str | None = None


class StatoIn(BaseModel):
    stato: StatoAppuntamento


class EliminaIntervalloIn(BaseModel):
    da: date
    a: date
    medico_id: str | None = None
    stato: StatoAppuntamento | None = None


class PassiIn(BaseModel):
    passi: list[str] = Field(default_factory=list)


class TrattamentoCreateIn(BaseModel):
    nome: str
    costo_stimato: float = Field(0, ge=0)
    descrizione: str | None = None


class SottoTrattamentoCreateIn(BaseModel):
    nome: str
    associazione_denti: AssociazioneDenti = AssociazioneDenti.NON_CORRELATO


class PassoCreateIn(BaseModel):
    nome: str
    ordine: int = Field(1, ge=1)
    percentuale_completamento: float = Field(0, ge=0, le=100)
    descrizione: str | None = None


class PercentualeIn(BaseModel):
    percentuale: float


class RegistroCreateIn(BaseModel):
    appuntamento_id: str
    trattamento_id: str
    sotto_trattamento_id: str
    numero_dente: str = ""
    costo_syp: float = 0
    costo_usd: float = 0
    passi: list[str] = Field(default_factory=list)
    completato: bool = False
    note: str | None = None


class RiprendiIn(BaseModel):
    appuntamento_id: str
    passi: list[str] = Field(default_factory=list)


class CostoIn(BaseModel):
    costo_syp: float = 0
    costo_usd: float = 0


class PianoCreateIn(BaseModel):
    paziente_id: str
    trattamento_id: str
    sotto_trattamento_id: str
    numero_dente: str = ""


class EseguiPianoIn(BaseModel):
    # appuntamento esistente oppure medico + inizio per crearne uno
    appuntamento_id: str | None = None
    medico_id: str | None = None
    inizio: datetime | None = None
    costo_syp: float = 0
    costo_usd: float = 0
    completato: bool = False
    importo_pagamento: float | None = None
    valuta_pagamento: Valuta = Valuta.SYP
    note: str | None = None


class PagamentoCreateIn(BaseModel):
    appuntamento_id: str
    importo: float
    valuta: Valuta = Valuta.SYP


class PagamentoUpdateIn(BaseModel):
    importo: float


class PermessoUpdateIn(BaseModel):
    campo: str
    valore: bool



# Dipendenze auth

def get_current_user(token: str = Depends(oauth2_scheme)) -> Utente:
    # protezione extra: elimina spazi / virgolette accidentali
    token = token.strip().strip('"').strip("'")

    user_id = get_subject(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token non valido")

    u = get_utente_by_id(user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Utente non valido")
    if get_ruolo(token) != u.ruolo:
        # i permessi seguono il ruolo su DB, il client vede quello vecchio fino al prossimo login
        logger.info("Ruolo di %s cambiato dopo il login (ora %s)", u.username, u.ruolo.value)
    return u


def richiede_permesso(risorsa: str, azione: str) -> Callable[..., Utente]:
    """Dipendenza: utente autenticato con permesso `azione` su `risorsa`."""

    def dipendenza(user: Utente = Depends(get_current_user)) -> Utente:
        richiedi_permesso(user.ruolo, risorsa, azione)
        return user

    return dipendenza


def solo_super_admin(user: Utente = Depends(get_current_user)) -> Utente:
    if user.ruolo != Ruolo.SUPER_ADMIN:
        raise PermessoNegato("Operazione riservata al super admin.")
    return user


def _log(user: Utente, azione: str, tipo: str | None = None, entita_id: str | None = None, **dettagli: Any) -> None:
    registra_attivita(user.username, azione, tipo, entita_id, dettagli or None)


def _xlsx(contenuto: bytes, nome_file: str) -> Response:
    return Response(
        content=contenuto,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{nome_file}"'},
    )



# AUTH endpoints

@app.post("/api/auth/register", response_model=dict)
def register(payload: RegisterIn) -> dict[str, Any]:
    try:
        user_id = crea_utente(payload.username, payload.password)
        return {"ok": True, "user_id": user_id}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = autentica(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenziali non valide")

    token = create_access_token(u.id, u.username, u.ruolo)
    registra_attivita(u.username, "login")
    return TokenOut(access_token=token)


@app.get("/api/me", response_model=MeOut)
def me(user: Utente = Depends(get_current_user)) -> MeOut:
    return MeOut(id=user.id, username=user.username, ruolo=user.ruolo, is_active=user.is_active)


@app.get("/api/utenti")
def api_utenti(user: Utente = Depends(solo_super_admin)) -> list[dict]:
    return lista_utenti_flat()


@app.put("/api/utenti/{user_id}/ruolo")
def api_ruolo_utente(user_id: str, payload: RuoloIn, user: Utente = Depends(solo_super_admin)) -> dict[str, Any]:
    if not imposta_ruolo(user_id, payload.ruolo):
        raise EntitaNonTrovata("Utente", user_id)
    _log(user, "modifica_ruolo", "utente", user_id, ruolo=payload.ruolo.value)
    return {"ok": True}



# Medici

@app.get("/api/medici")
def api_medici(user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_medici_flat()


@app.get("/api/medici/{medico_id}")
def api_medico(medico_id: str, user: Utente = Depends(get_current_user)) -> dict:
    return get_medico_flat(medico_id)


@app.post("/api/medici")
def api_crea_medico(payload: MedicoCreateIn, user: Utente = Depends(solo_super_admin)) -> dict[str, Any]:
    mid = crea_medico(payload.nome, payload.cognome, payload.specializzazione, payload.email, payload.telefono)
    _log(user, "crea_medico", "medico", mid)
    return {"ok": True, "medico_id": mid}


@app.delete("/api/medici/{medico_id}")
def api_elimina_medico(medico_id: str, user: Utente = Depends(solo_super_admin)) -> dict[str, Any]:
    elimina_medico(medico_id)
    _log(user, "elimina_medico", "medico", medico_id)
    return {"ok": True}



# Pazienti

@app.get("/api/pazienti")
def api_pazienti(q: str | None = None, user: Utente = Depends(get_current_user)) -> list[dict]:
    return cerca_pazienti(q)


@app.post("/api/pazienti")
def api_crea_paziente(payload: PazienteCreateIn, user: Utente = Depends(get_current_user)) -> dict[str, Any]:
    pid = crea_paziente(**payload.model_dump())
    _log(user, "crea_paziente", "paziente", pid, nome=f"{payload.nome} {payload.cognome}")
    return {"ok": True, "paziente_id": pid}


@app.post("/api/pazienti/import")
def api_importa_pazienti(file: UploadFile = File(...), user: Utente = Depends(get_current_user)) -> dict[str, Any]:
    esito = importa_pazienti(file.file.read())
    _log(user, "importa_pazienti", "paziente", importati=len(esito.importati), errori=len(esito.errori))
    return {"ok": True, "importati": len(esito.importati), "errori": esito.errori}


@app.get("/api/pazienti/{paziente_id}")
def api_paziente(paziente_id: str, user: Utente = Depends(get_current_user)) -> dict:
    return get_paziente_flat(paziente_id)


@app.put("/api/pazienti/{paziente_id}")
def api_aggiorna_paziente(
    paziente_id: str, payload: PazienteUpdateIn, user: Utente = Depends(get_current_user)
) -> dict:
    campi = payload.model_dump(exclude_unset=True)
    out = aggiorna_paziente(paziente_id, **campi)
    _log(user, "modifica_paziente", "paziente", paziente_id, campi=sorted(campi))
    return out


@app.delete("/api/pazienti/{paziente_id}")
def api_elimina_paziente(paziente_id: str, user: Utente = Depends(get_current_user)) -> dict[str, Any]:
    elimina_paziente(paziente_id)
    _log(user, "elimina_paziente", "paziente", paziente_id)
    return {"ok": True}


@app.get("/api/pazienti/{paziente_id}/saldo")
def api_saldo(paziente_id: str, user: Utente = Depends(get_current_user)) -> dict[str, float]:
    return saldo_paziente(paziente_id)


@app.get("/api/pazienti/{paziente_id}/appuntamenti-futuri")
def api_appuntamenti_futuri(paziente_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return appuntamenti_futuri_paziente(paziente_id)


@app.get("/api/pazienti/{paziente_id}/appuntamenti")
def api_appuntamenti_paziente(paziente_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_appuntamenti_flat(paziente_id=paziente_id)


@app.get("/api/pazienti/{paziente_id}/registri")
def api_registri_paziente(paziente_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return registri_paziente(paziente_id)


@app.get("/api/pazienti/{paziente_id}/non-completati")
def api_non_completati(paziente_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return trattamenti_non_completati(paziente_id)


@app.get("/api/pazienti/{paziente_id}/pagamenti")
def api_pagamenti_paziente(paziente_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return pagamenti_paziente(paziente_id)


@app.get("/api/pazienti/{paziente_id}/piani")
def api_piani_paziente(
    paziente_id: str, solo_da_eseguire: bool = False, user: Utente = Depends(get_current_user)
) -> list[dict]:
    return piani_paziente(paziente_id, solo_da_eseguire=solo_da_eseguire)


@app.get("/api/pazienti/{paziente_id}/export")
def api_export_paziente(paziente_id: str, user: Utente = Depends(get_current_user)) -> Response:
    contenuto = esporta_scheda_paziente(paziente_id)
    _log(user, "esporta_paziente", "paziente", paziente_id)
    return _xlsx(contenuto, f"paziente_{paziente_id}.xlsx")



# Appuntamenti

@app.get("/api/appuntamenti")
def api_appuntamenti(
    medico_id: str | None = None,
    giorno: date | None = None,
    stato: StatoAppuntamento | None = None,
    paziente_id: str | None = None,
    user: Utente = Depends(get_current_user),
) -> list[dict]:
    return lista_appuntamenti_flat(medico_id=medico_id, giorno=giorno, stato=stato, paziente_id=paziente_id)


@app.post("/api/appuntamenti")
def api_crea_appuntamento(
    payload: AppuntamentoCreateIn,
    user: Utente = Depends(richiede_permesso("appuntamenti", "creare")),
) -> dict[str, Any]:
    aid = crea_appuntamento(payload.paziente_id, payload.medico_id, payload.inizio, payload.note)
    _log(user, "crea_appuntamento", "appuntamento", aid, inizio=payload.inizio.isoformat())
    return {"ok": True, "appuntamento_id": aid}


@app.post("/api/appuntamenti/elimina-intervallo")
def api_elimina_intervallo(
    payload: EliminaIntervalloIn,
    user: Utente = Depends(richiede_permesso("appuntamenti", "eliminare")),
) -> dict[str, Any]:
    n = elimina_appuntamenti_intervallo(payload.da, payload.a, medico_id=payload.medico_id, stato=payload.stato)
    _log(
        user,
        "elimina_appuntamenti_intervallo",
        "appuntamento",
        da=payload.da.isoformat(),
        a=payload.a.isoformat(),
        eliminati=n,
    )
    return {"ok": True, "eliminati": n}


@app.get("/api/appuntamenti/{appuntamento_id}")
def api_appuntamento(appuntamento_id: str, user: Utente = Depends(get_current_user)) -> dict:
    return get_appuntamento_flat(appuntamento_id)


@app.put("/api/appuntamenti/{appuntamento_id}/stato")
def api_stato_appuntamento(
    appuntamento_id: str,
    payload: StatoIn,
    user: Utente = Depends(richiede_permesso("appuntamenti", "modificare")),
) -> dict[str, Any]:
    aggiorna_stato(appuntamento_id, payload.stato)
    _log(user, "modifica_stato_appuntamento", "appuntamento", appuntamento_id, stato=payload.stato.value)
    return {"ok": True}


@app.delete("/api/appuntamenti/{appuntamento_id}")
def api_elimina_appuntamento(
    appuntamento_id: str,
    user: Utente = Depends(richiede_permesso("appuntamenti", "eliminare")),
) -> dict[str, Any]:
    elimina_appuntamento(appuntamento_id)
    _log(user, "elimina_appuntamento", "appuntamento", appuntamento_id)
    return {"ok": True}


@app.get("/api/appuntamenti/{appuntamento_id}/whatsapp")
def api_whatsapp(appuntamento_id: str, user: Utente = Depends(get_current_user)) -> dict[str, str]:
    return {"url": link_whatsapp(appuntamento_id)}


@app.get("/api/appuntamenti/{appuntamento_id}/passi")
def api_passi_appuntamento(appuntamento_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return passi_eseguiti_appuntamento(appuntamento_id)


@app.put("/api/appuntamenti/{appuntamento_id}/passi")
def api_salva_passi(
    appuntamento_id: str,
    payload: PassiIn,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "modificare")),
) -> dict[str, Any]:
    n = salva_passi_appuntamento(appuntamento_id, payload.passi)
    _log(user, "salva_passi", "appuntamento", appuntamento_id, passi=n)
    return {"ok": True, "passi": n}


@app.get("/api/appuntamenti/{appuntamento_id}/pagamenti")
def api_pagamenti_appuntamento(appuntamento_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return pagamenti_appuntamento(appuntamento_id)


@app.get("/api/agenda")
def api_agenda(
    medico_id: str = Query(...),
    giorno: date = Query(...),
    user: Utente = Depends(get_current_user),
) -> list[dict]:
    return agenda_giornaliera_flat(medico_id, giorno)



# Catalogo trattamenti (gestione riservata al super admin)

@app.get("/api/catalogo")
def api_catalogo(user: Utente = Depends(get_current_user)) -> list[dict]:
    return catalogo_flat()


@app.post("/api/trattamenti")
def api_crea_trattamento(payload: TrattamentoCreateIn, user: Utente = Depends(solo_super_admin)) -> dict[str, Any]:
    tid = crea_trattamento(payload.nome, payload.costo_stimato, payload.descrizione)
    _log(user, "crea_trattamento", "trattamento", tid, nome=payload.nome)
    return {"ok": True, "trattamento_id": tid}


@app.delete("/api/trattamenti/{trattamento_id}")
def api_elimina_trattamento(trattamento_id: str, user: Utente = Depends(solo_super_admin)) -> dict[str, Any]:
    elimina_trattamento(trattamento_id)
    _log(user, "elimina_trattamento", "trattamento", trattamento_id)
    return {"ok": True}


@app.get("/api/trattamenti/{trattamento_id}/sotto-trattamenti")
def api_sotto_trattamenti(trattamento_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_sotto_trattamenti_flat(trattamento_id)


@app.post("/api/trattamenti/{trattamento_id}/sotto-trattamenti")
def api_crea_sotto_trattamento(
    trattamento_id: str, payload: SottoTrattamentoCreateIn, user: Utente = Depends(solo_super_admin)
) -> dict[str, Any]:
    sid = crea_sotto_trattamento(trattamento_id, payload.nome, payload.associazione_denti)
    _log(user, "crea_sotto_trattamento", "sotto_trattamento", sid, nome=payload.nome)
    return {"ok": True, "sotto_trattamento_id": sid}


@app.delete("/api/sotto-trattamenti/{sotto_trattamento_id}")
def api_elimina_sotto_trattamento(
    sotto_trattamento_id: str, user: Utente = Depends(solo_super_admin)
) -> dict[str, Any]:
    elimina_sotto_trattamento(sotto_trattamento_id)
    _log(user, "elimina_sotto_trattamento", "sotto_trattamento", sotto_trattamento_id)
    return {"ok": True}


@app.get("/api/sotto-trattamenti/{sotto_trattamento_id}/passi")
def api_passi(sotto_trattamento_id: str, user: Utente = Depends(get_current_user)) -> list[dict]:
    return passi_sotto_trattamento(sotto_trattamento_id)


@app.post("/api/sotto-trattamenti/{sotto_trattamento_id}/passi")
def api_crea_passo(
    sotto_trattamento_id: str, payload: PassoCreateIn, user: Utente = Depends(solo_super_admin)
) -> dict[str, Any]:
    pid = crea_passo(
        sotto_trattamento_id,
        payload.nome,
        ordine=payload.ordine,
        percentuale_completamento=payload.percentuale_completamento,
        descrizione=payload.descrizione,
    )
    _log(user, "crea_passo", "passo", pid, nome=payload.nome)
    return {"ok": True, "passo_id": pid}


@app.put("/api/passi/{passo_id}/percentuale")
def api_percentuale_passo(
    passo_id: str, payload: PercentualeIn, user: Utente = Depends(solo_super_admin)
) -> dict[str, Any]:
    aggiorna_percentuale_passo(passo_id, payload.percentuale)
    _log(user, "modifica_percentuale_passo", "passo", passo_id, percentuale=payload.percentuale)
    return {"ok": True}


@app.delete("/api/passi/{passo_id}")
def api_elimina_passo(passo_id: str, user: Utente = Depends(solo_super_admin)) -> dict[str, Any]:
    elimina_passo(passo_id)
    _log(user, "elimina_passo", "passo", passo_id)
    return {"ok": True}



# Registri di trattamento

@app.post("/api/registri")
def api_registra_trattamento(
    payload: RegistroCreateIn,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "creare")),
) -> dict[str, Any]:
    rid = registra_trattamento(**payload.model_dump())
    _log(user, "registra_trattamento", "registro_trattamento", rid, appuntamento_id=payload.appuntamento_id)
    return {"ok": True, "registro_id": rid}


@app.post("/api/registri/{registro_id}/riprendi")
def api_riprendi_trattamento(
    registro_id: str,
    payload: RiprendiIn,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "modificare")),
) -> dict[str, Any]:
    completato = riprendi_trattamento(registro_id, payload.appuntamento_id, payload.passi)
    _log(user, "riprendi_trattamento", "registro_trattamento", registro_id, completato=completato)
    return {"ok": True, "completato": completato}


@app.put("/api/registri/{registro_id}/completato")
def api_segna_completato(
    registro_id: str,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "modificare")),
) -> dict[str, Any]:
    segna_completato(registro_id)
    _log(user, "completa_trattamento", "registro_trattamento", registro_id)
    return {"ok": True}


@app.put("/api/registri/{registro_id}/costo")
def api_aggiorna_costo(
    registro_id: str,
    payload: CostoIn,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "modificare")),
) -> dict[str, Any]:
    aggiorna_costo(registro_id, payload.costo_syp, payload.costo_usd)
    _log(user, "modifica_costo", "registro_trattamento", registro_id, **payload.model_dump())
    return {"ok": True}


@app.delete("/api/registri/{registro_id}")
def api_elimina_registro(
    registro_id: str,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "eliminare")),
) -> dict[str, Any]:
    elimina_registro(registro_id)
    _log(user, "elimina_registro", "registro_trattamento", registro_id)
    return {"ok": True}


@app.get("/api/trattamenti-in-corso")
def api_trattamenti_in_corso(
    paziente: str | None = None,
    medico_id: str | None = None,
    stato: str = "tutti",
    da: date | None = None,
    a: date | None = None,
    user: Utente = Depends(get_current_user),
) -> list[dict]:
    return trattamenti_in_corso(nome_paziente=paziente, medico_id=medico_id, stato=stato, da=da, a=a)


@app.get("/api/trattamenti-in-corso/export")
def api_export_trattamenti_in_corso(
    paziente: str | None = None,
    medico_id: str | None = None,
    stato: str = "tutti",
    da: date | None = None,
    a: date | None = None,
    user: Utente = Depends(get_current_user),
) -> Response:
    contenuto = esporta_trattamenti_in_corso(nome_paziente=paziente, medico_id=medico_id, stato=stato, da=da, a=a)
    _log(user, "esporta_trattamenti_in_corso")
    return _xlsx(contenuto, f"trattamenti_in_corso_{date.today().isoformat()}.xlsx")



# Piani di trattamento

@app.post("/api/piani")
def api_crea_piano(
    payload: PianoCreateIn,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "creare")),
) -> dict[str, Any]:
    pid = crea_piano(**payload.model_dump())
    _log(user, "crea_piano", "piano_trattamento", pid, paziente_id=payload.paziente_id)
    return {"ok": True, "piano_id": pid}


@app.post("/api/piani/{piano_id}/esegui")
def api_esegui_piano(
    piano_id: str,
    payload: EseguiPianoIn,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "creare")),
) -> dict[str, Any]:
    if payload.importo_pagamento is not None:
        richiedi_permesso(user.ruolo, "pagamenti", "creare")
    if payload.appuntamento_id is None:
        richiedi_permesso(user.ruolo, "appuntamenti", "creare")

    esito = esegui_piano(piano_id, **payload.model_dump())
    _log(
        user,
        "esegui_piano",
        "piano_trattamento",
        piano_id,
        appuntamento_id=esito.appuntamento_id,
        registro_id=esito.registro_id,
        completato=esito.completato,
    )
    return {"ok": True, **asdict(esito)}


@app.delete("/api/piani/{piano_id}")
def api_elimina_piano(
    piano_id: str,
    user: Utente = Depends(richiede_permesso("registri_trattamento", "eliminare")),
) -> dict[str, Any]:
    elimina_piano(piano_id)
    _log(user, "elimina_piano", "piano_trattamento", piano_id)
    return {"ok": True}



# Pagamenti

@app.post("/api/pagamenti")
def api_registra_pagamento(
    payload: PagamentoCreateIn,
    user: Utente = Depends(richiede_permesso("pagamenti", "creare")),
) -> dict[str, Any]:
    pid = registra_pagamento(payload.appuntamento_id, payload.importo, payload.valuta)
    _log(user, "registra_pagamento", "pagamento", pid, importo=payload.importo, valuta=payload.valuta.value)
    return {"ok": True, "pagamento_id": pid}


@app.put("/api/pagamenti/{pagamento_id}")
def api_aggiorna_pagamento(
    pagamento_id: str,
    payload: PagamentoUpdateIn,
    user: Utente = Depends(richiede_permesso("pagamenti", "modificare")),
) -> dict[str, Any]:
    aggiorna_pagamento(pagamento_id, payload.importo)
    _log(user, "modifica_pagamento", "pagamento", pagamento_id, importo=payload.importo)
    return {"ok": True}


@app.delete("/api/pagamenti/{pagamento_id}")
def api_elimina_pagamento(
    pagamento_id: str,
    user: Utente = Depends(richiede_permesso("pagamenti", "eliminare")),
) -> dict[str, Any]:
    elimina_pagamento(pagamento_id)
    _log(user, "elimina_pagamento", "pagamento", pagamento_id)
    return {"ok": True}



# Statistiche

@app.get("/api/statistiche/dashboard")
def api_dashboard(user: Utente = Depends(get_current_user)) -> dict:
    return statistiche_dashboard()


@app.get("/api/statistiche")
def api_statistiche(
    da: date | None = None,
    a: date | None = None,
    user: Utente = Depends(get_current_user),
) -> dict:
    return statistiche_periodo(da, a)



# Permessi e log attività

@app.get("/api/permessi")
def api_permessi(ruolo: Ruolo | None = None, user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_permessi_flat(ruolo)


@app.get("/api/permessi/verifica")
def api_verifica_permesso(
    risorsa: str = Query(...),
    azione: str = Query(...),
    user: Utente = Depends(get_current_user),
) -> dict[str, bool]:
    return {"consentito": verifica_permesso(user.ruolo, risorsa, azione)}


@app.put("/api/permessi/{permesso_id}")
def api_aggiorna_permesso(
    permesso_id: int, payload: PermessoUpdateIn, user: Utente = Depends(solo_super_admin)
) -> dict[str, Any]:
    aggiorna_permesso(permesso_id, payload.campo, payload.valore)
    _log(user, "modifica_permesso", "permesso", str(permesso_id), campo=payload.campo, valore=payload.valore)
    return {"ok": True}


@app.get("/api/log-attivita")
def api_log_attivita(limit: int = 200, user: Utente = Depends(solo_super_admin)) -> list[dict]:
    return lista_attivita(limit=limit)


@app.get("/api/log-attivita/export")
def api_export_log(user: Utente = Depends(solo_super_admin)) -> Response:
    return _xlsx(esporta_log_attivita(), f"log_attivita_{date.today().isoformat()}.xlsx")
