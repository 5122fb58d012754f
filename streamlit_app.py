from __future__ import annotations

import base64
import json
import os
from datetime import date, datetime, time, timezone

import requests
import streamlit as st

from backend.config import VALUTA_PREDEFINITA
from backend.denti import DENTI_ADULTO, DENTI_BAMBINO, formatta_denti
from backend.pagamenti import formatta_valuta

st.set_page_config(page_title="Studio Dentistico", layout="wide")

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")



# JWT helpers (solo per UI, senza verifica firma)

def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict:
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return {}
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
        return payload if isinstance(payload, dict) else {}
    except (ValueError, UnicodeDecodeError):
        return {}


def jwt_is_expired(token: str) -> bool:
    p = jwt_payload(token)
    try:
        exp_int = int(p.get("exp"))
    except (TypeError, ValueError):
        return False

    now = int(datetime.now(tz=timezone.utc).timestamp())
    return now >= (exp_int - 5)


def jwt_username(token: str) -> str:
    p = jwt_payload(token)
    return str(p.get("username") or p.get("sub") or "utente")


def jwt_ruolo(token: str) -> str:
    return str(jwt_payload(token).get("ruolo") or "")



# HTTP client (con JWT)

def _headers(token: str | None) -> dict:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _risposta(r: requests.Response) -> requests.Response:
    if r.status_code == 401:
        raise PermissionError("401 Unauthorized (token non valido/scaduto oppure backend riavviato).")
    if r.status_code >= 400:
        try:
            detail = r.json().get("detail")
        except ValueError:
            detail = None
        if isinstance(detail, str):
            raise requests.HTTPError(detail, response=r)
    r.raise_for_status()
    return r


def api_get(path: str, token: str | None = None, params: dict | None = None) -> dict | list:
    r = requests.get(f"{API_BASE}{path}", headers=_headers(token), params=params, timeout=10)
    return _risposta(r).json()


def api_bytes(path: str, token: str | None = None, params: dict | None = None) -> bytes:
    r = requests.get(f"{API_BASE}{path}", headers=_headers(token), params=params, timeout=30)
    return _risposta(r).content


def api_post(path: str, payload: dict, token: str | None = None) -> dict:
    r = requests.post(f"{API_BASE}{path}", headers=_headers(token), json=payload, timeout=10)
    return _risposta(r).json()


def api_put(path: str, payload: dict, token: str | None = None) -> dict:
    r = requests.put(f"{API_BASE}{path}", headers=_headers(token), json=payload, timeout=10)
    return _risposta(r).json()


def api_delete(path: str, token: str | None = None) -> dict:
    r = requests.delete(f"{API_BASE}{path}", headers=_headers(token), timeout=10)
    return _risposta(r).json()


def api_upload(path: str, nome_file: str, contenuto: bytes, token: str | None = None) -> dict:
    r = requests.post(
        f"{API_BASE}{path}",
        headers=_headers(token),
        files={"file": (nome_file, contenuto)},
        timeout=30,
    )
    return _risposta(r).json()


def api_login(username: str, password: str) -> str:
    # OAuth2PasswordRequestForm => x-www-form-urlencoded
    r = requests.post(
        f"{API_BASE}/api/auth/login",
        data={"username": username, "password": password},
        timeout=10,
    )
    r.raise_for_status()
    return r.json()["access_token"]


def is_logged_in() -> bool:
    token = st.session_state.get("token")
    return bool(token) and isinstance(token, str) and len(token) > 0


def do_logout() -> None:
    st.session_state.pop("token", None)
    st.session_state.pop("auth_error", None)
    st.rerun()


def mostra_errore(e: Exception) -> None:
    if isinstance(e, PermissionError):
        st.session_state["auth_error"] = str(e)
        st.error("Sessione non valida. Premi Logout e rifai login.")
    else:
        st.error(str(e))



# Sidebar login

with st.sidebar:
    st.header("Accesso")

    token = st.session_state.get("token")

    if not is_logged_in():
        u = st.text_input("Username", key="login_user")
        p = st.text_input("Password", type="password", key="login_pass")

        if st.button("Login", key="login_btn"):
            try:
                new_token = api_login(u.strip().lower(), p)
                st.session_state["token"] = new_token
                st.session_state.pop("auth_error", None)
                st.success("Login effettuato.")
                st.rerun()
            except requests.HTTPError:
                st.error("Credenziali non valide.")
            except requests.RequestException as e:
                st.error(str(e))
    else:
        # Mostro info dal token senza chiamare /api/me (evita logout su rerun)
        st.write(f"Utente: **{jwt_username(token)}** ({jwt_ruolo(token) or '-'})")

        if st.session_state.get("auth_error"):
            st.error(st.session_state["auth_error"])

        if st.button("Logout", key="logout_btn"):
            do_logout()

    st.divider()
    st.caption(f"API: {API_BASE}")



# UI

st.title("Studio Dentistico")

token = st.session_state.get("token")
if not token:
    st.warning("Effettua il login dalla sidebar.")
    st.stop()
if jwt_is_expired(token):
    st.error("Sessione scaduta. Effettua Logout dalla sidebar e rifai login.")
    st.stop()

# gli assistenti non gestiscono pagamenti
puo_pagare = jwt_ruolo(token) != "ASSISTENTE"

tab_app, tab_paz, tab_corso, tab_cat, tab_stat, tab_log = st.tabs(
    ["Appuntamenti", "Pazienti", "Trattamenti in corso", "Catalogo", "Statistiche", "Log attività"]
)



# Dati base

@st.cache_data(ttl=10)
def load_medici(token: str) -> list[dict]:
    return api_get("/api/medici", token=token)


@st.cache_data(ttl=10)
def load_catalogo(token: str) -> list[dict]:
    return api_get("/api/catalogo", token=token)


def fmt_medico(m: dict) -> str:
    return f"{m['cognome']} {m['nome']} ({m['specializzazione']})"


def fmt_paziente(p: dict) -> str:
    return f"{p['cognome']} {p['nome']} | {p.get('telefono') or '-'}"


def fmt_aperto(r: dict) -> str:
    return (
        f"{r['trattamento']} / {r['sotto_trattamento']} | denti: {r['numero_dente'] or '-'} | "
        f"passi {r['passi_eseguiti']}/{r['passi_totali']}"
    )


def fmt_app_breve(a: dict) -> str:
    return f"{datetime.fromisoformat(a['inizio']):%d/%m/%Y %H:%M} | {a['medico']}"


def sotto_per_id(catalogo: list[dict], sotto_id: str) -> dict | None:
    for t in catalogo:
        for s in t["sotto_trattamenti"]:
            if s["id"] == sotto_id:
                return s
    return None


def passi_catalogo(catalogo: list[dict]) -> dict[str, str]:
    """id passo -> etichetta leggibile, per tutto il catalogo."""
    return {
        p["id"]: f"{s['nome']}: {p['ordine']}. {p['nome']}"
        for t in catalogo
        for s in t["sotto_trattamenti"]
        for p in s["passi"]
    }


def selettore_denti(associazione: str, key: str) -> str:
    """Schema dentale semplificato: la selezione dipende dall'associazione del sotto-trattamento."""
    if associazione == "NON_CORRELATO":
        return ""
    denti = list(DENTI_ADULTO) + list(DENTI_BAMBINO)
    if associazione == "DENTE_SINGOLO":
        return st.selectbox("Dente", options=denti, key=key)
    return formatta_denti(st.multiselect("Denti", options=denti, key=key))


try:
    medici = load_medici(token)
    catalogo = load_catalogo(token)
except Exception as e:
    mostra_errore(e)
    st.stop()



# TAB - Appuntamenti

with tab_app:
    st.subheader("Nuovo appuntamento")

    try:
        pazienti = api_get("/api/pazienti", token=token)
    except Exception as e:
        mostra_errore(e)
        pazienti = []

    colA, colB = st.columns(2)
    with colA:
        paziente = st.selectbox("Paziente", options=pazienti, format_func=fmt_paziente, key="app_paziente")
        medico = st.selectbox("Medico", options=medici, format_func=fmt_medico, key="app_medico")
    with colB:
        giorno_app = st.date_input("Data", value=date.today(), key="app_data")
        ora_app = st.time_input("Ora", value=datetime.now().time().replace(second=0, microsecond=0), key="app_ora")
    note = st.text_area("Note (opzionale)", height=80, key="app_note")

    if st.button("Conferma appuntamento", key="app_submit", disabled=not (pazienti and medici)):
        try:
            res = api_post(
                "/api/appuntamenti",
                {
                    "paziente_id": paziente["id"],
                    "medico_id": medico["id"],
                    "inizio": datetime.combine(giorno_app, ora_app).isoformat(),
                    "note": note or None,
                },
                token=token,
            )
            st.success(f"Appuntamento creato (ID: {res['appuntamento_id']})")
        except Exception as e:
            mostra_errore(e)

    st.divider()
    st.subheader("Elenco appuntamenti")

    c1, c2, c3 = st.columns(3)
    filtro_medico = c1.selectbox(
        "Medico", options=[None] + medici, format_func=lambda m: "Tutti" if m is None else fmt_medico(m), key="f_medico"
    )
    filtro_giorno = c2.date_input("Giorno", value=None, key="f_giorno")
    filtro_stato = c3.selectbox("Stato", options=["", "PROGRAMMATO", "COMPLETATO", "ANNULLATO"], key="f_stato")

    params = {}
    if filtro_medico:
        params["medico_id"] = filtro_medico["id"]
    if filtro_giorno:
        params["giorno"] = filtro_giorno.isoformat()
    if filtro_stato:
        params["stato"] = filtro_stato

    try:
        appuntamenti = api_get("/api/appuntamenti", token=token, params=params)
    except Exception as e:
        mostra_errore(e)
        appuntamenti = []

    if not appuntamenti:
        st.info("Nessun appuntamento.")
    for a in appuntamenti:
        inizio = datetime.fromisoformat(a["inizio"])
        with st.expander(f"{inizio:%d/%m/%Y %H:%M} | {a['paziente']} | {a['medico']} | {a['stato']}"):
            st.write(f"Telefono: {a['paziente_telefono']} | Note: {a['note'] or '-'}")
            b1, b2, b3 = st.columns(3)
            nuovo_stato = b1.selectbox(
                "Stato", ["PROGRAMMATO", "COMPLETATO", "ANNULLATO"],
                index=["PROGRAMMATO", "COMPLETATO", "ANNULLATO"].index(a["stato"]),
                key=f"stato_{a['id']}",
            )
            if b1.button("Aggiorna stato", key=f"btn_stato_{a['id']}"):
                try:
                    api_put(f"/api/appuntamenti/{a['id']}/stato", {"stato": nuovo_stato}, token=token)
                    st.success("Stato aggiornato.")
                except Exception as e:
                    mostra_errore(e)
            if b2.button("Promemoria WhatsApp", key=f"wa_{a['id']}"):
                try:
                    url = api_get(f"/api/appuntamenti/{a['id']}/whatsapp", token=token)["url"]
                    st.markdown(f"[Apri WhatsApp]({url})")
                except Exception as e:
                    mostra_errore(e)
            if b3.button("Elimina", key=f"del_{a['id']}"):
                try:
                    api_delete(f"/api/appuntamenti/{a['id']}", token=token)
                    st.success("Appuntamento eliminato.")
                except Exception as e:
                    mostra_errore(e)

            if a["stato"] == "PROGRAMMATO":
                st.markdown("**Registra trattamento**")
                trattamento = st.selectbox(
                    "Trattamento", options=catalogo, format_func=lambda t: t["nome"], key=f"tr_{a['id']}"
                )
                sotto = trattamento["sotto_trattamenti"] if trattamento else []
                st_sel = st.selectbox(
                    "Sotto-trattamento", options=sotto, format_func=lambda x: x["nome"], key=f"st_{a['id']}"
                )
                if st_sel:
                    denti = selettore_denti(st_sel["associazione_denti"], key=f"denti_{a['id']}")
                    passi = st.multiselect(
                        "Passi eseguiti",
                        options=st_sel["passi"],
                        format_func=lambda p: f"{p['ordine']}. {p['nome']}",
                        key=f"passi_{a['id']}",
                    )
                    k1, k2, k3 = st.columns(3)
                    costo_syp = k1.number_input("Costo SYP", min_value=0.0, step=1000.0, key=f"csyp_{a['id']}")
                    costo_usd = k2.number_input("Costo USD", min_value=0.0, step=1.0, key=f"cusd_{a['id']}")
                    completato = k3.checkbox("Completato", key=f"compl_{a['id']}")
                    if st.button("Salva trattamento", key=f"save_tr_{a['id']}"):
                        try:
                            api_post(
                                "/api/registri",
                                {
                                    "appuntamento_id": a["id"],
                                    "trattamento_id": trattamento["id"],
                                    "sotto_trattamento_id": st_sel["id"],
                                    "numero_dente": denti,
                                    "costo_syp": costo_syp,
                                    "costo_usd": costo_usd,
                                    "passi": [p["id"] for p in passi],
                                    "completato": completato,
                                },
                                token=token,
                            )
                            st.success("Trattamento registrato.")
                        except Exception as e:
                            mostra_errore(e)

                st.markdown("**Passi eseguiti in questo appuntamento**")
                try:
                    fatti = [p["passo_id"] for p in api_get(f"/api/appuntamenti/{a['id']}/passi", token=token)]
                except Exception as e:
                    mostra_errore(e)
                    fatti = []
                etichette = passi_catalogo(catalogo)
                scelti = st.multiselect(
                    "Passi",
                    options=list(etichette),
                    default=[p for p in dict.fromkeys(fatti) if p in etichette],
                    format_func=lambda pid: etichette[pid],
                    key=f"passi_app_{a['id']}",
                )
                if st.button("Salva passi", key=f"save_passi_{a['id']}"):
                    try:
                        api_put(f"/api/appuntamenti/{a['id']}/passi", {"passi": scelti}, token=token)
                        st.success("Passi salvati.")
                    except Exception as e:
                        mostra_errore(e)

                try:
                    aperti = api_get(f"/api/pazienti/{a['paziente_id']}/non-completati", token=token)
                except Exception as e:
                    mostra_errore(e)
                    aperti = []
                aperti = [r for r in aperti if r["appuntamento_id"] != a["id"]]
                if aperti:
                    st.markdown("**Riprendi trattamento non completato**")
                    reg = st.selectbox("Trattamento aperto", options=aperti, format_func=fmt_aperto, key=f"rip_{a['id']}")
                    sotto_aperto = sotto_per_id(catalogo, reg["sotto_trattamento_id"])
                    passi_rip = st.multiselect(
                        "Passi eseguiti oggi",
                        options=sotto_aperto["passi"] if sotto_aperto else [],
                        format_func=lambda p: f"{p['ordine']}. {p['nome']}",
                        key=f"rip_passi_{a['id']}",
                    )
                    if st.button("Riprendi trattamento", key=f"rip_btn_{a['id']}"):
                        try:
                            res = api_post(
                                f"/api/registri/{reg['id']}/riprendi",
                                {"appuntamento_id": a["id"], "passi": [p["id"] for p in passi_rip]},
                                token=token,
                            )
                            st.success("Trattamento completato." if res["completato"] else "Passi registrati.")
                        except Exception as e:
                            mostra_errore(e)

            if puo_pagare:
                st.markdown("**Pagamento**")
                q1, q2, q3 = st.columns(3)
                importo = q1.number_input("Importo", min_value=0.0, step=1000.0, key=f"imp_{a['id']}")
                valuta = q2.selectbox("Valuta", ["SYP", "USD"], key=f"val_{a['id']}")
                if q3.button("Registra pagamento", key=f"pag_{a['id']}"):
                    try:
                        api_post(
                            "/api/pagamenti",
                            {"appuntamento_id": a["id"], "importo": importo, "valuta": valuta},
                            token=token,
                        )
                        st.success(f"Pagamento registrato: {formatta_valuta(importo, valuta)}")
                    except Exception as e:
                        mostra_errore(e)

    with st.expander("Eliminazione appuntamenti per intervallo"):
        d1, d2 = st.columns(2)
        da = d1.date_input("Dal", value=date.today(), key="bulk_da")
        a_ = d2.date_input("Al", value=date.today(), key="bulk_a")
        if st.button("Elimina appuntamenti", key="bulk_btn"):
            try:
                res = api_post(
                    "/api/appuntamenti/elimina-intervallo",
                    {"da": da.isoformat(), "a": a_.isoformat()},
                    token=token,
                )
                st.success(f"Appuntamenti eliminati: {res['eliminati']}")
            except Exception as e:
                mostra_errore(e)



# TAB - Pazienti

with tab_paz:
    st.subheader("Pazienti")

    with st.expander("Crea nuovo paziente"):
        c1, c2 = st.columns(2)
        nome = c1.text_input("Nome", key="paz_nome")
        cognome = c2.text_input("Cognome", key="paz_cognome")
        nascita = c1.date_input("Data di nascita", value=date(1990, 1, 1), key="paz_nascita")
        tel = c2.text_input("Telefono", key="paz_tel")
        contatto = c1.text_input("Contatto (opzionale)", key="paz_contatto")
        note_med = c2.text_area("Note mediche (opzionale)", key="paz_note")

        if st.button("Crea paziente", key="paz_submit"):
            if not nome.strip() or not cognome.strip() or not tel.strip():
                st.error("Nome, cognome e telefono sono obbligatori.")
            else:
                try:
                    res = api_post(
                        "/api/pazienti",
                        {
                            "nome": nome.strip(),
                            "cognome": cognome.strip(),
                            "data_nascita": nascita.isoformat(),
                            "telefono": tel.strip(),
                            "contatto": contatto.strip() or None,
                            "note_mediche": note_med.strip() or None,
                        },
                        token=token,
                    )
                    st.success(f"Paziente creato: {res.get('paziente_id')}")
                except Exception as e:
                    mostra_errore(e)

    with st.expander("Importa pazienti da Excel"):
        file = st.file_uploader("File .xlsx", type=["xlsx"], key="imp_file")
        if file is not None and st.button("Importa", key="imp_btn"):
            try:
                res = api_upload("/api/pazienti/import", file.name, file.getvalue(), token=token)
                st.success(f"Pazienti importati: {res['importati']}")
                for err in res["errori"]:
                    st.warning(err)
            except Exception as e:
                mostra_errore(e)

    cerca = st.text_input("Cerca per nome", key="paz_cerca")
    try:
        pazienti = api_get("/api/pazienti", token=token, params={"q": cerca} if cerca else None)
    except Exception as e:
        mostra_errore(e)
        pazienti = []

    paziente = st.selectbox("Scheda paziente", options=pazienti, format_func=fmt_paziente, key="scheda_paz")
    if paziente:
        pid = paziente["id"]
        try:
            saldo = api_get(f"/api/pazienti/{pid}/saldo", token=token)
            s1, s2 = st.columns(2)
            s1.metric("Saldo SYP", formatta_valuta(saldo["SYP"], "SYP"))
            s2.metric("Saldo USD", formatta_valuta(saldo["USD"], "USD"))

            st.markdown("**Prossimi appuntamenti**")
            futuri = api_get(f"/api/pazienti/{pid}/appuntamenti-futuri", token=token)
            for a in futuri:
                st.write(f"- {fmt_app_breve(a)} | {a['stato']}")

            st.markdown("**Trattamenti non completati**")
            for r in api_get(f"/api/pazienti/{pid}/non-completati", token=token):
                st.write(f"- {fmt_aperto(r)}")

            st.markdown("**Piani di trattamento**")
            programmati = [a for a in futuri if a["stato"] == "PROGRAMMATO"]
            for piano in api_get(f"/api/pazienti/{pid}/piani", token=token, params={"solo_da_eseguire": True}):
                kp = piano["id"]
                st.write(f"- {piano['trattamento']} / {piano['sotto_trattamento']} | denti: {piano['numero_dente'] or '-'}")
                app_piano = st.selectbox(
                    "Appuntamento",
                    options=[None] + programmati,
                    format_func=lambda x: "Nuovo appuntamento" if x is None else fmt_app_breve(x),
                    key=f"pi_app_{kp}",
                )
                payload = {}
                if app_piano:
                    payload["appuntamento_id"] = app_piano["id"]
                else:
                    e1, e2, e3 = st.columns(3)
                    med = e1.selectbox("Medico", options=medici, format_func=fmt_medico, key=f"pi_med_{kp}")
                    giorno_p = e2.date_input("Data", value=date.today(), key=f"pi_data_{kp}")
                    ora_p = e3.time_input("Ora", value=time(9, 0), key=f"pi_ora_{kp}")
                    payload["medico_id"] = med["id"] if med else None
                    payload["inizio"] = datetime.combine(giorno_p, ora_p).isoformat()

                k1, k2, k3 = st.columns(3)
                payload["costo_syp"] = k1.number_input("Costo SYP", min_value=0.0, step=1000.0, key=f"pi_syp_{kp}")
                payload["costo_usd"] = k2.number_input("Costo USD", min_value=0.0, step=1.0, key=f"pi_usd_{kp}")
                payload["completato"] = k3.checkbox("Completato", key=f"pi_compl_{kp}")
                if puo_pagare:
                    v1, v2 = st.columns(2)
                    importo_p = v1.number_input("Pagamento", min_value=0.0, step=1000.0, key=f"pi_imp_{kp}")
                    payload["valuta_pagamento"] = v2.selectbox("Valuta", ["SYP", "USD"], key=f"pi_val_{kp}")
                    if importo_p > 0:
                        payload["importo_pagamento"] = importo_p

                b1, b2 = st.columns(2)
                if b1.button("Esegui piano", key=f"pi_esegui_{kp}"):
                    try:
                        esito = api_post(f"/api/piani/{kp}/esegui", payload, token=token)
                        msg = "Piano eseguito."
                        if esito["registri_chiusi"]:
                            msg += f" Chiusi {esito['registri_chiusi']} trattamenti aperti sugli stessi denti."
                        st.success(msg)
                    except Exception as e:
                        mostra_errore(e)
                if b2.button("Elimina piano", key=f"pi_del_{kp}"):
                    try:
                        api_delete(f"/api/piani/{kp}", token=token)
                        st.success("Piano eliminato.")
                    except Exception as e:
                        mostra_errore(e)

            with st.expander("Nuovo piano di trattamento"):
                tr_piano = st.selectbox(
                    "Trattamento", options=catalogo, format_func=lambda t: t["nome"], key="np_tratt"
                )
                st_piano = st.selectbox(
                    "Sotto-trattamento",
                    options=tr_piano["sotto_trattamenti"] if tr_piano else [],
                    format_func=lambda x: x["nome"],
                    key="np_sotto",
                )
                if st_piano:
                    denti_piano = selettore_denti(st_piano["associazione_denti"], key="np_denti")
                    if st.button("Crea piano", key="np_btn"):
                        try:
                            api_post(
                                "/api/piani",
                                {
                                    "paziente_id": pid,
                                    "trattamento_id": tr_piano["id"],
                                    "sotto_trattamento_id": st_piano["id"],
                                    "numero_dente": denti_piano,
                                },
                                token=token,
                            )
                            st.success("Piano creato.")
                        except Exception as e:
                            mostra_errore(e)

            st.markdown("**Pagamenti**")
            for pag in api_get(f"/api/pazienti/{pid}/pagamenti", token=token):
                st.write(
                    f"- {datetime.fromisoformat(pag['pagato_il']):%d/%m/%Y} | "
                    f"{formatta_valuta(pag['importo'], pag['valuta'])} | {pag['medico']}"
                )

            st.download_button(
                "Esporta scheda (Excel)",
                data=api_bytes(f"/api/pazienti/{pid}/export", token=token),
                file_name=f"paziente_{paziente['cognome']}_{paziente['nome']}.xlsx",
                key="exp_paz",
            )
        except Exception as e:
            mostra_errore(e)



# TAB - Trattamenti in corso

with tab_corso:
    st.subheader("Trattamenti in corso")

    c1, c2, c3 = st.columns(3)
    nome_paz = c1.text_input("Paziente", key="tc_paz")
    medico_tc = c2.selectbox(
        "Medico", options=[None] + medici, format_func=lambda m: "Tutti" if m is None else fmt_medico(m), key="tc_medico"
    )
    stato_tc = c3.selectbox("Stato", ["tutti", "completati", "in_corso"], key="tc_stato")

    params = {"stato": stato_tc}
    if nome_paz:
        params["paziente"] = nome_paz
    if medico_tc:
        params["medico_id"] = medico_tc["id"]

    try:
        righe = api_get("/api/trattamenti-in-corso", token=token, params=params)
        if not righe:
            st.info("Nessun trattamento.")
        else:
            st.dataframe(
                [
                    {
                        "Data": datetime.fromisoformat(r["eseguito_il"]).strftime("%d/%m/%Y"),
                        "Paziente": r["paziente"],
                        "Dente": r["numero_dente"],
                        "Trattamento": r["trattamento"],
                        "Sotto-trattamento": r["sotto_trattamento"],
                        "Passi": ", ".join(r["passi_eseguiti"]),
                        "Costo SYP": formatta_valuta(r["costo_syp"], "SYP"),
                        "Costo USD": formatta_valuta(r["costo_usd"], "USD"),
                        "Stato": "Completato" if r["completato"] else "In corso",
                        "Medico": r["medico"],
                    }
                    for r in righe
                ],
                use_container_width=True,
            )

        aperti_tc = [r for r in righe if not r["completato"]]
        if aperti_tc:
            da_chiudere = st.selectbox(
                "Trattamento da chiudere",
                options=aperti_tc,
                format_func=lambda r: f"{r['paziente']} | {r['trattamento']} / {r['sotto_trattamento']} | "
                f"denti: {r['numero_dente'] or '-'}",
                key="tc_chiudi",
            )
            if st.button("Segna completato", key="tc_chiudi_btn"):
                api_put(f"/api/registri/{da_chiudere['id']}/completato", {}, token=token)
                st.success("Trattamento segnato come completato.")

        st.download_button(
            "Esporta (Excel)",
            data=api_bytes("/api/trattamenti-in-corso/export", token=token, params=params),
            file_name=f"trattamenti_in_corso_{date.today().isoformat()}.xlsx",
            key="exp_tc",
        )
    except Exception as e:
        mostra_errore(e)



# TAB - Catalogo

with tab_cat:
    st.subheader("Catalogo trattamenti")

    for t in catalogo:
        with st.expander(f"{t['nome']} ({formatta_valuta(t['costo_stimato'], VALUTA_PREDEFINITA)})"):
            st.write(t["descrizione"] or "-")
            for sotto in t["sotto_trattamenti"]:
                st.markdown(f"**{sotto['nome']}** ({sotto['associazione_denti']})")
                st.progress(sotto["progresso"] / 100)
                for passo in sotto["passi"]:
                    st.write(f"{passo['ordine']}. {passo['nome']} ({passo['percentuale_completamento']:.0f}%)")

    if jwt_ruolo(token) == "SUPER_ADMIN":
        with st.expander("Nuovo trattamento"):
            nome_t = st.text_input("Nome", key="cat_nome")
            costo_t = st.number_input("Costo stimato", min_value=0.0, key="cat_costo")
            if st.button("Crea trattamento", key="cat_btn"):
                try:
                    api_post("/api/trattamenti", {"nome": nome_t, "costo_stimato": costo_t}, token=token)
                    load_catalogo.clear()
                    st.success("Trattamento creato.")
                except Exception as e:
                    mostra_errore(e)



# TAB - Statistiche

with tab_stat:
    st.subheader("Statistiche")

    try:
        dash = api_get("/api/statistiche/dashboard", token=token)
        m1, m2, m3 = st.columns(3)
        m1.metric("Pazienti", dash["pazienti"])
        m2.metric("Appuntamenti", dash["appuntamenti"])
        m3.metric("Trattamenti a catalogo", dash["trattamenti"])

        d1, d2 = st.columns(2)
        da = d1.date_input("Dal", value=date.today().replace(day=1), key="stat_da")
        a_ = d2.date_input("Al", value=date.today(), key="stat_a")
        stat = api_get("/api/statistiche", token=token, params={"da": da.isoformat(), "a": a_.isoformat()})

        n1, n2, n3 = st.columns(3)
        n1.metric("Nuovi pazienti", stat["nuovi_pazienti"])
        n2.metric("Appuntamenti", stat["appuntamenti"])
        n3.metric("Trattamenti eseguiti", stat["trattamenti_eseguiti"])
        for valuta in ("SYP", "USD"):
            v1, v2, v3 = st.columns(3)
            v1.metric(f"Costo trattamenti {valuta}", formatta_valuta(stat["costo_trattamenti"][valuta], valuta))
            v2.metric(f"Incassi {valuta}", formatta_valuta(stat["incassi"][valuta], valuta))
            v3.metric(f"Ricavo {valuta}", formatta_valuta(stat["ricavo"][valuta], valuta))
    except Exception as e:
        mostra_errore(e)



# TAB - Log attività (super admin)

with tab_log:
    st.subheader("Log attività")

    if jwt_ruolo(token) != "SUPER_ADMIN":
        st.info("Sezione riservata al super admin.")
    else:
        try:
            logs = api_get("/api/log-attivita", token=token, params={"limit": 200})
            for log in logs:
                st.write(
                    f"- {datetime.fromisoformat(log['creato_il']):%d/%m/%Y %H:%M:%S} | **{log['utente']}** | "
                    f"{log['azione']} | {log['tipo_entita'] or '-'}"
                )
            st.download_button(
                "Esporta log (Excel)",
                data=api_bytes("/api/log-attivita/export", token=token),
                file_name=f"log_attivita_{date.today().isoformat()}.xlsx",
                key="exp_log",
            )
        except Exception as e:
            mostra_errore(e)
