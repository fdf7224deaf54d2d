from __future__ import annotations

import os
from datetime import date, datetime, time, timedelta

import pandas as pd
import requests
import streamlit as st

from vetcare.ui_client import API_BASE, ApiClient, jwt_email, jwt_is_expired, jwt_payload

st.set_page_config(page_title="VetCare", layout="wide")

# sviluppo locale: aurora.localhost:8000
TENANT_HOST_DEFAULT = os.getenv("TENANT_HOST", "aurora.localhost:8000")


def client() -> ApiClient:
    return ApiClient(API_BASE, token=st.session_state.get("token"), host=st.session_state.get("host") or None)


def salva_token(c: ApiClient) -> None:
    # il backend può aver rinnovato la sessione (x-access-token)
    if c.token and c.token != st.session_state.get("token"):
        st.session_state["token"] = c.token


def is_logged_in() -> bool:
    token = st.session_state.get("token")
    return bool(token) and isinstance(token, str) and len(token) > 0


def do_logout() -> None:
    st.session_state.pop("token", None)
    st.session_state.pop("auth_error", None)
    st.rerun()


def require_auth() -> ApiClient | None:
    token = st.session_state.get("token")
    if not token:
        st.warning("Sezione riservata. Effettua il login dalla sidebar.")
        return None

    if jwt_is_expired(token):
        st.error("Sessione scaduta. Effettua Logout dalla sidebar e rifai login.")
        return None

    return client()


def sessione_non_valida(e: PermissionError) -> None:
    st.session_state["auth_error"] = str(e)
    st.error("Sessione non valida. Premi Logout e rifai login.")



# Sidebar login

with st.sidebar:
    st.header("Accesso")

    st.text_input("Studio (host)", value=TENANT_HOST_DEFAULT, key="host")

    if not is_logged_in():
        u = st.text_input("Email", key="login_user")
        p = st.text_input("Password", type="password", key="login_pass")

        if st.button("Login", key="login_btn"):
            c = client()
            try:
                c.login(u.strip().lower(), p)
                salva_token(c)
                st.session_state.pop("auth_error", None)
                st.success("Login effettuato.")
                st.rerun()
            except requests.HTTPError:
                st.error("Credenziali non valide.")
            except requests.RequestException as e:
                st.error(str(e))
    else:
        token = st.session_state["token"]
        st.write(f"Utente: **{jwt_email(token)}**")

        c = client()
        try:
            studi = c.get("/api/auth/practices")
            salva_token(c)
        except (PermissionError, requests.RequestException) as e:
            st.session_state["auth_error"] = str(e)
            studi = []

        if len(studi) > 1:
            attivo = jwt_payload(token).get("tenant_id")
            ids = [s["id"] for s in studi]
            scelto = st.selectbox(
                "Studio attivo",
                options=studi,
                index=ids.index(attivo) if attivo in ids else 0,
                format_func=lambda s: f"{s['name']} ({s['ruolo']})",
                key="studio_attivo",
            )
            if scelto["id"] != attivo and st.button("Cambia studio", key="switch_btn"):
                try:
                    c.switch_tenant(scelto["id"])
                    salva_token(c)
                    if scelto.get("subdomain"):
                        st.info(f"Imposta l'host dello studio: {scelto['subdomain']}.localhost:8000")
                    else:
                        st.rerun()
                except (PermissionError, requests.RequestException) as e:
                    st.error(str(e))

        if st.session_state.get("auth_error"):
            st.error(st.session_state["auth_error"])

        if st.button("Logout", key="logout_btn"):
            do_logout()

    st.divider()
    st.caption(f"API: {API_BASE}")



# UI

st.title("VetCare - Gestionale studio veterinario")

tab_dash, tab_clienti, tab_animali, tab_calendario, tab_staff = st.tabs(
    ["Dashboard", "Clienti", "Animali", "Calendario", "Staff"]
)



# TAB - Dashboard

with tab_dash:
    c = require_auth()
    if c:
        try:
            d = c.get("/api/dashboard")
            salva_token(c)
            k1, k2, k3, k4 = st.columns(4)
            k1.metric("Clienti attivi", d["clienti"]["active"])
            k2.metric("Animali", d["animali"]["total_animals"])
            k3.metric("Appuntamenti oggi", d["appuntamenti"]["today"])
            k4.metric("Prossimi 7 giorni", d["appuntamenti"]["upcoming"])

            col1, col2 = st.columns(2)
            with col1:
                st.subheader("Specie")
                if d["specie"]:
                    st.bar_chart(pd.DataFrame(d["specie"]).set_index("specie")["count"])
                else:
                    st.info("Nessun animale registrato.")
            with col2:
                st.subheader("Appuntamenti ultimi 30 giorni")
                apps = c.get(
                    "/api/appuntamenti",
                    params={"dal": (datetime.now() - timedelta(days=30)).isoformat(), "al": datetime.now().isoformat()},
                )
                if apps:
                    df = pd.DataFrame(apps)
                    df["giorno"] = pd.to_datetime(df["inizio"]).dt.date
                    st.line_chart(df.groupby("giorno").size())
                else:
                    st.info("Nessun appuntamento nel periodo.")
        except PermissionError as e:
            sessione_non_valida(e)
        except requests.RequestException as e:
            st.error(f"Errore dashboard: {e}")



# TAB - Clienti

with tab_clienti:
    st.subheader("Clienti (sezione riservata)")

    c = require_auth()
    if c:
        with st.expander("Nuovo cliente"):
            c1, c2 = st.columns(2)
            nome = c1.text_input("Nome", key="cli_nome")
            cognome = c2.text_input("Cognome", key="cli_cognome")
            email = c1.text_input("Email", key="cli_email")
            tel = c2.text_input("Telefono", key="cli_tel")
            via = c1.text_input("Via", key="cli_via")
            citta = c2.text_input("Città", key="cli_citta")
            provincia = c1.text_input("Provincia", key="cli_prov")
            cap = c2.text_input("CAP", key="cli_cap")
            gdpr = st.checkbox("Consenso trattamento dati", key="cli_gdpr")

            if st.button("Crea cliente", key="cli_submit"):
                payload = {
                    "nome": nome.strip(),
                    "cognome": cognome.strip(),
                    "email": email.strip(),
                    "telefono": tel.strip(),
                    "indirizzo": {"via": via.strip(), "citta": citta.strip(), "provincia": provincia.strip(), "cap": cap.strip(), "paese": "IT"},
                    "consenso_gdpr": gdpr,
                }
                try:
                    res = c.post("/api/clienti", payload)
                    salva_token(c)
                    if res.get("ok"):
                        st.success(f"Cliente creato: {res.get('cliente_id')}")
                    else:
                        st.warning(res.get("messaggio"))
                except PermissionError as e:
                    sessione_non_valida(e)
                except requests.RequestException as e:
                    st.error(str(e))

        st.divider()
        cerca = st.text_input("Cerca", key="cli_search")
        pagina = st.number_input("Pagina", min_value=1, value=1, step=1, key="cli_page")

        try:
            res = c.get("/api/clienti", params={"search": cerca, "page": int(pagina), "page_size": 20})
            salva_token(c)
            if not res["clienti"]:
                st.info("Nessun cliente.")
            else:
                st.caption(f"{res['total_count']} clienti, pagina {res['current_page']} di {res['total_pages']}")
                righe = [
                    {
                        "Cliente": f"{x['cognome']} {x['nome']}",
                        "Email": x["email"],
                        "Telefono": x["telefono"],
                        "Animali": ", ".join(a["nome"] for a in x.get("animali", [])),
                        "Ultima visita": x.get("last_visit") or "-",
                    }
                    for x in res["clienti"]
                ]
                st.dataframe(pd.DataFrame(righe), use_container_width=True, hide_index=True)
        except PermissionError as e:
            sessione_non_valida(e)
        except requests.RequestException as e:
            st.error(f"Errore caricamento clienti: {e}")



# TAB - Animali

with tab_animali:
    st.subheader("Animali (sezione riservata)")

    c = require_auth()
    if c:
        try:
            stats = c.get("/api/animali/stats")
            k1, k2, k3, k4 = st.columns(4)
            k1.metric("Totale", stats["total_animals"])
            k2.metric("Specie", stats["total_species"])
            k3.metric("Nuovi (30 gg)", stats["recent_animals"])
            k4.metric("Età media", stats["average_age"])

            cerca = st.text_input("Cerca (nome, specie, razza)", key="ani_search")
            res = c.get("/api/animali", params={"search": cerca, "page_size": 50, "sort_by": "nome", "sort_order": "asc"})
            salva_token(c)
            if res["animali"]:
                righe = [
                    {
                        "Nome": a["nome"],
                        "Specie": a["specie"],
                        "Razza": a.get("razza") or "-",
                        "Età": a.get("eta") or "-",
                        "Proprietario": f"{a['proprietario']['cognome']} {a['proprietario']['nome']}" if a.get("proprietario") else "-",
                    }
                    for a in res["animali"]
                ]
                st.dataframe(pd.DataFrame(righe), use_container_width=True, hide_index=True)
            else:
                st.info("Nessun animale.")
        except PermissionError as e:
            sessione_non_valida(e)
        except requests.RequestException as e:
            st.error(f"Errore caricamento animali: {e}")



# TAB - Calendario

with tab_calendario:
    st.subheader("Calendario")

    c = require_auth()
    if c:
        try:
            staff = c.get("/api/staff/profili")
            tipi = c.get("/api/tipi-visita")
            salva_token(c)
        except PermissionError as e:
            sessione_non_valida(e)
            staff, tipi = [], []
        except requests.RequestException as e:
            st.error(f"API non raggiungibile o errore: {e}")
            staff, tipi = [], []

        giorno = st.date_input("Giorno", value=date.today(), key="cal_giorno")
        if staff:
            membro = st.selectbox(
                "Staff", options=staff, format_func=lambda s: f"{s['nome']} ({s['tipo_staff']})", key="cal_staff"
            )
            try:
                items = c.get("/api/appuntamenti/agenda", params={"staff_id": membro["id"], "giorno": giorno.isoformat()})
                if not items:
                    st.info("Nessun appuntamento per questo giorno.")
                for a in items:
                    st.write(
                        f"- **{a['inizio'][11:16]} - {a['fine'][11:16]}** | {a['titolo']} | "
                        f"Proprietario: {a['proprietario']['nome']} | Stato: {a['stato']}"
                    )
            except PermissionError as e:
                sessione_non_valida(e)
            except requests.RequestException as e:
                st.error(f"Errore agenda: {e}")

            with st.expander("Nuovo appuntamento"):
                q = st.text_input("Cerca animale", key="cal_q")
                animali = c.get("/api/animali/search", params={"q": q or None, "initial": not q})
                animale = st.selectbox(
                    "Animale",
                    options=animali,
                    format_func=lambda a: f"{a['nome']} ({a['specie']})",
                    key="cal_animale",
                )
                tipo = st.selectbox(
                    "Tipo visita",
                    options=tipi,
                    format_func=lambda t: f"{t['nome']} ({t['durata_minuti']} min)",
                    key="cal_tipo",
                )
                ora = st.time_input("Ora", value=time(9, 0), key="cal_ora")
                motivo = st.text_input("Motivo", key="cal_motivo")

                if st.button("Prenota", key="cal_submit", disabled=not (animale and tipo)):
                    start = datetime.combine(giorno, ora)
                    payload = {
                        "animale_id": animale["id"],
                        "tipo_visita_id": tipo["id"],
                        "start": start.isoformat(),
                        "end": (start + timedelta(minutes=tipo["durata_minuti"])).isoformat(),
                        "staff_ids": [membro["id"]],
                        "motivo": motivo or None,
                    }
                    try:
                        res = c.post("/api/appuntamenti", payload)
                        salva_token(c)
                        st.success(f"Appuntamento creato (ID: {res['appuntamento_id']})")
                    except PermissionError as e:
                        sessione_non_valida(e)
                    except requests.RequestException as e:
                        st.error(str(e))
        else:
            st.info("Nessun profilo staff configurato.")



# TAB - Staff

with tab_staff:
    st.subheader("Staff dello studio")

    c = require_auth()
    if c:
        try:
            membri = c.get("/api/membri")
            salva_token(c)
            st.dataframe(
                pd.DataFrame(
                    [
                        {"Nome": m["utente"]["nome"] or "-", "Email": m["utente"]["email"], "Ruolo": m["ruolo"], "Stato": m["stato"]}
                        for m in membri
                    ]
                ),
                use_container_width=True,
                hide_index=True,
            )
        except PermissionError as e:
            sessione_non_valida(e)
        except requests.RequestException as e:
            st.error(f"Errore caricamento staff: {e}")

        with st.expander("Aggiungi membro (utente già registrato)"):
            email = st.text_input("Email", key="staff_email")
            ruolo = st.selectbox("Ruolo", options=["MEMBRO", "ADMIN"], key="staff_ruolo")
            if st.button("Aggiungi", key="staff_submit"):
                try:
                    c.post("/api/membri/invita", {"email": email.strip().lower(), "ruolo": ruolo})
                    salva_token(c)
                    st.success("Membro aggiunto.")
                except PermissionError as e:
                    sessione_non_valida(e)
                except requests.RequestException as e:
                    st.error(str(e))
