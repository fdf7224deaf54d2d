from __future__ import annotations

from datetime import timedelta, timezone

from conftest import PASSWORD, auth, nuovo_utente

from vetcare.db import utc_now
from vetcare.tenant_models import RuoloMembro

HOST = {"Host": "aurora.vetcare.test"}

CLIENTE = {
    "nome": "Mario",
    "cognome": "Rossi",
    "email": "mario.rossi@esempio.it",
    "telefono": "(333) 123-4567",
    "indirizzo": {"via": "Via Roma 1", "citta": "Milano", "provincia": "MI", "cap": "20100", "paese": "IT"},
    "consenso_gdpr": True,
}


def test_register_login_me(client, studio):
    r = client.post(
        "/api/auth/register",
        json={"email": "luca@esempio.it", "password": PASSWORD, "nome": "Luca"},
        headers=HOST,
    )
    assert r.status_code == 200
    assert r.json()["ok"] is True

    r = client.post("/api/auth/login", data={"username": "luca@esempio.it", "password": PASSWORD}, headers=HOST)
    assert r.status_code == 200
    token = r.json()["access_token"]
    assert r.json()["token_type"] == "bearer"

    r = client.get("/api/me", headers={**HOST, "Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    me = r.json()
    assert me["email"] == "luca@esempio.it"
    assert me["tenant_id"] == studio
    assert me["ruolo"] == "MEMBRO"


def test_register_senza_studio(client):
    r = client.post("/api/auth/register", json={"email": "luca@esempio.it", "password": PASSWORD})
    assert r.status_code == 400
    assert r.json()["detail"] == "No tenant specified and no default tenant configured"


def test_login_errato(client, titolare):
    r = client.post("/api/auth/login", data={"username": titolare.email, "password": "sbagliata"}, headers=HOST)
    assert r.status_code == 401
    assert r.json()["detail"] == "Credenziali non valide"
    assert r.headers["www-authenticate"] == "Bearer"


def test_switch_tenant(client, titolare, altro_studio):
    capo = nuovo_utente("capo@esempio.it", altro_studio, RuoloMembro.TITOLARE)
    invito = {"email": titolare.email, "ruolo": "ADMIN"}
    r = client.post("/api/membri/invita", json=invito, headers=auth(capo, "borgo.vetcare.test"))
    assert r.status_code == 200

    practices = client.get("/api/auth/practices", headers=auth(titolare)).json()
    assert {p["subdomain"] for p in practices} == {"aurora", "borgo"}

    r = client.post("/api/auth/switch-tenant", json={"tenant_id": altro_studio}, headers=auth(titolare))
    assert r.status_code == 200
    nuovo = r.json()["access_token"]

    headers = {"Host": "borgo.vetcare.test", "Authorization": f"Bearer {nuovo}"}
    assert client.get("/api/me", headers=headers).json()["ruolo"] == "ADMIN"
    assert client.get("/api/clienti", headers=headers).status_code == 200


def test_clienti_end_to_end(client, titolare):
    h = auth(titolare)
    r = client.post("/api/clienti", json=CLIENTE, headers=h)
    assert r.status_code == 200
    esito = r.json()
    assert esito["ok"] is True
    cid = esito["cliente_id"]

    # duplicato: esito negativo, non errore HTTP
    r = client.post("/api/clienti", json=CLIENTE, headers=h)
    assert r.status_code == 200
    assert r.json()["ok"] is False

    r = client.post("/api/clienti", json={**CLIENTE, "consenso_gdpr": False}, headers=h)
    assert r.status_code == 422

    r = client.patch(f"/api/clienti/{cid}", json={"telefono": "333 765 4321"}, headers=h)
    assert r.json()["telefono"] == "3337654321"

    assert client.get("/api/clienti", params={"search": "ross"}, headers=h).json()["total_count"] == 1
    assert client.get("/api/clienti/search", params={"q": "mario"}, headers=h).json()[0]["id"] == cid
    assert client.get("/api/clienti/search", headers=h).status_code == 400
    assert client.get("/api/clienti/stats", headers=h).json()["new"] == 1
    assert client.get("/api/clienti/nessuno", headers=h).status_code == 404


def test_isolamento_tra_studi(client, titolare, altro_studio):
    r = client.post("/api/clienti", json=CLIENTE, headers=auth(titolare))
    cid = r.json()["cliente_id"]

    capo = nuovo_utente("capo@esempio.it", altro_studio, RuoloMembro.TITOLARE)
    h = auth(capo, "borgo.vetcare.test")
    assert client.get(f"/api/clienti/{cid}", headers=h).status_code == 404
    assert client.get("/api/clienti", headers=h).json()["clienti"] == []
    assert client.patch(f"/api/clienti/{cid}", json={"nome": "Luigi"}, headers=h).status_code == 404


def test_animali_end_to_end(client, titolare, cliente):
    h = auth(titolare)
    r = client.post("/api/animali", json={"nome": "Fido", "specie": "Dog", "cliente_id": cliente}, headers=h)
    aid = r.json()["animale_id"]

    fido = {"nome": "Fido", "specie": "Dog", "cliente_id": cliente}
    assert client.post("/api/animali", json=fido, headers=h).json()["ok"] is False
    assert client.post("/api/animali", json={**fido, "specie": "Drago"}, headers=h).status_code == 422

    r = client.patch(f"/api/animali/{aid}", json={"peso_kg": 12.5}, headers=h)
    assert r.json()["peso_kg"] == 12.5
    assert client.get(f"/api/animali/{aid}", headers=h).json()["proprietario"]["id"] == cliente
    assert client.get(f"/api/clienti/{cliente}/animali", headers=h).json()[0]["id"] == aid
    assert client.get("/api/animali/species", headers=h).json() == [{"specie": "Dog", "count": 1}]
    assert client.get("/api/animali/stats", headers=h).json()["total_animals"] == 1
    assert len(client.get("/api/animali/recent", headers=h).json()) == 1
    assert client.get("/api/animali/search", params={"initial": True}, headers=h).json()[0]["id"] == aid


def test_calendario_end_to_end(client, titolare, animale, domani_alle_10):
    h = auth(titolare)
    r = client.post("/api/tipi-visita", json={"nome": "Vaccinazione", "durata_minuti": 20}, headers=h)
    tv = r.json()["tipo_visita_id"]
    pid = client.post("/api/staff/profili", json={"utente_id": titolare.id}, headers=h).json()["profilo_staff_id"]

    slot = {"start": domani_alle_10.isoformat(), "end": (domani_alle_10 + timedelta(minutes=20)).isoformat()}
    r = client.post(
        "/api/appuntamenti",
        json={"animale_id": animale, "tipo_visita_id": tv, "staff_ids": [pid], **slot},
        headers=h,
    )
    assert r.status_code == 200
    app_id = r.json()["appuntamento_id"]

    r = client.post(
        "/api/appuntamenti",
        json={"animale_id": animale, "tipo_visita_id": tv, "staff_ids": [pid], **slot},
        headers=h,
    )
    assert r.status_code == 409

    r = client.get("/api/appuntamenti/conflitti", params={"staff_id": pid, **slot}, headers=h)
    assert r.json()["disponibile"] is False
    r = client.get("/api/appuntamenti/conflitti", params={"staff_id": pid, "escludi": app_id, **slot}, headers=h)
    assert r.json() == {"disponibile": True, "conflitti": []}

    giorno = domani_alle_10.date().isoformat()
    agenda = client.get("/api/appuntamenti/agenda", params={"staff_id": pid, "giorno": giorno}, headers=h)
    assert [a["id"] for a in agenda.json()] == [app_id]

    nuovo_inizio = domani_alle_10 + timedelta(hours=1)
    r = client.post(
        f"/api/appuntamenti/{app_id}/sposta",
        json={"start": nuovo_inizio.isoformat(), "end": (nuovo_inizio + timedelta(minutes=20)).isoformat()},
        headers=h,
    )
    assert r.json()["inizio"] == nuovo_inizio.isoformat()

    r = client.post(f"/api/appuntamenti/{app_id}/stato", json={"stato": "CONFERMATO"}, headers=h)
    assert r.json()["stato"] == "CONFERMATO"
    assert client.patch(f"/api/appuntamenti/{app_id}", json={"motivo": "Richiamo"}, headers=h).status_code == 200
    assert client.get(f"/api/appuntamenti/{app_id}", headers=h).json()["motivo"] == "Richiamo"
    confermati = client.get("/api/appuntamenti", params={"stato": ["CONFERMATO"]}, headers=h).json()
    assert [a["id"] for a in confermati] == [app_id]

    assert client.post(f"/api/appuntamenti/{app_id}/annulla", headers=h).json()["stato"] == "ANNULLATO"
    assert client.get("/api/appuntamenti/stats", headers=h).json()["cancelled"] == 1
    assert client.delete(f"/api/appuntamenti/{app_id}", headers=h).json() == {"ok": True}
    assert client.get(f"/api/appuntamenti/{app_id}", headers=h).status_code == 404


def test_membri_e_permessi(client, titolare, membro):
    r = client.get("/api/membri", headers=auth(titolare))
    membri = {m["utente"]["email"]: m["id"] for m in r.json()}
    assert set(membri) == {titolare.email, membro.email}

    # un membro semplice non amministra lo staff
    assert client.post("/api/membri/invita", json={"email": titolare.email}, headers=auth(membro)).status_code == 403
    assert client.patch("/api/tenant/settings", json={"name": "X"}, headers=auth(membro)).status_code == 403

    r = client.patch(f"/api/membri/{membri[membro.email]}/ruolo", json={"ruolo": "ADMIN"}, headers=auth(titolare))
    assert r.status_code == 200
    assert client.delete(f"/api/membri/{membri[titolare.email]}", headers=auth(membro)).status_code == 403
    assert client.delete(f"/api/membri/{membri[membro.email]}", headers=auth(titolare)).json() == {"ok": True}


def test_impostazioni_studio(client, titolare):
    modifiche = {"name": "Clinica Aurora", "primary_color": "#111111"}
    r = client.patch("/api/tenant/settings", json=modifiche, headers=auth(titolare))
    assert r.status_code == 200
    assert r.json()["name"] == "Clinica Aurora"

    # la cache è stata invalidata: l'header riflette il nuovo nome
    r = client.get("/api/tenant/current", headers=HOST)
    assert r.json()["tenant"]["name"] == "Clinica Aurora"
    assert r.headers["x-tenant-name"] == "Clinica Aurora"


def test_attivita_e_change_feed(client, titolare, cliente):
    h = auth(titolare)
    r = client.post(
        "/api/attivita/commenti",
        json={"record_id": cliente, "tipo_record": "cliente", "commento": "Richiamare a novembre"},
        headers=h,
    )
    assert r.json()["person"] == "Giulia Ferri"

    record = {"record_id": cliente, "tipo_record": "cliente"}
    feed = client.get("/api/attivita", params=record, headers=h).json()
    assert feed[0]["type"] == "comment"
    riepilogo = client.get("/api/attivita/riepilogo", params=record, headers=h)
    assert riepilogo.json()["totale_commenti"] == 1

    r = client.get("/api/changes", headers=h).json()
    assert [c["tipo_azione"] for c in r["changes"]] == ["created"]
    cursore = r["cursor"]
    vuoto = client.get("/api/changes", params={"dopo_id": cursore}, headers=h).json()
    assert vuoto == {"changes": [], "cursor": cursore}
    assert client.get("/api/changes", params={"tipo_record": "fattura"}, headers=h).status_code == 422


def test_dashboard_e_health(client, titolare, cliente, animale):
    r = client.get("/api/dashboard", headers=auth(titolare))
    body = r.json()
    assert body["clienti"]["new"] == 1
    assert body["animali"]["total_animals"] == 1
    assert body["appuntamenti"]["total"] == 0
    assert body["specie"] == [{"specie": "Dog", "count": 1}]

    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["tenant_cache"]["misses"] >= 1


def test_change_feed_dal_con_offset(client, titolare, cliente):
    h = auth(titolare)
    new_york = timezone(timedelta(hours=-5))
    futuro = (utc_now() + timedelta(minutes=30)).replace(tzinfo=timezone.utc).astimezone(new_york)
    r = client.get("/api/changes", params={"dal": futuro.isoformat()}, headers=h)
    assert r.status_code == 200
    assert r.json()["changes"] == []
