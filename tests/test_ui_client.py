from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import requests

from vetcare.auth_security import create_access_token
from vetcare.ui_client import ApiClient, jwt_email, jwt_is_expired, jwt_payload


def test_jwt_payload_token_valido():
    token = create_access_token("u-1", {"email": "titolare@esempio.it", "tenant_id": "t-1"})
    p = jwt_payload(token)
    assert p["sub"] == "u-1"
    assert p["tenant_id"] == "t-1"
    assert jwt_email(token) == "titolare@esempio.it"
    assert not jwt_is_expired(token)


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a.!!!.c", "a.bm9uIGpzb24.c"])
def test_jwt_payload_token_non_valido(token):
    assert jwt_payload(token) == {}
    assert not jwt_is_expired(token)
    assert jwt_email(token) == "utente"


def test_jwt_scaduto():
    token = create_access_token("u-1", minutes=-1)
    assert jwt_is_expired(token)
    # entro il margine conta già come scaduto
    quasi = create_access_token("u-1", minutes=0)
    assert jwt_is_expired(quasi, margine_secondi=5)


def test_headers_client():
    c = ApiClient("http://127.0.0.1:8000/", token="tok", host="aurora.vetcare.test")
    assert c.base_url == "http://127.0.0.1:8000"
    assert c._headers() == {"Authorization": "Bearer tok", "Host": "aurora.vetcare.test"}
    assert ApiClient()._headers() == {}


def test_client_contro_api(client, titolare):
    """ApiClient con la sessione HTTP sostituita dal TestClient."""
    api = ApiClient("", host="aurora.vetcare.test")
    api.http = client

    api.login(titolare.email, "segreta123")
    assert jwt_email(api.token) == titolare.email
    assert api.get("/api/me")["email"] == titolare.email

    with pytest.raises(requests.HTTPError, match="404"):
        api.get("/api/clienti/nessuno")

    api.token = "non-valido"
    with pytest.raises(PermissionError):
        api.get("/api/me")


def test_scadenza_in_secondi():
    exp = int((datetime.now(tz=timezone.utc) + timedelta(seconds=3)).timestamp())
    token = create_access_token("u-1", {"exp": exp})
    assert jwt_is_expired(token, margine_secondi=5)
    assert not jwt_is_expired(token, margine_secondi=0)
