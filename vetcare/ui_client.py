"""
Client HTTP usato dalla UI Streamlit.

- token JWT letto senza verifica firma (solo per mostrare info / scadenza)
- il tenant si seleziona con l'header Host ({subdomain}.ROOT_DOMAIN)
- se il backend rinnova la sessione (header x-access-token) il token viene aggiornato
"""
from __future__ import annotations

import base64
import binascii
import json
import os
from datetime import datetime, timezone
from typing import Any

import requests

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")
TIMEOUT = 10



# JWT helpers (solo per UI, senza verifica firma)

def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict:
    parts = (token or "").split(".")
    if len(parts) != 3:
        return {}
    try:
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return {}
    return payload if isinstance(payload, dict) else {}


def jwt_is_expired(token: str, margine_secondi: int = 5) -> bool:
    exp = jwt_payload(token).get("exp")
    if exp is None:
        return False
    now = int(datetime.now(tz=timezone.utc).timestamp())
    return now >= (int(exp) - margine_secondi)


def jwt_email(token: str) -> str:
    p = jwt_payload(token)
    return str(p.get("email") or p.get("sub") or "utente")



# HTTP client (con JWT)

class ApiClient:
    def __init__(self, base_url: str = API_BASE, token: str | None = None, host: str | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.host = host
        self.http = requests.Session()

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.host:
            headers["Host"] = self.host
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        r = self.http.request(
            method, f"{self.base_url}{path}", headers=self._headers(), timeout=TIMEOUT, **kwargs
        )

        nuovo = r.headers.get("x-access-token")
        if nuovo:
            self.token = nuovo

        if r.status_code == 401:
            raise PermissionError("401 Unauthorized (token non valido/scaduto oppure backend riavviato).")
        if r.status_code >= 400:
            try:
                detail = r.json().get("detail")
            except ValueError:
                detail = None
            if detail:
                raise requests.HTTPError(f"{r.status_code}: {detail}", response=r)
        r.raise_for_status()
        return r.json()

    def get(self, path: str, params: dict | None = None) -> Any:
        return self._request("GET", path, params=params)

    def post(self, path: str, payload: dict | None = None) -> Any:
        return self._request("POST", path, json=payload or {})

    def patch(self, path: str, payload: dict) -> Any:
        return self._request("PATCH", path, json=payload)

    def delete(self, path: str) -> Any:
        return self._request("DELETE", path)

    def login(self, email: str, password: str) -> str:
        # OAuth2PasswordRequestForm => x-www-form-urlencoded
        r = self.http.post(
            f"{self.base_url}/api/auth/login",
            data={"username": email, "password": password},
            headers={"Host": self.host} if self.host else None,
            timeout=TIMEOUT,
        )
        r.raise_for_status()
        self.token = r.json()["access_token"]
        return self.token

    def switch_tenant(self, tenant_id: str) -> str:
        self.token = self.post("/api/auth/switch-tenant", {"tenant_id": tenant_id})["access_token"]
        return self.token
