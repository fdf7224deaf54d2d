from __future__ import annotations

import logging

from sqlalchemy import select

from .auth_models import Utente
from .auth_security import hash_password
from .db import db_session
from .models import ProfiloStaff, TipoVisita
from .tenant_models import MembroTenant, RuoloMembro, StatoMembro, Tenant

logger = logging.getLogger(__name__)

PASSWORD_DEMO = "demo1234"

STUDI = [
    # nome, sottodominio, colore
    ("Clinica Veterinaria Aurora", "aurora", "#2563eb"),
    ("Ambulatorio Borgo Antico", "borgo", "#16a34a"),
]

TIPI_VISITA = [
    ("Visita Generale", 30, "#3b82f6"),
    ("Vaccinazione", 15, "#22c55e"),
    ("Controllo", 20, "#eab308"),
    ("Chirurgia", 90, "#ef4444"),
    ("Toelettatura", 45, "#a855f7"),
]

# email, nome, ruolo, tipo staff (None = nessun profilo calendario)
STAFF = [
    ("titolare@{sub}.vet", "Giulia Ferri", RuoloMembro.TITOLARE, "veterinario"),
    ("vet@{sub}.vet", "Marco Greco", RuoloMembro.ADMIN, "veterinario"),
    ("reception@{sub}.vet", "Sara Conti", RuoloMembro.MEMBRO, None),
]


def _tenant(s, nome: str, sub: str, colore: str) -> Tenant:
    t = s.execute(select(Tenant).where(Tenant.subdomain == sub)).scalar_one_or_none()
    if t is None:
        t = Tenant(name=nome, slug=sub, subdomain=sub, primary_color=colore, settings={})
        s.add(t)
        s.flush()
    return t


def _utente(s, email: str, nome: str, tenant_id: str) -> Utente:
    u = s.execute(select(Utente).where(Utente.email == email)).scalar_one_or_none()
    if u is None:
        u = Utente(email=email, nome=nome, password_hash=hash_password(PASSWORD_DEMO), tenant_id=tenant_id)
        s.add(u)
        s.flush()
    return u


def seed_base() -> None:
    """
    Popola dati minimi (idempotente):
    - studi demo
    - utenti staff con membership
    - tipi visita
    - profili calendario
    """
    with db_session() as s:
        for nome, sub, colore in STUDI:
            t = _tenant(s, nome, sub, colore)

            for nome_tv, durata, colore_tv in TIPI_VISITA:
                esiste = s.execute(
                    select(TipoVisita).where(TipoVisita.tenant_id == t.id, TipoVisita.nome == nome_tv)
                ).scalar_one_or_none()
                if esiste is None:
                    s.add(TipoVisita(tenant_id=t.id, nome=nome_tv, durata_minuti=durata, colore=colore_tv))

            for email, nome_u, ruolo, tipo_staff in STAFF:
                u = _utente(s, email.format(sub=sub), nome_u, t.id)

                m = s.execute(
                    select(MembroTenant).where(MembroTenant.utente_id == u.id, MembroTenant.tenant_id == t.id)
                ).scalar_one_or_none()
                if m is None:
                    s.add(MembroTenant(utente_id=u.id, tenant_id=t.id, ruolo=ruolo, stato=StatoMembro.ATTIVO))

                if tipo_staff:
                    p = s.execute(
                        select(ProfiloStaff).where(ProfiloStaff.tenant_id == t.id, ProfiloStaff.utente_id == u.id)
                    ).scalar_one_or_none()
                    if p is None:
                        s.add(ProfiloStaff(tenant_id=t.id, utente_id=u.id, tipo_staff=tipo_staff, colore=colore))

    logger.info("Seed demo completato (%d studi)", len(STUDI))
