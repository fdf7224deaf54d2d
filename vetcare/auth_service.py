from __future__ import annotations

import logging

from sqlalchemy import select

from .auth_models import Utente
from .auth_security import create_access_token, hash_password, verify_password
from .config import get_impostazioni
from .db import db_session
from .errors import AccessoNegato, Conflitto, DatiNonValidi, NonTrovato
from .tenant_models import MembroTenant, RuoloMembro, StatoMembro
from .tenant_resolver import check_tenant_access, validate_tenant

logger = logging.getLogger(__name__)


def _normalizza_email(email: str) -> str:
    return email.strip().lower()


def registra_utente(
    email: str,
    password: str,
    nome: str | None = None,
    tenant_id: str | None = None,
    ruolo: RuoloMembro = RuoloMembro.MEMBRO,
) -> str:
    """
    Registrazione utente:
    - tenant esplicito, altrimenti DEFAULT_TENANT_ID
    - il tenant deve esistere
    - crea l'utente con tenant attivo e la membership ATTIVA
    """
    email = _normalizza_email(email)
    if not email or not password:
        raise DatiNonValidi("Email e password sono obbligatori.")

    tenant_id = tenant_id or get_impostazioni().default_tenant_id
    if not tenant_id:
        raise DatiNonValidi("No tenant specified and no default tenant configured")
    if not validate_tenant(tenant_id):
        raise DatiNonValidi("Invalid tenant specified")

    with db_session() as s:
        exists = s.execute(select(Utente).where(Utente.email == email)).scalar_one_or_none()
        if exists:
            raise Conflitto("Email già registrata.")

        u = Utente(
            email=email,
            nome=(nome or "").strip() or None,
            password_hash=hash_password(password),
            tenant_id=tenant_id,
            is_active=True,
        )
        s.add(u)
        s.flush()

        s.add(MembroTenant(utente_id=u.id, tenant_id=tenant_id, ruolo=ruolo, stato=StatoMembro.ATTIVO))
        logger.info("Utente registrato %s nel tenant %s", u.id, tenant_id)
        return u.id


def autentica(email: str, password: str) -> Utente | None:
    email = _normalizza_email(email)
    with db_session() as s:
        u = s.execute(select(Utente).where(Utente.email == email)).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            return None
        return u


def get_utente_by_id(user_id: str) -> Utente | None:
    with db_session() as s:
        return s.get(Utente, user_id)


def get_utente_by_email(email: str) -> Utente | None:
    with db_session() as s:
        return s.execute(select(Utente).where(Utente.email == _normalizza_email(email))).scalar_one_or_none()


def emetti_token(u: Utente) -> str:
    return create_access_token(subject=u.id, extra={"email": u.email, "tenant_id": u.tenant_id})


def aggiorna_tenant_utente(user_id: str, tenant_id: str) -> Utente:
    """
    Cambio studio attivo dell'utente.
    Il tenant deve esistere e l'utente deve esserne membro attivo.
    """
    if not validate_tenant(tenant_id):
        raise DatiNonValidi("Invalid tenant specified")
    if not check_tenant_access(user_id, tenant_id):
        raise AccessoNegato("Nessun accesso attivo al tenant richiesto.")

    with db_session() as s:
        u = s.get(Utente, user_id)
        if not u:
            raise NonTrovato("Utente non trovato.")
        u.tenant_id = tenant_id
        s.flush()
        logger.info("Utente %s: tenant attivo -> %s", user_id, tenant_id)
        return u
