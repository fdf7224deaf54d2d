"""
Risoluzione del tenant (studio) da sottodominio, dominio personalizzato o id.
Ritorna snapshot immutabili (TenantInfo) che possono stare in cache tra sessioni.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .db import db_session
from .tenant_models import MembroTenant, StatoMembro, Tenant
from .tenant_subdomain import get_subdomain, strip_port

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantInfo:
    id: str
    name: str
    slug: str
    subdomain: str | None = None
    custom_domain: str | None = None
    logo: str | None = None
    primary_color: str | None = None
    settings: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def da_modello(cls, t: Tenant) -> "TenantInfo":
        return cls(
            id=t.id,
            name=t.name,
            slug=t.slug,
            subdomain=t.subdomain,
            custom_domain=t.custom_domain,
            logo=t.logo,
            primary_color=t.primary_color,
            settings=dict(t.settings or {}),
        )


def _tenant_dove(condizione, descrizione: str) -> TenantInfo | None:
    try:
        with db_session() as s:
            t = s.execute(select(Tenant).where(condizione)).scalar_one_or_none()
            if t is None:
                logger.warning("Tenant non trovato per %s", descrizione)
                return None
            return TenantInfo.da_modello(t)
    except SQLAlchemyError:
        logger.exception("Errore risoluzione tenant per %s", descrizione)
        return None


def resolve_tenant_by_subdomain(subdomain: str) -> TenantInfo | None:
    return _tenant_dove(Tenant.subdomain == subdomain.lower(), f"subdomain={subdomain}")


def resolve_tenant_by_domain(domain: str) -> TenantInfo | None:
    return _tenant_dove(Tenant.custom_domain == domain.lower(), f"domain={domain}")


def resolve_tenant_by_hostname(hostname: str) -> TenantInfo | None:
    """Prima il dominio personalizzato, poi il sottodominio."""
    host = strip_port(hostname.replace("https://", "").replace("http://", ""))

    tenant = resolve_tenant_by_domain(host)
    if tenant:
        return tenant

    subdomain = get_subdomain(hostname)
    if not subdomain:
        return None
    return resolve_tenant_by_subdomain(subdomain)


def get_tenant_by_id(tenant_id: str) -> TenantInfo | None:
    return _tenant_dove(Tenant.id == tenant_id, f"id={tenant_id}")


def _membro_attivo(utente_id: str, tenant_id: str):
    return select(MembroTenant.id).where(
        MembroTenant.utente_id == utente_id,
        MembroTenant.tenant_id == tenant_id,
        MembroTenant.stato == StatoMembro.ATTIVO,
    )


def check_tenant_access(utente_id: str, tenant_id: str) -> bool:
    try:
        with db_session() as s:
            return s.execute(_membro_attivo(utente_id, tenant_id)).first() is not None
    except SQLAlchemyError:
        logger.exception("Errore verifica accesso tenant %s", tenant_id)
        return False


def get_user_primary_tenant(utente_id: str) -> TenantInfo | None:
    """Primo studio (membership attiva più vecchia) dell'utente."""
    try:
        with db_session() as s:
            t = s.execute(
                select(Tenant)
                .join(MembroTenant, MembroTenant.tenant_id == Tenant.id)
                .where(MembroTenant.utente_id == utente_id, MembroTenant.stato == StatoMembro.ATTIVO)
                .order_by(MembroTenant.created_at.asc())
                .limit(1)
            ).scalar_one_or_none()
            return TenantInfo.da_modello(t) if t else None
    except SQLAlchemyError:
        logger.exception("Errore lettura tenant principale utente %s", utente_id)
        return None


def validate_tenant(tenant_id: str) -> bool:
    try:
        with db_session() as s:
            return s.get(Tenant, tenant_id) is not None
    except SQLAlchemyError:
        logger.exception("Errore validazione tenant %s", tenant_id)
        return False
