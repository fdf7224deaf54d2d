"""
Tenant dell'utente corrente: lo studio attivo (Utente.tenant_id) deve
corrispondere a una membership ATTIVA, altrimenti l'accesso è negato.
"""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select

from .auth_models import Utente
from .db import db_session
from .errors import AccessoNegato, UtenteNonConfigurato
from .tenant_models import MembroTenant, RuoloMembro, StatoMembro, Tenant
from .tenant_resolver import TenantInfo


@dataclass(frozen=True)
class ContestoTenant:
    utente_id: str
    email: str
    nome: str | None
    membro_id: str
    ruolo: RuoloMembro
    tenant: TenantInfo

    @property
    def tenant_id(self) -> str:
        return self.tenant.id

    @property
    def is_admin(self) -> bool:
        return self.ruolo in (RuoloMembro.TITOLARE, RuoloMembro.ADMIN)


def get_current_tenant_id(utente: Utente) -> str:
    if not utente.tenant_id:
        raise UtenteNonConfigurato(
            "User account not properly configured. Please contact support to set up your tenant access."
        )
    return utente.tenant_id


def get_current_user_tenant(utente: Utente) -> ContestoTenant:
    tenant_id = get_current_tenant_id(utente)

    with db_session() as s:
        row = s.execute(
            select(MembroTenant, Tenant)
            .join(Tenant, Tenant.id == MembroTenant.tenant_id)
            .where(
                MembroTenant.utente_id == utente.id,
                MembroTenant.tenant_id == tenant_id,
                MembroTenant.stato == StatoMembro.ATTIVO,
            )
        ).first()

        if row is None:
            raise AccessoNegato(f"Invalid tenant access for tenant {tenant_id}. Please contact support.")

        membro, tenant = row
        return ContestoTenant(
            utente_id=utente.id,
            email=utente.email,
            nome=utente.nome,
            membro_id=membro.id,
            ruolo=membro.ruolo,
            tenant=TenantInfo.da_modello(tenant),
        )


def has_access_to_tenant(utente: Utente, tenant_id: str) -> bool:
    try:
        return get_current_tenant_id(utente) == tenant_id
    except UtenteNonConfigurato:
        return False


def get_current_user_role(utente: Utente) -> RuoloMembro:
    try:
        return get_current_user_tenant(utente).ruolo
    except AccessoNegato:
        return RuoloMembro.MEMBRO


def get_available_practices(utente_id: str) -> list[dict]:
    """Studi in cui l'utente ha una membership attiva."""
    with db_session() as s:
        rows = s.execute(
            select(Tenant.id, Tenant.name, Tenant.subdomain, MembroTenant.ruolo)
            .join(MembroTenant, MembroTenant.tenant_id == Tenant.id)
            .where(MembroTenant.utente_id == utente_id, MembroTenant.stato == StatoMembro.ATTIVO)
            .order_by(Tenant.name)
        ).all()
        return [{"id": r.id, "name": r.name, "subdomain": r.subdomain, "ruolo": r.ruolo.value} for r in rows]
