"""
Amministrazione dello studio: membri (staff), profili calendario, impostazioni tenant.
Le operazioni di scrittura richiedono ruolo TITOLARE/ADMIN (cambio ruolo: solo TITOLARE).
"""
from __future__ import annotations

import logging
import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from .auth_models import Utente
from .db import db_session
from .errors import AccessoNegato, Conflitto, DatiNonValidi, NonTrovato
from .models import ProfiloStaff
from .tenant_cache import tenant_cache
from .tenant_models import MembroTenant, RuoloMembro, StatoMembro, Tenant
from .tenant_resolver import TenantInfo
from .tenant_subdomain import is_reserved_subdomain, is_valid_subdomain, strip_port
from .tenant_utente import ContestoTenant

logger = logging.getLogger(__name__)


def _richiedi_admin(ctx: ContestoTenant, azione: str) -> None:
    if not ctx.is_admin:
        raise AccessoNegato(f"Permessi insufficienti per {azione}.")


def _ruolo(valore: RuoloMembro | str) -> RuoloMembro:
    try:
        return RuoloMembro(valore.upper() if isinstance(valore, str) else valore)
    except ValueError:
        raise DatiNonValidi(f"Ruolo non valido: {valore}") from None


# =========================
# Membri
# =========================
def lista_membri(tenant_id: str) -> list[dict]:
    with db_session(tenant_id) as s:
        membri = s.scalars(
            select(MembroTenant)
            .options(selectinload(MembroTenant.utente))
            .where(MembroTenant.tenant_id == tenant_id)
            .order_by(MembroTenant.created_at.desc())
        ).all()
        return [
            {
                "id": m.id,
                "ruolo": m.ruolo.value,
                "stato": m.stato.value,
                "created_at": m.created_at.isoformat(),
                "utente": {"id": m.utente.id, "email": m.utente.email, "nome": m.utente.nome},
            }
            for m in membri
        ]


def invita_membro(ctx: ContestoTenant, email: str, ruolo: RuoloMembro | str = RuoloMembro.MEMBRO) -> str:
    """
    Aggiunge allo studio un utente già registrato.
    Non esiste (ancora) un invito via email per chi non ha un account.
    """
    _richiedi_admin(ctx, "invitare membri dello staff")
    email = (email or "").strip().lower()
    if not email:
        raise DatiNonValidi("Email e ruolo sono obbligatori.")
    ruolo = _ruolo(ruolo)
    if ruolo == RuoloMembro.TITOLARE:
        raise DatiNonValidi("Non si può invitare un nuovo titolare.")

    with db_session() as s:
        u = s.execute(select(Utente).where(Utente.email == email)).scalar_one_or_none()
        if not u:
            raise NonTrovato("User must create an account first. Email invitation system coming soon.")

        esiste = s.execute(
            select(MembroTenant.id).where(MembroTenant.utente_id == u.id, MembroTenant.tenant_id == ctx.tenant_id)
        ).first()
        if esiste:
            raise Conflitto("Questa persona fa già parte dello staff.")

        m = MembroTenant(utente_id=u.id, tenant_id=ctx.tenant_id, ruolo=ruolo, stato=StatoMembro.ATTIVO)
        s.add(m)
        s.flush()
        # primo studio: diventa anche quello attivo
        if not u.tenant_id:
            u.tenant_id = ctx.tenant_id
        logger.info("Membro %s aggiunto al tenant %s come %s", u.id, ctx.tenant_id, ruolo.value)
        return m.id


def rimuovi_membro(ctx: ContestoTenant, membro_id: str) -> None:
    _richiedi_admin(ctx, "rimuovere membri dello staff")
    with db_session() as s:
        m = s.get(MembroTenant, membro_id)
        if not m or m.tenant_id != ctx.tenant_id:
            raise NonTrovato("Membro non trovato.")
        if m.ruolo == RuoloMembro.TITOLARE:
            raise AccessoNegato("Il titolare non può essere rimosso.")
        if m.utente_id == ctx.utente_id:
            raise DatiNonValidi("Non puoi rimuovere te stesso.")
        u = m.utente
        s.delete(m)
        s.flush()
        if u.tenant_id == ctx.tenant_id:
            # lo studio attivo passa a un'altra membership attiva, se esiste
            u.tenant_id = s.execute(
                select(MembroTenant.tenant_id)
                .where(MembroTenant.utente_id == u.id, MembroTenant.stato == StatoMembro.ATTIVO)
                .order_by(MembroTenant.created_at.asc())
                .limit(1)
            ).scalar_one_or_none()
        logger.info("Membro %s rimosso dal tenant %s", membro_id, ctx.tenant_id)


def cambia_ruolo(ctx: ContestoTenant, membro_id: str, ruolo: RuoloMembro | str) -> None:
    if ctx.ruolo != RuoloMembro.TITOLARE:
        raise AccessoNegato("Solo il titolare dello studio può cambiare i ruoli.")
    ruolo = _ruolo(ruolo)
    if ruolo == RuoloMembro.TITOLARE:
        raise DatiNonValidi("Ruolo non assegnabile: usare ADMIN o MEMBRO.")

    with db_session() as s:
        m = s.get(MembroTenant, membro_id)
        if not m or m.tenant_id != ctx.tenant_id:
            raise NonTrovato("Membro non trovato.")
        if m.ruolo == RuoloMembro.TITOLARE:
            raise AccessoNegato("Il ruolo del titolare non può essere cambiato.")
        m.ruolo = ruolo
        logger.info("Membro %s: ruolo %s (tenant %s)", membro_id, ruolo.value, ctx.tenant_id)


# =========================
# Profili calendario
# =========================
def crea_profilo_staff(
    ctx: ContestoTenant, utente_id: str, tipo_staff: str = "veterinario", colore: str | None = None
) -> str:
    _richiedi_admin(ctx, "creare profili staff")
    with db_session(ctx.tenant_id) as s:
        membro = s.execute(
            select(MembroTenant.id).where(
                MembroTenant.utente_id == utente_id,
                MembroTenant.tenant_id == ctx.tenant_id,
                MembroTenant.stato == StatoMembro.ATTIVO,
            )
        ).first()
        if not membro:
            raise DatiNonValidi("L'utente non è membro attivo dello studio.")

        esiste = s.execute(
            select(ProfiloStaff.id).where(ProfiloStaff.tenant_id == ctx.tenant_id, ProfiloStaff.utente_id == utente_id)
        ).first()
        if esiste:
            raise Conflitto("Profilo staff già esistente per questo utente.")

        p = ProfiloStaff(tenant_id=ctx.tenant_id, utente_id=utente_id, tipo_staff=tipo_staff.strip(), colore=colore)
        s.add(p)
        s.flush()
        logger.info("Profilo staff %s creato (tenant %s)", p.id, ctx.tenant_id)
        return p.id


def lista_profili_staff(tenant_id: str) -> list[dict]:
    with db_session(tenant_id) as s:
        rows = s.execute(
            select(ProfiloStaff.id, ProfiloStaff.tipo_staff, ProfiloStaff.colore, Utente.id, Utente.nome, Utente.email)
            .join(Utente, Utente.id == ProfiloStaff.utente_id)
            .where(ProfiloStaff.tenant_id == tenant_id)
            .order_by(Utente.nome, Utente.email)
        ).all()
        return [
            {
                "id": r[0],
                "tipo_staff": r[1],
                "colore": r[2],
                "utente_id": r[3],
                "nome": r[4] or r[5],
                "email": r[5],
            }
            for r in rows
        ]


# =========================
# Impostazioni studio
# =========================
def _normalizza_dominio(dominio: str | None) -> str | None:
    if not dominio:
        return None
    d = dominio.replace("https://", "").replace("http://", "").strip().strip("/").lower()
    return strip_port(d) or None


def aggiorna_tenant(
    ctx: ContestoTenant,
    *,
    name: str | None = None,
    logo: str | None = None,
    primary_color: str | None = None,
    custom_domain: str | None = None,
    settings: dict[str, Any] | None = None,
) -> TenantInfo:
    """
    Aggiorna i metadati dello studio. Tutte le chiavi di cache con cui lo
    studio poteva essere risolto (vecchie e nuove) vengono invalidate.
    """
    _richiedi_admin(ctx, "modificare le impostazioni dello studio")
    try:
        with db_session() as s:
            t = s.get(Tenant, ctx.tenant_id)
            if not t:
                raise NonTrovato("Tenant non trovato.")
            prima = TenantInfo.da_modello(t)

            if name is not None:
                if not name.strip():
                    raise DatiNonValidi("Il nome dello studio non può essere vuoto.")
                t.name = name.strip()
            if logo is not None:
                t.logo = logo or None
            if primary_color is not None:
                t.primary_color = primary_color or None
            if custom_domain is not None:
                t.custom_domain = _normalizza_dominio(custom_domain)
            if settings is not None:
                t.settings = {**(t.settings or {}), **settings}
            s.flush()
            dopo = TenantInfo.da_modello(t)
    except IntegrityError:
        raise Conflitto("Dominio personalizzato già in uso.") from None

    tenant_cache.invalidate_all(prima)
    tenant_cache.invalidate_all(dopo)
    logger.info("Tenant %s aggiornato", ctx.tenant_id)
    return dopo


def crea_tenant(
    name: str,
    subdomain: str | None = None,
    slug: str | None = None,
    custom_domain: str | None = None,
    primary_color: str | None = None,
) -> str:
    """Nuovo studio sulla piattaforma (CLI / seed)."""
    name = (name or "").strip()
    if not name:
        raise DatiNonValidi("Nome studio obbligatorio.")
    if subdomain is not None:
        subdomain = subdomain.strip().lower()
        if not is_valid_subdomain(subdomain):
            raise DatiNonValidi(f"Sottodominio non valido: {subdomain}")
        if is_reserved_subdomain(subdomain):
            raise DatiNonValidi(f"Sottodominio riservato: {subdomain}")
    slug = (slug or subdomain or re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-"))[:63]

    try:
        with db_session() as s:
            t = Tenant(
                name=name,
                slug=slug,
                subdomain=subdomain,
                custom_domain=_normalizza_dominio(custom_domain),
                primary_color=primary_color,
                settings={},
            )
            s.add(t)
            s.flush()
            tenant_id = t.id
    except IntegrityError:
        raise Conflitto("Slug, sottodominio o dominio già in uso.") from None

    # eventuale risultato negativo ancora in cache
    if subdomain:
        tenant_cache.invalidate("subdomain", subdomain)
    if custom_domain:
        tenant_cache.invalidate("domain", _normalizza_dominio(custom_domain))
    logger.info("Tenant creato %s (%s)", tenant_id, subdomain or slug)
    return tenant_id


def lista_tenant() -> list[dict]:
    with db_session() as s:
        rows = s.scalars(select(Tenant).order_by(Tenant.name)).all()
        return [
            {"id": t.id, "name": t.name, "slug": t.slug, "subdomain": t.subdomain, "custom_domain": t.custom_domain}
            for t in rows
        ]
