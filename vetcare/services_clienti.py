from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.orm import selectinload

from .db import db_session, utc_now
from .errors import DatiNonValidi, NonTrovato
from .models import Animale, Appuntamento, Cliente, ContattoEmergenza, StatoAppuntamento, TipoRecord
from .schemas_cliente import ClienteIntake, ClienteUpdate
from .services_attivita import differenze, registra_attivita

logger = logging.getLogger(__name__)

ORDINAMENTI = {
    "created_at": Cliente.created_at,
    "nome": Cliente.nome,
    "cognome": Cliente.cognome,
    "email": Cliente.email,
}


@dataclass(frozen=True)
class EsitoCliente:
    ok: bool
    cliente_id: str | None
    messaggio: str


def _cliente_flat(c: Cliente) -> dict:
    return {
        "id": c.id,
        "titolo": c.titolo,
        "nome": c.nome,
        "cognome": c.cognome,
        "email": c.email,
        "telefono": c.telefono,
        "indirizzo": c.indirizzo,
        "studio_preferito": c.studio_preferito,
        "consenso_gdpr": c.consenso_gdpr,
        "consenso_marketing": c.consenso_marketing,
        "note_aggiuntive": c.note_aggiuntive,
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
    }


def _animale_breve(a: Animale) -> dict:
    return {
        "id": a.id,
        "nome": a.nome,
        "specie": a.specie,
        "razza": a.razza,
        "data_nascita": a.data_nascita.isoformat() if a.data_nascita else None,
    }


# =========================
# Duplicati / creazione
# =========================
def trova_duplicati(tenant_id: str, email: str, telefono: str | None = None) -> list[dict]:
    """Clienti dello stesso studio con la stessa email o lo stesso telefono."""
    condizione = Cliente.email == email.lower()
    if telefono and telefono.strip():
        condizione = or_(condizione, Cliente.telefono == telefono.strip())

    with db_session(tenant_id) as s:
        rows = s.execute(
            select(Cliente.id, Cliente.nome, Cliente.cognome, Cliente.email, Cliente.telefono)
            .where(Cliente.tenant_id == tenant_id, condizione)
        ).all()
        return [
            {"id": r.id, "nome": r.nome, "cognome": r.cognome, "email": r.email, "telefono": r.telefono}
            for r in rows
        ]


def crea_cliente(tenant_id: str, dati: ClienteIntake, utente_id: str | None = None) -> EsitoCliente:
    """
    Use case: accettazione nuovo cliente.
    - duplicato (email o telefono) nello stesso studio => esito negativo
    - contatto di emergenza opzionale
    - voce nel registro attività
    """
    duplicati = trova_duplicati(tenant_id, dati.email, dati.telefono)
    if duplicati:
        d = duplicati[0]
        return EsitoCliente(
            False, d["id"], f"Esiste già un cliente con questa email o telefono: {d['nome']} {d['cognome']}"
        )

    with db_session(tenant_id) as s:
        c = Cliente(
            tenant_id=tenant_id,
            titolo=dati.titolo,
            nome=dati.nome,
            cognome=dati.cognome,
            email=dati.email,
            telefono=dati.telefono,
            indirizzo=dati.indirizzo.model_dump(),
            studio_preferito=dati.studio_preferito or None,
            consenso_gdpr=dati.consenso_gdpr,
            consenso_marketing=dati.consenso_marketing,
            note_aggiuntive=dati.note_aggiuntive or None,
        )
        if dati.contatto_emergenza and not dati.contatto_emergenza.vuoto():
            ce = dati.contatto_emergenza
            c.contatti_emergenza.append(ContattoEmergenza(nome=ce.nome, telefono=ce.telefono, relazione=ce.relazione))
        s.add(c)
        s.flush()

        registra_attivita(
            s, tenant_id, c.id, TipoRecord.CLIENTE, "created",
            f"Cliente {c.nome} {c.cognome} registrato", utente_id=utente_id,
        )
        logger.info("Cliente creato %s (tenant %s)", c.id, tenant_id)
        return EsitoCliente(True, c.id, "Cliente registrato.")


def aggiorna_cliente(tenant_id: str, cliente_id: str, dati: ClienteUpdate, utente_id: str | None = None) -> dict:
    with db_session(tenant_id) as s:
        c = s.get(Cliente, cliente_id)
        if not c or c.tenant_id != tenant_id:
            raise NonTrovato("Cliente non trovato.")

        # i campi obbligatori non si possono azzerare
        nuovi = {
            k: v
            for k, v in dati.model_dump(exclude_unset=True).items()
            if v is not None or k in ("titolo", "indirizzo", "note_aggiuntive")
        }
        prima = {k: getattr(c, k) for k in nuovi}
        for k, v in nuovi.items():
            setattr(c, k, v)

        modifiche = differenze(prima, nuovi)
        if modifiche:
            registra_attivita(
                s, tenant_id, c.id, TipoRecord.CLIENTE, "updated",
                f"Dati cliente aggiornati: {', '.join(sorted(modifiche))}", modifiche, utente_id,
            )
        s.flush()
        logger.info("Cliente aggiornato %s (tenant %s)", c.id, tenant_id)
        return _cliente_flat(c)


# =========================
# Letture
# =========================
def get_cliente(tenant_id: str, cliente_id: str) -> dict:
    """Dettaglio con animali e contatti di emergenza."""
    with db_session(tenant_id) as s:
        c = s.scalars(
            select(Cliente)
            .options(selectinload(Cliente.animali), selectinload(Cliente.contatti_emergenza))
            .where(Cliente.id == cliente_id, Cliente.tenant_id == tenant_id)
        ).first()
        if not c:
            raise NonTrovato("Cliente non trovato.")

        out = _cliente_flat(c)
        out["animali"] = [_animale_breve(a) for a in sorted(c.animali, key=lambda a: a.nome)]
        out["contatti_emergenza"] = [
            {"nome": ce.nome, "telefono": ce.telefono, "relazione": ce.relazione} for ce in c.contatti_emergenza
        ]
        return out


def _ultime_visite(s, cliente_ids: list[str]) -> dict[str, str]:
    if not cliente_ids:
        return {}
    rows = s.execute(
        select(Animale.cliente_id, func.max(Appuntamento.inizio))
        .join(Appuntamento, Appuntamento.animale_id == Animale.id)
        .where(Animale.cliente_id.in_(cliente_ids), Appuntamento.stato == StatoAppuntamento.COMPLETATO)
        .group_by(Animale.cliente_id)
    ).all()
    return {cid: quando.isoformat() for cid, quando in rows if quando}


def lista_clienti(
    tenant_id: str,
    page: int = 1,
    page_size: int = 10,
    search: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    """Elenco paginato con animali e ultima visita completata."""
    page = max(page, 1)
    page_size = max(1, min(page_size, 100))
    colonna = ORDINAMENTI.get(sort_by, Cliente.created_at)
    ordine = colonna.asc() if sort_order == "asc" else colonna.desc()

    with db_session(tenant_id) as s:
        q = select(Cliente).where(Cliente.tenant_id == tenant_id)
        if search and search.strip():
            like = f"%{search.strip()}%"
            q = q.where(or_(Cliente.nome.ilike(like), Cliente.cognome.ilike(like), Cliente.email.ilike(like)))

        totale = s.scalar(select(func.count()).select_from(q.subquery())) or 0
        clienti = s.scalars(
            q.options(selectinload(Cliente.animali))
            .order_by(ordine, Cliente.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()

        visite = _ultime_visite(s, [c.id for c in clienti])
        righe = []
        for c in clienti:
            r = _cliente_flat(c)
            r["animali"] = [_animale_breve(a) for a in c.animali]
            r["last_visit"] = visite.get(c.id)
            righe.append(r)

    return {
        "clienti": righe,
        "total_count": totale,
        "total_pages": math.ceil(totale / page_size) if totale else 0,
        "current_page": page,
        "page_size": page_size,
    }


def cerca_clienti(tenant_id: str, query: str | None = None, limit: int = 20, initial: bool = False) -> list[dict]:
    """
    Ricerca per combobox:
    - initial: i 10 clienti più recenti
    - query < 2 caratteri: nessun risultato
    - altrimenti nome/cognome/email, ordinati per nome (max 50)
    """
    if not initial and not query:
        raise DatiNonValidi("Search query is required")
    if not initial and len(query) < 2:
        return []

    with db_session(tenant_id) as s:
        q = select(Cliente).options(selectinload(Cliente.animali)).where(Cliente.tenant_id == tenant_id)
        if initial:
            q = q.order_by(Cliente.created_at.desc()).limit(min(limit, 10))
        else:
            like = f"%{query}%"
            q = (
                q.where(or_(Cliente.nome.ilike(like), Cliente.cognome.ilike(like), Cliente.email.ilike(like)))
                .order_by(Cliente.nome)
                .limit(min(limit, 50))
            )

        return [
            {
                "id": c.id,
                "nome": c.nome,
                "cognome": c.cognome,
                "email": c.email,
                "telefono": c.telefono,
                "animali": [
                    {"id": a.id, "nome": a.nome, "specie": a.specie, "razza": a.razza} for a in c.animali
                ],
            }
            for c in s.scalars(q).all()
        ]


def clienti_con_animali(tenant_id: str) -> list[dict]:
    """Clienti che hanno almeno un animale (selezione in prenotazione)."""
    with db_session(tenant_id) as s:
        clienti = s.scalars(
            select(Cliente)
            .options(selectinload(Cliente.animali))
            .where(Cliente.tenant_id == tenant_id, Cliente.animali.any())
            .order_by(Cliente.cognome, Cliente.nome)
        ).all()
        return [
            {
                "id": c.id,
                "nome": c.nome,
                "cognome": c.cognome,
                "animali": [{"id": a.id, "nome": a.nome, "specie": a.specie} for a in c.animali],
            }
            for c in clienti
        ]


def statistiche_clienti(tenant_id: str) -> dict:
    """
    - new: creati negli ultimi 30 giorni
    - consultation: con appuntamento futuro programmato/confermato
    - active: appuntamento negli ultimi 30 giorni o futuro
    - inactive: nessun appuntamento recente e cliente da oltre 6 mesi
    """
    adesso = utc_now()
    trenta_giorni = adesso - timedelta(days=30)
    sei_mesi = adesso - timedelta(days=6 * 30)

    with db_session(tenant_id) as s:
        clienti = s.execute(
            select(Cliente.id, Cliente.created_at).where(Cliente.tenant_id == tenant_id)
        ).all()
        appuntamenti = s.execute(
            select(Animale.cliente_id, Appuntamento.inizio, Appuntamento.stato)
            .join(Appuntamento, Appuntamento.animale_id == Animale.id)
            .where(Animale.tenant_id == tenant_id)
        ).all()

    per_cliente: dict[str, list] = {}
    for cid, inizio, stato in appuntamenti:
        per_cliente.setdefault(cid, []).append((inizio, stato))

    stats = {"active": 0, "new": 0, "consultation": 0, "follow_up": 0, "inactive": 0}
    for cid, creato in clienti:
        apps = per_cliente.get(cid, [])
        recente = any(inizio > trenta_giorni for inizio, _ in apps)
        futuro = any(
            inizio > adesso and stato in (StatoAppuntamento.PROGRAMMATO, StatoAppuntamento.CONFERMATO)
            for inizio, stato in apps
        )
        if creato > trenta_giorni:
            stats["new"] += 1
        if futuro:
            stats["consultation"] += 1
        if recente or futuro:
            stats["active"] += 1
        if not recente and creato < sei_mesi:
            stats["inactive"] += 1
    return stats
