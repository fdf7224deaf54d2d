from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import func, or_, select
from sqlalchemy.orm import selectinload

from .db import db_session, utc_now
from .errors import DatiNonValidi, NonTrovato
from .models import Animale, Cliente, TipoRecord
from .schemas_animale import AnimaleIntake, AnimaleUpdate, calcola_eta
from .services_attivita import differenze, registra_attivita

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EsitoAnimale:
    ok: bool
    animale_id: str | None
    messaggio: str


def _animale_flat(a: Animale, con_proprietario: bool = False) -> dict:
    out = {
        "id": a.id,
        "cliente_id": a.cliente_id,
        "nome": a.nome,
        "specie": a.specie,
        "razza": a.razza,
        "colore": a.colore,
        "sesso": a.sesso,
        "data_nascita": a.data_nascita.isoformat() if a.data_nascita else None,
        "eta": calcola_eta(a.data_nascita),
        "peso_kg": a.peso_kg,
        "allergie": a.allergie or [],
        "condizioni_mediche": a.condizioni_mediche or [],
        "farmaci": a.farmaci or [],
        "microchip_id": a.microchip_id,
        "assicurazione_fornitore": a.assicurazione_fornitore,
        "assicurazione_polizza": a.assicurazione_polizza,
        "note_comportamentali": a.note_comportamentali,
        "esigenze_alimentari": a.esigenze_alimentari,
        "created_at": a.created_at.isoformat(),
    }
    if con_proprietario:
        c = a.cliente
        out["proprietario"] = {
            "id": c.id,
            "nome": c.nome,
            "cognome": c.cognome,
            "email": c.email,
            "telefono": c.telefono,
        }
    return out


# =========================
# Duplicati / creazione / modifica
# =========================
def trova_duplicati(tenant_id: str, nome: str, cliente_id: str) -> list[dict]:
    """Animali con lo stesso nome dello stesso proprietario nello studio."""
    with db_session(tenant_id) as s:
        rows = s.execute(
            select(Animale.id, Animale.nome, Animale.specie, Animale.razza, Cliente.nome, Cliente.cognome)
            .join(Cliente, Cliente.id == Animale.cliente_id)
            .where(Animale.tenant_id == tenant_id, Animale.nome == nome, Animale.cliente_id == cliente_id)
        ).all()
        return [
            {
                "id": r[0],
                "nome": r[1],
                "specie": r[2],
                "razza": r[3],
                "proprietario": f"{r[4]} {r[5]}".strip(),
            }
            for r in rows
        ]


def crea_animale(tenant_id: str, dati: AnimaleIntake, utente_id: str | None = None) -> EsitoAnimale:
    """
    Use case: accettazione nuovo animale.
    - il proprietario deve appartenere allo studio
    - stesso nome per lo stesso proprietario => esito negativo
    """
    duplicati = trova_duplicati(tenant_id, dati.nome, dati.cliente_id)
    if duplicati:
        return EsitoAnimale(
            False, duplicati[0]["id"], f"Esiste già un animale con questo nome per il proprietario: {dati.nome}"
        )

    with db_session(tenant_id) as s:
        proprietario = s.get(Cliente, dati.cliente_id)
        if not proprietario or proprietario.tenant_id != tenant_id:
            return EsitoAnimale(False, None, "Proprietario non valido.")

        a = Animale(tenant_id=tenant_id, **dati.model_dump())
        s.add(a)
        s.flush()

        registra_attivita(
            s, tenant_id, a.id, TipoRecord.ANIMALE, "created",
            f"Animale {a.nome} ({a.specie}) registrato", utente_id=utente_id,
        )
        registra_attivita(
            s, tenant_id, proprietario.id, TipoRecord.CLIENTE, "animal_added",
            f"Aggiunto l'animale {a.nome}", {"animale_id": a.id}, utente_id,
        )
        logger.info("Animale creato %s (tenant %s)", a.id, tenant_id)
        return EsitoAnimale(True, a.id, "Animale registrato.")


def aggiorna_animale(tenant_id: str, animale_id: str, dati: AnimaleUpdate, utente_id: str | None = None) -> dict:
    with db_session(tenant_id) as s:
        a = s.get(Animale, animale_id)
        if not a or a.tenant_id != tenant_id:
            raise NonTrovato("Animale non trovato o accesso negato.")

        nuovi = dati.model_dump(exclude_unset=True)
        if nuovi.get("nome") is None:
            nuovi.pop("nome", None)
        if nuovi.get("specie") is None:
            nuovi.pop("specie", None)

        prima = {k: getattr(a, k) for k in nuovi}
        for k, v in nuovi.items():
            setattr(a, k, v)

        modifiche = differenze(prima, nuovi)
        if modifiche:
            registra_attivita(
                s, tenant_id, a.id, TipoRecord.ANIMALE, "updated",
                f"Dati animale aggiornati: {', '.join(sorted(modifiche))}", modifiche, utente_id,
            )
        s.flush()
        logger.info("Animale aggiornato %s (tenant %s)", a.id, tenant_id)
        return _animale_flat(a)


# =========================
# Letture
# =========================
def get_animale(tenant_id: str, animale_id: str) -> dict:
    with db_session(tenant_id) as s:
        a = s.scalars(
            select(Animale)
            .options(selectinload(Animale.cliente))
            .where(Animale.id == animale_id, Animale.tenant_id == tenant_id)
        ).first()
        if not a:
            raise NonTrovato("Animale non trovato.")
        return _animale_flat(a, con_proprietario=True)


def animali_del_cliente(tenant_id: str, cliente_id: str) -> list[dict]:
    with db_session(tenant_id) as s:
        animali = s.scalars(
            select(Animale)
            .where(Animale.cliente_id == cliente_id, Animale.tenant_id == tenant_id)
            .order_by(Animale.nome.asc())
        ).all()
        return [_animale_flat(a) for a in animali]


def _ordinamento(sort_by: str, ascendente: bool):
    if sort_by == "nome":
        return [Animale.nome.asc() if ascendente else Animale.nome.desc()]
    if sort_by == "specie":
        return [Animale.specie.asc() if ascendente else Animale.specie.desc()]
    if sort_by == "razza":
        col = Animale.razza.asc() if ascendente else Animale.razza.desc()
        return [col.nulls_last()]
    if sort_by == "eta":
        # età crescente = data di nascita decrescente
        col = Animale.data_nascita.desc() if ascendente else Animale.data_nascita.asc()
        return [col.nulls_last()]
    if sort_by == "proprietario":
        return [Cliente.cognome.asc() if ascendente else Cliente.cognome.desc(), Cliente.nome.asc()]
    return [Animale.created_at.asc() if ascendente else Animale.created_at.desc()]


def lista_animali(
    tenant_id: str,
    page: int = 1,
    page_size: int = 10,
    search: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> dict:
    page = max(page, 1)
    page_size = max(1, min(page_size, 100))

    with db_session(tenant_id) as s:
        q = (
            select(Animale)
            .join(Cliente, Cliente.id == Animale.cliente_id)
            .where(Animale.tenant_id == tenant_id)
        )
        if search and search.strip():
            like = f"%{search.strip()}%"
            q = q.where(or_(Animale.nome.ilike(like), Animale.specie.ilike(like), Animale.razza.ilike(like)))

        totale = s.scalar(select(func.count()).select_from(q.subquery())) or 0
        animali = s.scalars(
            q.options(selectinload(Animale.cliente))
            .order_by(*_ordinamento(sort_by, sort_order == "asc"), Animale.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        righe = [_animale_flat(a, con_proprietario=True) for a in animali]

    return {
        "animali": righe,
        "total_count": totale,
        "total_pages": math.ceil(totale / page_size) if totale else 0,
        "current_page": page,
        "page_size": page_size,
    }


def statistiche_animali(tenant_id: str, oggi: date | None = None) -> dict:
    oggi = oggi or date.today()
    trenta_giorni = utc_now() - timedelta(days=30)

    with db_session(tenant_id) as s:
        rows = s.execute(
            select(Animale.specie, Animale.data_nascita, Animale.created_at).where(Animale.tenant_id == tenant_id)
        ).all()

    con_nascita = [r.data_nascita for r in rows if r.data_nascita]
    eta_media = 0.0
    if con_nascita:
        giorni = sum((oggi - d).days for d in con_nascita)
        eta_media = round(giorni / len(con_nascita) / 365, 1)

    return {
        "total_animals": len(rows),
        "total_species": len({r.specie for r in rows}),
        "recent_animals": sum(1 for r in rows if r.created_at >= trenta_giorni),
        "average_age": eta_media,
    }


def distribuzione_specie(tenant_id: str) -> list[dict]:
    """Conteggio per specie, dalla più numerosa."""
    with db_session(tenant_id) as s:
        rows = s.execute(
            select(Animale.specie, func.count(Animale.id).label("n"))
            .where(Animale.tenant_id == tenant_id)
            .group_by(Animale.specie)
            .order_by(func.count(Animale.id).desc(), Animale.specie)
        ).all()
        return [{"specie": r.specie, "count": r.n} for r in rows]


def animali_recenti(tenant_id: str, limit: int = 10) -> list[dict]:
    """Registrati negli ultimi 30 giorni."""
    trenta_giorni = utc_now() - timedelta(days=30)
    with db_session(tenant_id) as s:
        animali = s.scalars(
            select(Animale)
            .options(selectinload(Animale.cliente))
            .where(Animale.tenant_id == tenant_id, Animale.created_at >= trenta_giorni)
            .order_by(Animale.created_at.desc())
            .limit(limit)
        ).all()
        return [_animale_flat(a, con_proprietario=True) for a in animali]


def cerca_animali(
    tenant_id: str,
    query: str | None = None,
    cliente_id: str | None = None,
    limit: int = 20,
    initial: bool = False,
) -> list[dict]:
    """
    Ricerca per combobox:
    - initial: i 10 più recenti (eventualmente del proprietario indicato)
    - con proprietario e senza query: tutti i suoi animali
    - query < 2 caratteri: nessun risultato
    - altrimenti nome/specie/razza (max 50)
    """
    if not initial and not cliente_id and not query:
        raise DatiNonValidi("Search query is required")

    with db_session(tenant_id) as s:
        q = select(Animale).options(selectinload(Animale.cliente)).where(Animale.tenant_id == tenant_id)
        if cliente_id:
            q = q.where(Animale.cliente_id == cliente_id)

        if initial:
            q = q.order_by(Animale.created_at.desc()).limit(min(limit, 10))
        elif query:
            if len(query) < 2:
                return []
            like = f"%{query}%"
            q = (
                q.where(or_(Animale.nome.ilike(like), Animale.specie.ilike(like), Animale.razza.ilike(like)))
                .order_by(Animale.nome)
                .limit(min(limit, 50))
            )
        else:
            q = q.order_by(Animale.nome).limit(min(limit, 50))

        return [_animale_flat(a, con_proprietario=True) for a in s.scalars(q).all()]
