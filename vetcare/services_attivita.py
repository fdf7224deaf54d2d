from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from .db import db_session, utc_naive, utc_now
from .errors import DatiNonValidi, NonTrovato
from .models import Animale, Appuntamento, Cliente, CommentoAttivita, RegistroAttivita, TipoRecord

logger = logging.getLogger(__name__)

_MODELLI = {
    TipoRecord.CLIENTE: Cliente,
    TipoRecord.ANIMALE: Animale,
    TipoRecord.APPUNTAMENTO: Appuntamento,
}


def _tipo(tipo_record: TipoRecord | str) -> TipoRecord:
    try:
        return TipoRecord(tipo_record)
    except ValueError:
        raise DatiNonValidi(f"Tipo record non valido: {tipo_record}") from None


# =========================
# Scrittura registro (stessa transazione della modifica)
# =========================
def registra_attivita(
    s: Session,
    tenant_id: str,
    record_id: str,
    tipo_record: TipoRecord,
    tipo_azione: str,
    descrizione: str,
    modifiche: dict[str, Any] | None = None,
    utente_id: str | None = None,
) -> None:
    s.add(
        RegistroAttivita(
            tenant_id=tenant_id,
            record_id=record_id,
            tipo_record=tipo_record,
            tipo_azione=tipo_azione,
            descrizione=descrizione,
            modifiche=modifiche,
            eseguita_da=utente_id,
        )
    )


def differenze(prima: dict[str, Any], dopo: dict[str, Any]) -> dict[str, Any]:
    """{campo: {"da": vecchio, "a": nuovo}} per i soli campi cambiati."""
    return {
        k: {"da": _json(prima.get(k)), "a": _json(v)}
        for k, v in dopo.items()
        if prima.get(k) != v
    }


def _json(v: Any) -> Any:
    if hasattr(v, "isoformat"):
        return v.isoformat()
    if hasattr(v, "value"):
        return v.value
    return v


# =========================
# Commenti
# =========================
def aggiungi_commento(
    tenant_id: str, utente_id: str, record_id: str, tipo_record: TipoRecord | str, commento: str
) -> dict:
    tipo = _tipo(tipo_record)
    commento = (commento or "").strip()
    if not commento:
        raise DatiNonValidi("Il commento non può essere vuoto.")

    with db_session(tenant_id) as s:
        record = s.get(_MODELLI[tipo], record_id)
        if not record or record.tenant_id != tenant_id:
            raise NonTrovato("Record non trovato.")

        c = CommentoAttivita(
            tenant_id=tenant_id, record_id=record_id, tipo_record=tipo, commento=commento, autore_id=utente_id
        )
        s.add(c)
        s.flush()
        logger.info("Commento %s su %s %s (tenant %s)", c.id, tipo.value, record_id, tenant_id)
        return {
            "id": c.id,
            "type": "comment",
            "comment": c.commento,
            "person": _nome_persona(c.autore, "Unknown User"),
            "date": "now",
            "datetime": c.creato_il.isoformat(),
        }


# =========================
# Feed
# =========================
def formatta_data_relativa(quando: datetime, adesso: datetime | None = None) -> str:
    adesso = adesso or utc_now()
    secondi = (adesso - quando).total_seconds()
    minuti = int(secondi // 60)
    ore = int(secondi // 3600)
    giorni = int(secondi // 86400)
    settimane = giorni // 7

    if minuti < 1:
        return "now"
    if minuti < 60:
        return f"{minuti}m ago"
    if ore < 24:
        return f"{ore}h ago"
    if giorni < 7:
        return f"{giorni}d ago"
    if settimane < 4:
        return f"{settimane}w ago"
    return quando.strftime("%d/%m/%Y")


def _nome_persona(u, default: str) -> str:
    if u is None:
        return default
    return u.nome or u.email


def feed_attivita(tenant_id: str, record_id: str, tipo_record: TipoRecord | str) -> list[dict]:
    """Registro + commenti del record, dal più recente."""
    tipo = _tipo(tipo_record)
    adesso = utc_now()

    with db_session(tenant_id) as s:
        logs = s.scalars(
            select(RegistroAttivita)
            .options(selectinload(RegistroAttivita.autore))
            .where(
                RegistroAttivita.tenant_id == tenant_id,
                RegistroAttivita.record_id == record_id,
                RegistroAttivita.tipo_record == tipo,
            )
        ).all()
        commenti = s.scalars(
            select(CommentoAttivita)
            .options(selectinload(CommentoAttivita.autore))
            .where(
                CommentoAttivita.tenant_id == tenant_id,
                CommentoAttivita.record_id == record_id,
                CommentoAttivita.tipo_record == tipo,
            )
        ).all()

        voci: list[tuple[datetime, dict]] = []
        for r in logs:
            voci.append(
                (
                    r.creata_il,
                    {
                        "id": r.id,
                        "type": "activity",
                        "action_type": r.tipo_azione,
                        "action_description": r.descrizione,
                        "person": _nome_persona(r.autore, "System"),
                        "date": formatta_data_relativa(r.creata_il, adesso),
                        "datetime": r.creata_il.isoformat(),
                        "changes": r.modifiche,
                    },
                )
            )
        for c in commenti:
            voci.append(
                (
                    c.creato_il,
                    {
                        "id": c.id,
                        "type": "comment",
                        "comment": c.commento,
                        "person": _nome_persona(c.autore, "Unknown User"),
                        "date": formatta_data_relativa(c.creato_il, adesso),
                        "datetime": c.creato_il.isoformat(),
                    },
                )
            )

    voci.sort(key=lambda v: v[0], reverse=True)
    return [v for _, v in voci]


def riepilogo_attivita(tenant_id: str, record_id: str, tipo_record: TipoRecord | str) -> dict:
    feed = feed_attivita(tenant_id, record_id, tipo_record)
    attivita = [v for v in feed if v["type"] == "activity"]
    return {
        "totale_attivita": len(attivita),
        "totale_commenti": len(feed) - len(attivita),
        "ultima": feed[0] if feed else None,
    }


# =========================
# Change feed (polling)
# =========================
def change_feed(
    tenant_id: str,
    dal: datetime | None = None,
    dopo_id: int = 0,
    tipo_record: TipoRecord | str | None = None,
    limit: int = 100,
) -> list[dict]:
    """
    Modifiche del tenant in ordine di arrivo (dal più vecchio).
    Il client ripete la chiamata passando l'ultimo id ricevuto come dopo_id.
    """
    limit = max(1, min(limit, 500))
    with db_session(tenant_id) as s:
        q = select(RegistroAttivita).where(
            RegistroAttivita.tenant_id == tenant_id,
            RegistroAttivita.id > dopo_id,
        )
        if dal is not None:
            q = q.where(RegistroAttivita.creata_il >= utc_naive(dal))
        if tipo_record is not None:
            q = q.where(RegistroAttivita.tipo_record == _tipo(tipo_record))

        rows = s.scalars(q.order_by(RegistroAttivita.id.asc()).limit(limit)).all()
        return [
            {
                "id": r.id,
                "record_id": r.record_id,
                "tipo_record": r.tipo_record.value,
                "tipo_azione": r.tipo_azione,
                "descrizione": r.descrizione,
                "modifiche": r.modifiche,
                "eseguita_da": r.eseguita_da,
                "creata_il": r.creata_il.isoformat(),
            }
            for r in rows
        ]
