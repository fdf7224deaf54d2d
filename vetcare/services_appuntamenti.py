from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from .db import db_session, utc_naive
from .errors import Conflitto, DatiNonValidi, NonTrovato
from .models import (
    Animale,
    Appuntamento,
    AssegnazioneStaff,
    Cliente,
    ProfiloStaff,
    StatoAppuntamento,
    TipoRecord,
    TipoVisita,
)
from .services_attivita import differenze, registra_attivita

logger = logging.getLogger(__name__)


def _stato(valore: StatoAppuntamento | str) -> StatoAppuntamento:
    try:
        return StatoAppuntamento(valore.upper() if isinstance(valore, str) else valore)
    except ValueError:
        raise DatiNonValidi(f"Stato appuntamento non valido: {valore}") from None


# =========================
# Tipi visita
# =========================
def crea_tipo_visita(tenant_id: str, nome: str, durata_minuti: int = 30, colore: str | None = None) -> str:
    nome = nome.strip()
    if not nome:
        raise DatiNonValidi("Nome tipo visita obbligatorio.")
    if durata_minuti <= 0:
        raise DatiNonValidi("La durata deve essere positiva.")
    try:
        with db_session(tenant_id) as s:
            tv = TipoVisita(tenant_id=tenant_id, nome=nome, durata_minuti=durata_minuti, colore=colore)
            s.add(tv)
            s.flush()
            return tv.id
    except IntegrityError:
        raise Conflitto(f"Tipo visita già esistente: {nome}") from None


def lista_tipi_visita(tenant_id: str) -> list[dict]:
    with db_session(tenant_id) as s:
        rows = s.execute(
            select(TipoVisita.id, TipoVisita.nome, TipoVisita.colore, TipoVisita.durata_minuti)
            .where(TipoVisita.tenant_id == tenant_id)
            .order_by(TipoVisita.nome)
        ).all()
        return [
            {"id": r.id, "nome": r.nome, "colore": r.colore, "durata_minuti": r.durata_minuti} for r in rows
        ]


# =========================
# Disponibilità
# =========================
def _staff_libero(
    s: Session,
    tenant_id: str,
    profilo_staff_id: str,
    start: datetime,
    end: datetime,
    escludi_appuntamento_id: str | None = None,
) -> bool:
    """Nessuna sovrapposizione [start, end) con appuntamenti non annullati dello stesso membro."""
    q = (
        select(Appuntamento.id)
        .join(AssegnazioneStaff, AssegnazioneStaff.appuntamento_id == Appuntamento.id)
        .where(
            and_(
                Appuntamento.tenant_id == tenant_id,
                AssegnazioneStaff.profilo_staff_id == profilo_staff_id,
                Appuntamento.stato != StatoAppuntamento.ANNULLATO,
                Appuntamento.inizio < end,
                Appuntamento.fine > start,
            )
        )
    )
    if escludi_appuntamento_id:
        q = q.where(Appuntamento.id != escludi_appuntamento_id)
    return s.execute(q.limit(1)).first() is None


def _verifica_orari(start: datetime, end: datetime) -> None:
    if start >= end:
        raise DatiNonValidi("L'inizio deve precedere la fine.")


def _verifica_staff(
    s: Session,
    tenant_id: str,
    staff_ids: Iterable[str],
    start: datetime,
    end: datetime,
    escludi_appuntamento_id: str | None = None,
) -> None:
    for sid in staff_ids:
        profilo = s.get(ProfiloStaff, sid)
        if not profilo or profilo.tenant_id != tenant_id:
            raise NonTrovato("Membro dello staff non trovato.")
        if not _staff_libero(s, tenant_id, sid, start, end, escludi_appuntamento_id):
            raise Conflitto("Uno o più membri dello staff non sono disponibili nell'orario scelto.")


def verifica_conflitti(
    tenant_id: str,
    profilo_staff_id: str,
    start: datetime,
    end: datetime,
    escludi_appuntamento_id: str | None = None,
) -> list[dict]:
    """Appuntamenti dello staff che si sovrappongono allo slot."""
    start, end = utc_naive(start), utc_naive(end)
    with db_session(tenant_id) as s:
        q = (
            select(Appuntamento.id, Appuntamento.inizio, Appuntamento.fine, Appuntamento.stato)
            .join(AssegnazioneStaff, AssegnazioneStaff.appuntamento_id == Appuntamento.id)
            .where(
                Appuntamento.tenant_id == tenant_id,
                AssegnazioneStaff.profilo_staff_id == profilo_staff_id,
                Appuntamento.stato != StatoAppuntamento.ANNULLATO,
                Appuntamento.inizio < end,
                Appuntamento.fine > start,
            )
            .order_by(Appuntamento.inizio)
        )
        if escludi_appuntamento_id:
            q = q.where(Appuntamento.id != escludi_appuntamento_id)
        return [
            {"id": r.id, "inizio": r.inizio.isoformat(), "fine": r.fine.isoformat(), "stato": r.stato.value}
            for r in s.execute(q).all()
        ]


# =========================
# Prenotazione (use case core)
# =========================
def crea_appuntamento(
    tenant_id: str,
    animale_id: str,
    tipo_visita_id: str,
    start: datetime,
    end: datetime,
    staff_ids: list[str],
    stato: StatoAppuntamento | str = StatoAppuntamento.PROGRAMMATO,
    motivo: str | None = None,
    note: str | None = None,
    utente_id: str | None = None,
) -> str:
    """
    Use case: prenotare un appuntamento.
    - almeno un membro dello staff, tutti dello studio e liberi
    - animale e tipo visita dello studio
    - appuntamento e assegnazioni nella stessa transazione
    """
    start, end = utc_naive(start), utc_naive(end)
    _verifica_orari(start, end)
    if not staff_ids:
        raise DatiNonValidi("Serve almeno un membro dello staff.")
    stato = _stato(stato)

    with db_session(tenant_id) as s:
        _verifica_staff(s, tenant_id, staff_ids, start, end)

        animale = s.get(Animale, animale_id)
        if not animale or animale.tenant_id != tenant_id:
            raise NonTrovato("Animale non trovato.")

        tv = s.get(TipoVisita, tipo_visita_id)
        if not tv or tv.tenant_id != tenant_id:
            raise NonTrovato("Tipo visita non trovato.")

        app = Appuntamento(
            tenant_id=tenant_id,
            animale_id=animale_id,
            tipo_visita_id=tipo_visita_id,
            inizio=start,
            fine=end,
            stato=stato,
            motivo=motivo,
            note=note,
        )
        for sid in dict.fromkeys(staff_ids):
            app.assegnazioni.append(AssegnazioneStaff(profilo_staff_id=sid, ruolo="primario"))
        s.add(app)
        s.flush()

        registra_attivita(
            s, tenant_id, app.id, TipoRecord.APPUNTAMENTO, "created",
            f"{tv.nome} per {animale.nome} il {start.strftime('%d/%m/%Y %H:%M')}", utente_id=utente_id,
        )
        registra_attivita(
            s, tenant_id, animale.id, TipoRecord.ANIMALE, "appointment_booked",
            f"Prenotato {tv.nome} il {start.strftime('%d/%m/%Y %H:%M')}", {"appuntamento_id": app.id}, utente_id,
        )
        logger.info("Appuntamento creato %s (tenant %s)", app.id, tenant_id)
        return app.id


def _carica(s: Session, tenant_id: str, appuntamento_id: str) -> Appuntamento:
    app = s.get(Appuntamento, appuntamento_id)
    if not app or app.tenant_id != tenant_id:
        raise NonTrovato("Appuntamento non trovato.")
    return app


def aggiorna_appuntamento(
    tenant_id: str,
    appuntamento_id: str,
    *,
    animale_id: str | None = None,
    tipo_visita_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    staff_ids: list[str] | None = None,
    stato: StatoAppuntamento | str | None = None,
    motivo: str | None = None,
    note: str | None = None,
    utente_id: str | None = None,
) -> dict:
    """
    Modifica parziale. Se cambiano orari o staff, la disponibilità viene
    ricontrollata escludendo l'appuntamento stesso.
    """
    with db_session(tenant_id) as s:
        app = _carica(s, tenant_id, appuntamento_id)
        prima = {"inizio": app.inizio, "fine": app.fine, "stato": app.stato, "motivo": app.motivo, "note": app.note}

        nuovo_start = utc_naive(start) if start else app.inizio
        nuovo_end = utc_naive(end) if end else app.fine
        if start or end or staff_ids is not None:
            _verifica_orari(nuovo_start, nuovo_end)
            if staff_ids is not None and not staff_ids:
                raise DatiNonValidi("Serve almeno un membro dello staff.")
            ids = staff_ids if staff_ids is not None else [a.profilo_staff_id for a in app.assegnazioni]
            _verifica_staff(s, tenant_id, ids, nuovo_start, nuovo_end, escludi_appuntamento_id=app.id)

        if animale_id:
            animale = s.get(Animale, animale_id)
            if not animale or animale.tenant_id != tenant_id:
                raise NonTrovato("Animale non trovato.")
            app.animale_id = animale_id
        if tipo_visita_id:
            tv = s.get(TipoVisita, tipo_visita_id)
            if not tv or tv.tenant_id != tenant_id:
                raise NonTrovato("Tipo visita non trovato.")
            app.tipo_visita_id = tipo_visita_id

        app.inizio, app.fine = nuovo_start, nuovo_end
        if stato is not None:
            app.stato = _stato(stato)
        if motivo is not None:
            app.motivo = motivo
        if note is not None:
            app.note = note

        if staff_ids is not None:
            app.assegnazioni.clear()
            s.flush()
            for sid in dict.fromkeys(staff_ids):
                app.assegnazioni.append(AssegnazioneStaff(profilo_staff_id=sid, ruolo="primario"))

        dopo = {"inizio": app.inizio, "fine": app.fine, "stato": app.stato, "motivo": app.motivo, "note": app.note}
        modifiche = differenze(prima, dopo)
        if staff_ids is not None:
            modifiche["staff"] = {"a": list(dict.fromkeys(staff_ids))}
        if modifiche:
            registra_attivita(
                s, tenant_id, app.id, TipoRecord.APPUNTAMENTO, "updated",
                "Appuntamento modificato", modifiche, utente_id,
            )
        s.flush()
        logger.info("Appuntamento aggiornato %s (tenant %s)", app.id, tenant_id)
        return {"id": app.id, "inizio": app.inizio.isoformat(), "fine": app.fine.isoformat(), "stato": app.stato.value}


def sposta_appuntamento(
    tenant_id: str, appuntamento_id: str, start: datetime, end: datetime, utente_id: str | None = None
) -> dict:
    """Solo orari (drag and drop dal calendario)."""
    return aggiorna_appuntamento(tenant_id, appuntamento_id, start=start, end=end, utente_id=utente_id)


def cambia_stato(
    tenant_id: str, appuntamento_id: str, stato: StatoAppuntamento | str, utente_id: str | None = None
) -> dict:
    nuovo = _stato(stato)
    with db_session(tenant_id) as s:
        app = _carica(s, tenant_id, appuntamento_id)
        vecchio = app.stato
        app.stato = nuovo
        if vecchio != nuovo:
            registra_attivita(
                s, tenant_id, app.id, TipoRecord.APPUNTAMENTO, "status_changed",
                f"Stato: {vecchio.value} -> {nuovo.value}",
                {"stato": {"da": vecchio.value, "a": nuovo.value}}, utente_id,
            )
        logger.info("Appuntamento %s: stato %s (tenant %s)", app.id, nuovo.value, tenant_id)
        return {"id": app.id, "stato": nuovo.value}


def annulla_appuntamento(tenant_id: str, appuntamento_id: str, utente_id: str | None = None) -> dict:
    return cambia_stato(tenant_id, appuntamento_id, StatoAppuntamento.ANNULLATO, utente_id)


def elimina_appuntamento(tenant_id: str, appuntamento_id: str, utente_id: str | None = None) -> None:
    """Le assegnazioni staff vengono eliminate a cascata."""
    with db_session(tenant_id) as s:
        app = _carica(s, tenant_id, appuntamento_id)
        registra_attivita(
            s, tenant_id, app.id, TipoRecord.APPUNTAMENTO, "deleted",
            f"Appuntamento del {app.inizio.strftime('%d/%m/%Y %H:%M')} eliminato", utente_id=utente_id,
        )
        s.delete(app)
        logger.info("Appuntamento eliminato %s (tenant %s)", appuntamento_id, tenant_id)


# =========================
# Letture calendario
# =========================
def _opzioni_dettaglio():
    return (
        selectinload(Appuntamento.animale).selectinload(Animale.cliente),
        selectinload(Appuntamento.tipo_visita),
        selectinload(Appuntamento.assegnazioni)
        .selectinload(AssegnazioneStaff.profilo_staff)
        .selectinload(ProfiloStaff.utente),
    )


def _appuntamento_flat(app: Appuntamento) -> dict:
    animale: Animale = app.animale
    cliente: Cliente = animale.cliente
    tv: TipoVisita = app.tipo_visita
    return {
        "id": app.id,
        "titolo": f"{animale.nome} - {tv.nome}",
        "inizio": app.inizio.isoformat(),
        "fine": app.fine.isoformat(),
        "stato": app.stato.value,
        "motivo": app.motivo,
        "note": app.note,
        "tipo_visita": {"id": tv.id, "nome": tv.nome, "colore": tv.colore, "durata_minuti": tv.durata_minuti},
        "colore": tv.colore,
        "animale": {"id": animale.id, "nome": animale.nome, "specie": animale.specie, "razza": animale.razza},
        "proprietario": {
            "id": cliente.id,
            "nome": cliente.nome,
            "cognome": cliente.cognome,
            "email": cliente.email,
            "telefono": cliente.telefono,
        },
        "staff": [
            {
                "id": a.profilo_staff.id,
                "nome": a.profilo_staff.utente.nome or a.profilo_staff.utente.email,
                "tipo_staff": a.profilo_staff.tipo_staff,
                "colore": a.profilo_staff.colore,
                "ruolo": a.ruolo,
            }
            for a in app.assegnazioni
        ],
    }


def lista_appuntamenti(
    tenant_id: str,
    dal: datetime | None = None,
    al: datetime | None = None,
    stati: list[str] | None = None,
    tipi: list[str] | None = None,
    staff_ids: list[str] | None = None,
) -> list[dict]:
    """Vista calendario: filtri per intervallo (su inizio), stati, nomi tipo visita, staff."""
    with db_session(tenant_id) as s:
        q = (
            select(Appuntamento)
            .join(TipoVisita, TipoVisita.id == Appuntamento.tipo_visita_id)
            .options(*_opzioni_dettaglio())
            .where(Appuntamento.tenant_id == tenant_id)
        )
        if dal:
            q = q.where(Appuntamento.inizio >= utc_naive(dal))
        if al:
            q = q.where(Appuntamento.inizio <= utc_naive(al))
        if stati:
            q = q.where(Appuntamento.stato.in_([_stato(x) for x in stati]))
        if tipi:
            q = q.where(TipoVisita.nome.in_(tipi))
        if staff_ids:
            q = q.where(
                Appuntamento.assegnazioni.any(AssegnazioneStaff.profilo_staff_id.in_(staff_ids))
            )

        apps = s.scalars(q.order_by(Appuntamento.inizio.asc())).all()
        return [_appuntamento_flat(a) for a in apps]


def get_appuntamento(tenant_id: str, appuntamento_id: str) -> dict:
    with db_session(tenant_id) as s:
        app = s.scalars(
            select(Appuntamento)
            .options(*_opzioni_dettaglio())
            .where(Appuntamento.id == appuntamento_id, Appuntamento.tenant_id == tenant_id)
        ).first()
        if not app:
            raise NonTrovato("Appuntamento non trovato.")
        return _appuntamento_flat(app)


def agenda_staff(tenant_id: str, profilo_staff_id: str, giorno: date) -> list[dict]:
    inizio = datetime.combine(giorno, time.min)
    fine = inizio + timedelta(days=1) - timedelta(microseconds=1)
    return lista_appuntamenti(tenant_id, dal=inizio, al=fine, staff_ids=[profilo_staff_id])


def statistiche_appuntamenti(tenant_id: str, oggi: date | None = None) -> dict:
    """
    - today: inizio nella giornata odierna
    - upcoming: da domani ai 7 giorni successivi
    """
    oggi = oggi or datetime.now(timezone.utc).date()
    inizio_oggi = datetime.combine(oggi, time.min)
    domani = inizio_oggi + timedelta(days=1)
    fine_settimana = inizio_oggi + timedelta(days=8)

    def conta(*cond) -> int:
        return s.scalar(
            select(func.count(Appuntamento.id)).where(Appuntamento.tenant_id == tenant_id, *cond)
        ) or 0

    with db_session(tenant_id) as s:
        return {
            "total": conta(),
            "today": conta(Appuntamento.inizio >= inizio_oggi, Appuntamento.inizio < domani),
            "upcoming": conta(Appuntamento.inizio >= domani, Appuntamento.inizio < fine_settimana),
            "completed": conta(Appuntamento.stato == StatoAppuntamento.COMPLETATO),
            "cancelled": conta(Appuntamento.stato == StatoAppuntamento.ANNULLATO),
        }
