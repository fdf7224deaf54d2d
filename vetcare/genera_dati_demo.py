from __future__ import annotations

import argparse
import logging
import random
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import delete, select

from .db import db_session, init_db, utc_now
from .logging_setup import setup_logging
from .models import (
    Animale,
    Appuntamento,
    AssegnazioneStaff,
    Cliente,
    CommentoAttivita,
    ContattoEmergenza,
    ProfiloStaff,
    RegistroAttivita,
    StatoAppuntamento,
    Tenant,
    TipoRecord,
    TipoVisita,
)
from .schemas_animale import RAZZE
from .seed import seed_base

logger = logging.getLogger(__name__)


# =========================
# Config generazione
# =========================
RANDOM_SEED = 42

CLIENTI_COUNT = 60
GIORNI_PASSATI = 90
GIORNI_FUTURI = 14

NOMI = [
    "Roberto", "Marco", "Luca", "Paolo", "Giovanni", "Andrea", "Matteo", "Simone",
    "Sara", "Giulia", "Francesca", "Elena", "Chiara", "Martina", "Laura", "Valentina",
]
COGNOMI = [
    "Falconi", "Rossi", "Bianchi", "Verdi", "Neri", "Gallo", "Conti", "Romano",
    "Greco", "Costa", "Fontana", "Moretti", "Barbieri", "Lombardi", "Mariani",
]
NOMI_ANIMALI = [
    "Fido", "Luna", "Milo", "Bella", "Rocky", "Nala", "Leo", "Kira", "Oscar", "Maya",
    "Birba", "Pallina", "Zeus", "Nuvola", "Briciola", "Toby", "Stella", "Argo",
]
# specie più frequenti negli ambulatori per animali da compagnia
PESI_SPECIE = {"Dog": 5.0, "Cat": 4.0, "Rabbit": 1.0, "Bird": 0.6, "Guinea Pig": 0.5, "Hamster": 0.4, "Reptile": 0.3}

# affluenza per giorno della settimana (0=lun...6=dom)
AFFLUENZA_FATTORE = {0: 1.15, 1: 1.05, 2: 1.00, 3: 1.05, 4: 1.10, 5: 0.55, 6: 0.00}

ORARI = [("09:00", "13:00"), ("14:00", "18:00")]


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime


def _random_phone() -> str:
    return f"3{random.randint(20, 99)}{random.randint(1000000, 9999999)}"


def _random_email(nome: str, cognome: str) -> str:
    domains = ["mail.it", "gmail.com", "outlook.com", "icloud.com"]
    return f"{nome.lower()}.{cognome.lower()}{random.randint(1, 9999)}@{random.choice(domains)}"


def _make_slots_for_day(day: date, start_hm: str, end_hm: str, step_minutes: int = 15) -> list[datetime]:
    """Genera timestamps ogni X minuti tra start e end (start incluso, end escluso)."""
    sh, sm = map(int, start_hm.split(":"))
    eh, em = map(int, end_hm.split(":"))
    cur = datetime.combine(day, time(sh, sm))
    end_dt = datetime.combine(day, time(eh, em))

    out: list[datetime] = []
    while cur < end_dt:
        out.append(cur)
        cur += timedelta(minutes=step_minutes)
    return out


def reset_dati_tenant(tenant_id: str) -> None:
    """Cancella clienti, animali, appuntamenti e registro dello studio (mantiene staff e tipi visita)."""
    with db_session() as s:
        app_ids = select(Appuntamento.id).where(Appuntamento.tenant_id == tenant_id)
        s.execute(delete(AssegnazioneStaff).where(AssegnazioneStaff.appuntamento_id.in_(app_ids)))
        s.execute(delete(Appuntamento).where(Appuntamento.tenant_id == tenant_id))
        s.execute(delete(Animale).where(Animale.tenant_id == tenant_id))
        cliente_ids = select(Cliente.id).where(Cliente.tenant_id == tenant_id)
        s.execute(delete(ContattoEmergenza).where(ContattoEmergenza.cliente_id.in_(cliente_ids)))
        s.execute(delete(Cliente).where(Cliente.tenant_id == tenant_id))
        s.execute(delete(CommentoAttivita).where(CommentoAttivita.tenant_id == tenant_id))
        s.execute(delete(RegistroAttivita).where(RegistroAttivita.tenant_id == tenant_id))


def seed_clienti(tenant_id: str) -> None:
    adesso = utc_now()
    specie = list(PESI_SPECIE)
    pesi = list(PESI_SPECIE.values())

    with db_session() as s:
        for _ in range(CLIENTI_COUNT):
            nome = random.choice(NOMI)
            cognome = random.choice(COGNOMI)
            creato = adesso - timedelta(days=random.randint(0, 400), minutes=random.randint(0, 600))
            c = Cliente(
                tenant_id=tenant_id,
                nome=nome,
                cognome=cognome,
                email=_random_email(nome, cognome),
                telefono=_random_phone(),
                indirizzo={
                    "via": f"Via Roma {random.randint(1, 200)}",
                    "citta": random.choice(["Milano", "Torino", "Bologna", "Firenze"]),
                    "provincia": random.choice(["MI", "TO", "BO", "FI"]),
                    "cap": f"{random.randint(10000, 50999)}",
                    "paese": "IT",
                },
                consenso_gdpr=True,
                consenso_marketing=random.random() < 0.4,
                created_at=creato,
                updated_at=creato,
            )
            s.add(c)
            s.flush()

            # contatto emergenza (circa 55% dei clienti)
            if random.random() < 0.55:
                s.add(
                    ContattoEmergenza(
                        cliente_id=c.id,
                        nome=random.choice(NOMI),
                        telefono=_random_phone(),
                        relazione=random.choice(["Coniuge", "Genitore", "Figlio/a", "Vicino", "Partner"]),
                    )
                )

            for nome_animale in random.sample(NOMI_ANIMALI, k=random.choice([1, 1, 1, 2, 2, 3])):
                sp = random.choices(specie, weights=pesi, k=1)[0]
                s.add(
                    Animale(
                        tenant_id=tenant_id,
                        cliente_id=c.id,
                        nome=nome_animale,
                        specie=sp,
                        razza=random.choice(RAZZE.get(sp, [None])),
                        sesso=random.choice(["Male", "Female", "Male (Neutered)", "Female (Spayed)"]),
                        data_nascita=date.today() - timedelta(days=random.randint(60, 15 * 365)),
                        peso_kg=round(random.uniform(0.2, 40.0), 1),
                        created_at=creato,
                        updated_at=creato,
                    )
                )


def _stato_per_data(app_date: date) -> StatoAppuntamento:
    """Stato coerente con la data: passato quasi sempre completato, futuro programmato/confermato."""
    delta = (date.today() - app_date).days

    if delta >= 1:
        return StatoAppuntamento.COMPLETATO if random.random() < 0.9 else StatoAppuntamento.ANNULLATO
    return StatoAppuntamento.CONFERMATO if random.random() < 0.6 else StatoAppuntamento.PROGRAMMATO


def genera_appuntamenti(tenant_id: str) -> int:
    start_day = date.today() - timedelta(days=GIORNI_PASSATI)
    end_day = date.today() + timedelta(days=GIORNI_FUTURI)

    with db_session() as s:
        staff = list(s.scalars(select(ProfiloStaff).where(ProfiloStaff.tenant_id == tenant_id)).all())
        animali = list(s.scalars(select(Animale).where(Animale.tenant_id == tenant_id)).all())
        tipi = list(s.scalars(select(TipoVisita).where(TipoVisita.tenant_id == tenant_id)).all())

        if not staff or not animali or not tipi:
            raise RuntimeError("Mancano dati base (staff/animali/tipi visita). Esegui seed_base + seed_clienti.")

        creati = 0
        day = start_day
        while day <= end_day:
            fattore = AFFLUENZA_FATTORE.get(day.weekday(), 1.0)
            if fattore <= 0:
                day += timedelta(days=1)
                continue

            occupancy = min(0.9, max(0.2, 0.45 * fattore + random.uniform(-0.08, 0.10)))

            for profilo in staff:
                possibili: list[datetime] = []
                for inizio, fine in ORARI:
                    possibili.extend(_make_slots_for_day(day, inizio, fine))
                random.shuffle(possibili)

                cap = max(2, min(int(8 * fattore + random.randint(-2, 2)), 12))
                timeline: list[Slot] = []

                for start_dt in possibili:
                    if len(timeline) >= cap:
                        break
                    if random.random() > occupancy:
                        continue

                    tv = random.choice(tipi)
                    end_dt = start_dt + timedelta(minutes=tv.durata_minuti)
                    if end_dt.time() > time(18, 0):
                        continue
                    # no overlap per membro dello staff
                    if any(sl.start < end_dt and sl.end > start_dt for sl in timeline):
                        continue

                    animale = random.choice(animali)
                    app = Appuntamento(
                        tenant_id=tenant_id,
                        animale_id=animale.id,
                        tipo_visita_id=tv.id,
                        inizio=start_dt,
                        fine=end_dt,
                        stato=_stato_per_data(day),
                        motivo=random.choice(
                            [None, "Controllo annuale", "Zoppia", "Richiamo vaccino", "Problemi digestivi", "Prurito"]
                        ),
                    )
                    app.assegnazioni.append(AssegnazioneStaff(profilo_staff_id=profilo.id, ruolo="primario"))
                    s.add(app)
                    s.flush()
                    s.add(
                        RegistroAttivita(
                            tenant_id=tenant_id,
                            record_id=app.id,
                            tipo_record=TipoRecord.APPUNTAMENTO,
                            tipo_azione="created",
                            descrizione=f"{tv.nome} per {animale.nome}",
                        )
                    )

                    timeline.append(Slot(start=start_dt, end=end_dt))
                    creati += 1

            day += timedelta(days=1)
        return creati


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(description="Popola uno studio con dati realistici degli ultimi 3 mesi")
    p.add_argument("--subdomain", default="aurora")
    p.add_argument("--no-reset", action="store_true", help="Non cancellare i dati esistenti dello studio")
    args = p.parse_args(argv)

    setup_logging()
    random.seed(RANDOM_SEED)

    init_db()
    seed_base()

    with db_session() as s:
        t = s.execute(select(Tenant).where(Tenant.subdomain == args.subdomain)).scalar_one_or_none()
        if t is None:
            raise SystemExit(f"Studio non trovato: {args.subdomain}")
        tenant_id = t.id

    if not args.no_reset:
        reset_dati_tenant(tenant_id)

    seed_clienti(tenant_id)
    n = genera_appuntamenti(tenant_id)

    logger.info("Studio %s popolato: %d appuntamenti", args.subdomain, n)
    print(f"OK: studio '{args.subdomain}' popolato con dati degli ultimi {GIORNI_PASSATI} giorni.")


if __name__ == "__main__":
    main()
