from __future__ import annotations

import argparse
import time
from datetime import datetime, timedelta

import requests
from pydantic import ValidationError

from .auth_service import registra_utente
from .config import get_impostazioni
from .db import init_db
from .errors import ErroreDominio, NonTrovato
from .logging_setup import setup_logging
from .schemas_cliente import ClienteIntake
from .seed import seed_base
from .services_animali import lista_animali
from .services_appuntamenti import annulla_appuntamento, crea_appuntamento, lista_tipi_visita
from .services_attivita import change_feed
from .services_clienti import crea_cliente, lista_clienti
from .services_staff import crea_tenant, lista_membri, lista_profili_staff, lista_tenant
from .tenant_models import RuoloMembro
from .tenant_resolver import get_tenant_by_id, resolve_tenant_by_subdomain
from .ui_client import ApiClient


def _tenant_id(valore: str) -> str:
    """Accetta sottodominio o id dello studio."""
    t = resolve_tenant_by_subdomain(valore) or get_tenant_by_id(valore)
    if not t:
        raise NonTrovato(f"Studio non trovato: {valore}")
    return t.id


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("DB inizializzato e seed completato.")


def cmd_tenants(args: argparse.Namespace) -> None:
    for t in lista_tenant():
        print(f"{t['id']} | {t['name']} | {t['subdomain'] or '-'} | {t['custom_domain'] or '-'}")


def cmd_add_tenant(args: argparse.Namespace) -> None:
    tid = crea_tenant(args.name, subdomain=args.subdomain, custom_domain=args.custom_domain, primary_color=args.color)
    print(f"Studio creato: {tid}")


def cmd_add_user(args: argparse.Namespace) -> None:
    tenant_id = _tenant_id(args.tenant) if args.tenant else None
    uid = registra_utente(args.email, args.password, nome=args.nome, tenant_id=tenant_id, ruolo=RuoloMembro(args.ruolo))
    print(f"Utente creato: {uid}")


def cmd_list(args: argparse.Namespace) -> None:
    tenant_id = _tenant_id(args.tenant)
    if args.entity == "clienti":
        for c in lista_clienti(tenant_id, page_size=100)["clienti"]:
            print(f"{c['id']} | {c['cognome']} {c['nome']} | {c['email']} | {c['telefono']}")
    elif args.entity == "animali":
        for a in lista_animali(tenant_id, page_size=100, sort_by="nome", sort_order="asc")["animali"]:
            print(f"{a['id']} | {a['nome']} | {a['specie']} | {a['eta']}")
    elif args.entity == "tipi_visita":
        for tv in lista_tipi_visita(tenant_id):
            print(f"{tv['id']} | {tv['nome']} ({tv['durata_minuti']} min)")
    elif args.entity == "staff":
        for p in lista_profili_staff(tenant_id):
            print(f"{p['id']} | {p['nome']} | {p['tipo_staff']}")
    elif args.entity == "membri":
        for m in lista_membri(tenant_id):
            print(f"{m['id']} | {m['utente']['email']} | {m['ruolo']} | {m['stato']}")


def cmd_add_customer(args: argparse.Namespace) -> None:
    tenant_id = _tenant_id(args.tenant)
    try:
        dati = ClienteIntake(
            nome=args.nome,
            cognome=args.cognome,
            email=args.email,
            telefono=args.telefono,
            indirizzo={"via": args.via, "citta": args.citta, "provincia": args.provincia, "cap": args.cap, "paese": args.paese},
            consenso_gdpr=args.consenso_gdpr,
        )
    except ValidationError as e:
        for err in e.errors():
            print(f"- {'.'.join(str(x) for x in err['loc'])}: {err['msg']}")
        raise SystemExit(2) from None

    esito = crea_cliente(tenant_id, dati)
    print(esito.messaggio)
    if esito.cliente_id:
        print(f"Cliente ID: {esito.cliente_id}")


def cmd_book(args: argparse.Namespace) -> None:
    tenant_id = _tenant_id(args.tenant)
    try:
        start = datetime.fromisoformat(args.start)  # formato: 2026-01-14T10:30
        end = datetime.fromisoformat(args.end) if args.end else None
    except ValueError:
        print("Data non valida: usare il formato ISO, es. 2026-01-14T10:30")
        raise SystemExit(2) from None
    if end is None:
        tipi = {tv["id"]: tv for tv in lista_tipi_visita(tenant_id)}
        if args.tipo_visita_id not in tipi:
            raise NonTrovato("Tipo visita non trovato.")
        end = start + timedelta(minutes=tipi[args.tipo_visita_id]["durata_minuti"])

    app_id = crea_appuntamento(
        tenant_id,
        animale_id=args.animale_id,
        tipo_visita_id=args.tipo_visita_id,
        start=start,
        end=end,
        staff_ids=args.staff_id,
        motivo=args.motivo,
        note=args.note,
    )
    print(f"Appuntamento ID: {app_id}")


def cmd_cancel(args: argparse.Namespace) -> None:
    res = annulla_appuntamento(_tenant_id(args.tenant), args.appuntamento_id)
    print(f"Appuntamento {res['id']}: {res['stato']}")


def cmd_feed(args: argparse.Namespace) -> None:
    """
    Simula un client "realtime":
    - legge le modifiche successive al cursore
    - le stampa su console
    - con --follow ripete la lettura ogni N secondi
    """
    tenant_id = _tenant_id(args.tenant)
    cursore = args.dopo_id
    while True:
        for r in change_feed(tenant_id, dopo_id=cursore, tipo_record=args.tipo, limit=args.limit):
            print(f"[{r['id']}] {r['creata_il']} | {r['tipo_record']} {r['record_id']} | {r['tipo_azione']} | {r['descrizione']}")
            cursore = r["id"]
        if not args.follow:
            break
        time.sleep(args.intervallo)


def cmd_cache_stats(args: argparse.Namespace) -> None:
    # la cache vive nel processo dell'API
    try:
        stats = ApiClient(args.api).get("/api/health")["tenant_cache"]
    except requests.RequestException as e:
        print(f"API non raggiungibile: {e}")
        raise SystemExit(1) from None
    for k, v in stats.items():
        print(f"{k:16}: {v}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="vetcare-cli", description="CLI VetCare (amministrazione e simulazione sistemi esterni)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB e carica seed demo")
    p_init.set_defaults(func=cmd_init)

    p_ten = sub.add_parser("tenants", help="Lista studi")
    p_ten.set_defaults(func=cmd_tenants)

    p_addt = sub.add_parser("add-tenant", help="Crea studio")
    p_addt.add_argument("--name", required=True)
    p_addt.add_argument("--subdomain", default=None)
    p_addt.add_argument("--custom-domain", default=None)
    p_addt.add_argument("--color", default=None)
    p_addt.set_defaults(func=cmd_add_tenant)

    p_addu = sub.add_parser("add-user", help="Registra utente (membership attiva)")
    p_addu.add_argument("--email", required=True)
    p_addu.add_argument("--password", required=True)
    p_addu.add_argument("--nome", default=None)
    p_addu.add_argument("--tenant", default=None, help="Sottodominio o id (default: DEFAULT_TENANT_ID)")
    p_addu.add_argument("--ruolo", choices=[r.value for r in RuoloMembro], default=RuoloMembro.MEMBRO.value)
    p_addu.set_defaults(func=cmd_add_user)

    p_list = sub.add_parser("list", help="Lista entità di uno studio")
    p_list.add_argument("entity", choices=["clienti", "animali", "tipi_visita", "staff", "membri"])
    p_list.add_argument("--tenant", required=True)
    p_list.set_defaults(func=cmd_list)

    p_addc = sub.add_parser("add-customer", help="Crea cliente")
    p_addc.add_argument("--tenant", required=True)
    p_addc.add_argument("--nome", required=True)
    p_addc.add_argument("--cognome", required=True)
    p_addc.add_argument("--email", required=True)
    p_addc.add_argument("--telefono", required=True)
    p_addc.add_argument("--via", required=True)
    p_addc.add_argument("--citta", required=True)
    p_addc.add_argument("--provincia", required=True)
    p_addc.add_argument("--cap", required=True)
    p_addc.add_argument("--paese", default="IT")
    p_addc.add_argument("--consenso-gdpr", action="store_true", help="Consenso al trattamento dati (obbligatorio)")
    p_addc.set_defaults(func=cmd_add_customer)

    p_book = sub.add_parser("book", help="Prenota appuntamento")
    p_book.add_argument("--tenant", required=True)
    p_book.add_argument("--animale-id", required=True)
    p_book.add_argument("--tipo-visita-id", required=True)
    p_book.add_argument("--staff-id", action="append", required=True, help="Ripetibile")
    p_book.add_argument("--start", required=True, help="ISO datetime es: 2026-01-14T10:30")
    p_book.add_argument("--end", default=None, help="Default: inizio + durata tipo visita")
    p_book.add_argument("--motivo", default=None)
    p_book.add_argument("--note", default=None)
    p_book.set_defaults(func=cmd_book)

    p_cancel = sub.add_parser("cancel", help="Annulla appuntamento")
    p_cancel.add_argument("--tenant", required=True)
    p_cancel.add_argument("--appuntamento-id", required=True)
    p_cancel.set_defaults(func=cmd_cancel)

    p_feed = sub.add_parser("feed", help="Legge il change feed dello studio (polling)")
    p_feed.add_argument("--tenant", required=True)
    p_feed.add_argument("--dopo-id", type=int, default=0)
    p_feed.add_argument("--tipo", choices=["cliente", "animale", "appuntamento"], default=None)
    p_feed.add_argument("--limit", type=int, default=100)
    p_feed.add_argument("--follow", action="store_true", help="Continua a leggere le nuove modifiche")
    p_feed.add_argument("--intervallo", type=float, default=5.0)
    p_feed.set_defaults(func=cmd_feed)

    p_cache = sub.add_parser("cache-stats", help="Statistiche cache tenant dell'API in esecuzione")
    p_cache.add_argument("--api", default="http://127.0.0.1:8000")
    p_cache.set_defaults(func=cmd_cache_stats)

    return p


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(get_impostazioni().log_level)
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except ErroreDominio as e:
        print(f"Errore: {e.messaggio}")
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
