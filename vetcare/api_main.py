from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm

from .api_schemas import (
    AppuntamentoIn,
    AppuntamentoUpdateIn,
    CommentoIn,
    InvitoIn,
    MeOut,
    ProfiloStaffIn,
    RegisterIn,
    RuoloIn,
    SpostamentoIn,
    StatoAppuntamentoIn,
    SwitchTenantIn,
    TenantUpdateIn,
    TipoVisitaIn,
    TokenOut,
)
from .auth_models import Utente
from .auth_security import clean_token, get_subject
from .auth_service import aggiorna_tenant_utente, autentica, emetti_token, get_utente_by_id, registra_utente
from .config import get_impostazioni
from .db import init_db
from .errors import ErroreDominio, NonAutenticato
from .logging_setup import setup_logging
from .middleware import SessionRefreshMiddleware, TenantContext, TenantMiddleware
from .models import TipoRecord
from .schemas_animale import AnimaleIntake, AnimaleUpdate
from .schemas_cliente import ClienteIntake, ClienteUpdate
from .seed import seed_base
from .services_animali import (
    aggiorna_animale,
    animali_del_cliente,
    animali_recenti,
    cerca_animali,
    crea_animale,
    distribuzione_specie,
    get_animale,
    lista_animali,
    statistiche_animali,
)
from .services_appuntamenti import (
    agenda_staff,
    aggiorna_appuntamento,
    annulla_appuntamento,
    cambia_stato,
    crea_appuntamento,
    crea_tipo_visita,
    elimina_appuntamento,
    get_appuntamento,
    lista_appuntamenti,
    lista_tipi_visita,
    sposta_appuntamento,
    statistiche_appuntamenti,
    verifica_conflitti,
)
from .services_attivita import aggiungi_commento, change_feed, feed_attivita, riepilogo_attivita
from .services_clienti import (
    aggiorna_cliente,
    cerca_clienti,
    clienti_con_animali,
    crea_cliente,
    get_cliente,
    lista_clienti,
    statistiche_clienti,
)
from .services_dashboard import dashboard
from .services_staff import (
    aggiorna_tenant,
    cambia_ruolo,
    crea_profilo_staff,
    invita_membro,
    lista_membri,
    lista_profili_staff,
    rimuovi_membro,
)
from .tenant_cache import sweep_periodico, tenant_cache
from .tenant_utente import ContestoTenant, get_available_practices, get_current_user_role, get_current_user_tenant

logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

app = FastAPI(title="VetCare API", version="1.0.0")

# l'ultimo aggiunto è il più esterno: prima il tenant, poi il rinnovo sessione
app.add_middleware(SessionRefreshMiddleware)
app.add_middleware(TenantMiddleware)


@app.exception_handler(ErroreDominio)
async def errore_dominio_handler(request: Request, exc: ErroreDominio) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, NonAutenticato) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.messaggio}, headers=headers)



# Startup

@app.on_event("startup")
async def startup() -> None:
    imp = get_impostazioni()
    setup_logging(imp.log_level)
    # Crea tabelle e seed demo (idempotente)
    init_db()
    if imp.seed_demo:
        seed_base()
    app.state.sweep_task = asyncio.create_task(sweep_periodico())
    logger.info("API avviata (%s)", imp.ambiente)


@app.on_event("shutdown")
async def shutdown() -> None:
    task = getattr(app.state, "sweep_task", None)
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task



# Dipendenze auth / tenant

def get_current_user(token: str = Depends(oauth2_scheme)) -> Utente:
    token = clean_token(token)

    user_id = get_subject(token)
    if not user_id:
        raise NonAutenticato("Token non valido")

    u = get_utente_by_id(user_id)
    if not u or not u.is_active:
        raise NonAutenticato("Utente non valido")
    return u


def tenant_richiesta(request: Request) -> TenantContext | None:
    return getattr(request.state, "tenant", None)


def get_contesto(request: Request, user: Utente = Depends(get_current_user)) -> ContestoTenant:
    """
    Studio attivo dell'utente. Se l'hostname ha risolto uno studio,
    deve essere lo stesso dello studio attivo.
    """
    ctx = get_current_user_tenant(user)
    t = tenant_richiesta(request)
    if t is not None and t.id != ctx.tenant_id:
        logger.warning("Utente %s (tenant %s) su host del tenant %s", user.id, ctx.tenant_id, t.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied to this tenant")
    return ctx


def _esito(esito) -> dict[str, Any]:
    # EsitoCliente / EsitoAnimale: ok=False non è un errore HTTP
    return asdict(esito)



# AUTH endpoints

@app.post("/api/auth/register", response_model=dict)
def register(payload: RegisterIn, request: Request) -> dict[str, Any]:
    t = tenant_richiesta(request)
    tenant_id = payload.tenant_id or (t.id if t else None)
    user_id = registra_utente(payload.email, payload.password, nome=payload.nome, tenant_id=tenant_id)
    return {"ok": True, "user_id": user_id}


@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = autentica(form.username, form.password)
    if not u:
        raise NonAutenticato("Credenziali non valide")
    return TokenOut(access_token=emetti_token(u))


@app.get("/api/me", response_model=MeOut)
def me(user: Utente = Depends(get_current_user)) -> MeOut:
    return MeOut(
        id=user.id,
        email=user.email,
        nome=user.nome,
        is_active=user.is_active,
        tenant_id=user.tenant_id,
        ruolo=get_current_user_role(user).value,
    )


@app.get("/api/auth/practices")
def practices(user: Utente = Depends(get_current_user)) -> list[dict]:
    return get_available_practices(user.id)


@app.post("/api/auth/switch-tenant", response_model=TokenOut)
def switch_tenant(payload: SwitchTenantIn, user: Utente = Depends(get_current_user)) -> TokenOut:
    u = aggiorna_tenant_utente(user.id, payload.tenant_id)
    return TokenOut(access_token=emetti_token(u))



# TENANT endpoints

@app.get("/api/tenant/current")
def tenant_corrente(request: Request) -> dict[str, Any]:
    t = tenant_richiesta(request)
    return {
        "tenant": asdict(t) if t else None,
        "is_subdomain": bool(t and t.subdomain and not t.custom_domain),
        "is_custom_domain": bool(t and t.custom_domain),
    }


@app.patch("/api/tenant/settings")
def api_aggiorna_tenant(payload: TenantUpdateIn, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    info = aggiorna_tenant(ctx, **payload.model_dump(exclude_unset=True))
    return asdict(info)


@app.get("/api/dashboard")
def api_dashboard(ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return dashboard(ctx.tenant_id)



# CLIENTI

@app.get("/api/clienti")
def api_clienti(
    page: int = 1,
    page_size: int = 10,
    search: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
    ctx: ContestoTenant = Depends(get_contesto),
) -> dict[str, Any]:
    return lista_clienti(ctx.tenant_id, page, page_size, search, sort_by, sort_order)


@app.post("/api/clienti")
def api_crea_cliente(payload: ClienteIntake, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return _esito(crea_cliente(ctx.tenant_id, payload, utente_id=ctx.utente_id))


@app.get("/api/clienti/search")
def api_cerca_clienti(
    q: str | None = None,
    limit: int = 20,
    initial: bool = False,
    ctx: ContestoTenant = Depends(get_contesto),
) -> list[dict]:
    return cerca_clienti(ctx.tenant_id, q, limit=limit, initial=initial)


@app.get("/api/clienti/stats")
def api_statistiche_clienti(ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return statistiche_clienti(ctx.tenant_id)


@app.get("/api/clienti/with-animals")
def api_clienti_con_animali(ctx: ContestoTenant = Depends(get_contesto)) -> list[dict]:
    return clienti_con_animali(ctx.tenant_id)


@app.get("/api/clienti/{cliente_id}")
def api_get_cliente(cliente_id: str, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return get_cliente(ctx.tenant_id, cliente_id)


@app.patch("/api/clienti/{cliente_id}")
def api_aggiorna_cliente(
    cliente_id: str, payload: ClienteUpdate, ctx: ContestoTenant = Depends(get_contesto)
) -> dict[str, Any]:
    return aggiorna_cliente(ctx.tenant_id, cliente_id, payload, utente_id=ctx.utente_id)


@app.get("/api/clienti/{cliente_id}/animali")
def api_animali_cliente(cliente_id: str, ctx: ContestoTenant = Depends(get_contesto)) -> list[dict]:
    return animali_del_cliente(ctx.tenant_id, cliente_id)



# ANIMALI

@app.get("/api/animali")
def api_animali(
    page: int = 1,
    page_size: int = 10,
    search: str = "",
    sort_by: str = "created_at",
    sort_order: str = "desc",
    ctx: ContestoTenant = Depends(get_contesto),
) -> dict[str, Any]:
    return lista_animali(ctx.tenant_id, page, page_size, search, sort_by, sort_order)


@app.post("/api/animali")
def api_crea_animale(payload: AnimaleIntake, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return _esito(crea_animale(ctx.tenant_id, payload, utente_id=ctx.utente_id))


@app.get("/api/animali/search")
def api_cerca_animali(
    q: str | None = None,
    cliente_id: str | None = None,
    limit: int = 20,
    initial: bool = False,
    ctx: ContestoTenant = Depends(get_contesto),
) -> list[dict]:
    return cerca_animali(ctx.tenant_id, q, cliente_id=cliente_id, limit=limit, initial=initial)


@app.get("/api/animali/stats")
def api_statistiche_animali(ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return statistiche_animali(ctx.tenant_id)


@app.get("/api/animali/species")
def api_specie(ctx: ContestoTenant = Depends(get_contesto)) -> list[dict]:
    return distribuzione_specie(ctx.tenant_id)


@app.get("/api/animali/recent")
def api_animali_recenti(limit: int = 10, ctx: ContestoTenant = Depends(get_contesto)) -> list[dict]:
    return animali_recenti(ctx.tenant_id, limit=limit)


@app.get("/api/animali/{animale_id}")
def api_get_animale(animale_id: str, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return get_animale(ctx.tenant_id, animale_id)


@app.patch("/api/animali/{animale_id}")
def api_aggiorna_animale(
    animale_id: str, payload: AnimaleUpdate, ctx: ContestoTenant = Depends(get_contesto)
) -> dict[str, Any]:
    return aggiorna_animale(ctx.tenant_id, animale_id, payload, utente_id=ctx.utente_id)



# TIPI VISITA / STAFF

@app.get("/api/tipi-visita")
def api_tipi_visita(ctx: ContestoTenant = Depends(get_contesto)) -> list[dict]:
    return lista_tipi_visita(ctx.tenant_id)


@app.post("/api/tipi-visita")
def api_crea_tipo_visita(payload: TipoVisitaIn, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    tv_id = crea_tipo_visita(ctx.tenant_id, payload.nome, payload.durata_minuti, payload.colore)
    return {"ok": True, "tipo_visita_id": tv_id}


@app.get("/api/staff/profili")
def api_profili_staff(ctx: ContestoTenant = Depends(get_contesto)) -> list[dict]:
    return lista_profili_staff(ctx.tenant_id)


@app.post("/api/staff/profili")
def api_crea_profilo_staff(payload: ProfiloStaffIn, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    pid = crea_profilo_staff(ctx, payload.utente_id, payload.tipo_staff, payload.colore)
    return {"ok": True, "profilo_staff_id": pid}


@app.get("/api/membri")
def api_membri(ctx: ContestoTenant = Depends(get_contesto)) -> list[dict]:
    return lista_membri(ctx.tenant_id)


@app.post("/api/membri/invita")
def api_invita_membro(payload: InvitoIn, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    membro_id = invita_membro(ctx, payload.email, payload.ruolo)
    return {"ok": True, "membro_id": membro_id}


@app.delete("/api/membri/{membro_id}")
def api_rimuovi_membro(membro_id: str, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    rimuovi_membro(ctx, membro_id)
    return {"ok": True}


@app.patch("/api/membri/{membro_id}/ruolo")
def api_cambia_ruolo(membro_id: str, payload: RuoloIn, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    cambia_ruolo(ctx, membro_id, payload.ruolo)
    return {"ok": True}



# APPUNTAMENTI / CALENDARIO

@app.get("/api/appuntamenti")
def api_appuntamenti(
    dal: datetime | None = None,
    al: datetime | None = None,
    stato: list[str] | None = Query(default=None),
    tipo: list[str] | None = Query(default=None),
    staff: list[str] | None = Query(default=None),
    ctx: ContestoTenant = Depends(get_contesto),
) -> list[dict]:
    return lista_appuntamenti(ctx.tenant_id, dal=dal, al=al, stati=stato, tipi=tipo, staff_ids=staff)


@app.post("/api/appuntamenti")
def api_crea_appuntamento(payload: AppuntamentoIn, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    app_id = crea_appuntamento(
        ctx.tenant_id,
        animale_id=payload.animale_id,
        tipo_visita_id=payload.tipo_visita_id,
        start=payload.start,
        end=payload.end,
        staff_ids=payload.staff_ids,
        stato=payload.stato,
        motivo=payload.motivo,
        note=payload.note,
        utente_id=ctx.utente_id,
    )
    return {"ok": True, "appuntamento_id": app_id}


@app.get("/api/appuntamenti/conflitti")
def api_conflitti(
    staff_id: str = Query(...),
    start: datetime = Query(...),
    end: datetime = Query(...),
    escludi: str | None = None,
    ctx: ContestoTenant = Depends(get_contesto),
) -> dict[str, Any]:
    conflitti = verifica_conflitti(ctx.tenant_id, staff_id, start, end, escludi)
    return {"disponibile": not conflitti, "conflitti": conflitti}


@app.get("/api/appuntamenti/agenda")
def api_agenda(
    staff_id: str = Query(...),
    giorno: date = Query(...),
    ctx: ContestoTenant = Depends(get_contesto),
) -> list[dict]:
    return agenda_staff(ctx.tenant_id, staff_id, giorno)


@app.get("/api/appuntamenti/stats")
def api_statistiche_appuntamenti(ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return statistiche_appuntamenti(ctx.tenant_id)


@app.get("/api/appuntamenti/{appuntamento_id}")
def api_get_appuntamento(appuntamento_id: str, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return get_appuntamento(ctx.tenant_id, appuntamento_id)


@app.patch("/api/appuntamenti/{appuntamento_id}")
def api_aggiorna_appuntamento(
    appuntamento_id: str, payload: AppuntamentoUpdateIn, ctx: ContestoTenant = Depends(get_contesto)
) -> dict[str, Any]:
    return aggiorna_appuntamento(
        ctx.tenant_id, appuntamento_id, **payload.model_dump(exclude_unset=True), utente_id=ctx.utente_id
    )


@app.post("/api/appuntamenti/{appuntamento_id}/sposta")
def api_sposta_appuntamento(
    appuntamento_id: str, payload: SpostamentoIn, ctx: ContestoTenant = Depends(get_contesto)
) -> dict[str, Any]:
    return sposta_appuntamento(ctx.tenant_id, appuntamento_id, payload.start, payload.end, ctx.utente_id)


@app.post("/api/appuntamenti/{appuntamento_id}/stato")
def api_cambia_stato(
    appuntamento_id: str, payload: StatoAppuntamentoIn, ctx: ContestoTenant = Depends(get_contesto)
) -> dict[str, Any]:
    return cambia_stato(ctx.tenant_id, appuntamento_id, payload.stato, ctx.utente_id)


@app.post("/api/appuntamenti/{appuntamento_id}/annulla")
def api_annulla_appuntamento(appuntamento_id: str, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return annulla_appuntamento(ctx.tenant_id, appuntamento_id, ctx.utente_id)


@app.delete("/api/appuntamenti/{appuntamento_id}")
def api_elimina_appuntamento(appuntamento_id: str, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    elimina_appuntamento(ctx.tenant_id, appuntamento_id, ctx.utente_id)
    return {"ok": True}



# ATTIVITÀ / CHANGE FEED

@app.get("/api/attivita")
def api_feed_attivita(
    record_id: str, tipo_record: TipoRecord, ctx: ContestoTenant = Depends(get_contesto)
) -> list[dict]:
    return feed_attivita(ctx.tenant_id, record_id, tipo_record)


@app.get("/api/attivita/riepilogo")
def api_riepilogo_attivita(
    record_id: str, tipo_record: TipoRecord, ctx: ContestoTenant = Depends(get_contesto)
) -> dict[str, Any]:
    return riepilogo_attivita(ctx.tenant_id, record_id, tipo_record)


@app.post("/api/attivita/commenti")
def api_commento(payload: CommentoIn, ctx: ContestoTenant = Depends(get_contesto)) -> dict[str, Any]:
    return aggiungi_commento(ctx.tenant_id, ctx.utente_id, payload.record_id, payload.tipo_record, payload.commento)


@app.get("/api/changes")
def api_change_feed(
    dopo_id: int = 0,
    dal: datetime | None = None,
    tipo_record: TipoRecord | None = None,
    limit: int = 100,
    ctx: ContestoTenant = Depends(get_contesto),
) -> dict[str, Any]:
    righe = change_feed(ctx.tenant_id, dal=dal, dopo_id=dopo_id, tipo_record=tipo_record, limit=limit)
    return {"changes": righe, "cursor": righe[-1]["id"] if righe else dopo_id}



# HEALTH / WEBHOOK (fuori dal middleware tenant)

@app.get("/api/health")
def health() -> dict[str, Any]:
    return {"status": "ok", "tenant_cache": tenant_cache.stats().as_dict()}


@app.post("/api/webhooks/auth/before-user-created")
async def before_user_created(request: Request) -> dict[str, Any]:
    """
    Hook chiamato dal provider di autenticazione prima di creare un utente.
    Authorization: "Bearer <secret>" oppure "<secret>".
    """
    auth = request.headers.get("authorization")
    if not auth:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No authorization header")

    secret = get_impostazioni().webhook_secret
    if not secret:
        logger.error("BEFORE_USER_CREATED_API_KEY non configurata")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook secret not configured")

    if auth not in (f"Bearer {secret}", secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authorization token")

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from None

    utente = body.get("user") if isinstance(body, dict) else None
    logger.info("Webhook before-user-created: %s", utente or body)
    return {
        "success": True,
        "message": "User creation approved",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
