"""
Middleware HTTP:
- TenantMiddleware: risolve lo studio dall'hostname (sottodominio o dominio
  personalizzato) e lo espone in request.state.tenant + header x-tenant-*
- SessionRefreshMiddleware: rinnova i token JWT vicini alla scadenza
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from jose import JWTError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .auth_security import clean_token, decode_token, refresh_token, token_da_rinnovare
from .config import get_impostazioni
from .tenant_cache import cached_resolve_tenant_by_domain, cached_resolve_tenant_by_subdomain
from .tenant_resolver import TenantInfo
from .tenant_subdomain import get_subdomain, is_reserved_subdomain, strip_port

logger = logging.getLogger(__name__)

# percorsi mai legati a un tenant
PERCORSI_ESCLUSI = ("/docs", "/redoc", "/openapi.json", "/static", "/favicon", "/api/webhooks/", "/api/health")


@dataclass(frozen=True)
class TenantContext:
    id: str
    subdomain: str | None
    name: str
    custom_domain: bool = False


def _escluso(path: str) -> bool:
    if path.startswith(PERCORSI_ESCLUSI):
        return True
    # file statici (es. /logo.png)
    return "." in path.rsplit("/", 1)[-1]


def _attacca(request: Request, response: Response, ctx: TenantContext) -> Response:
    response.headers["x-tenant-id"] = ctx.id
    if ctx.subdomain:
        response.headers["x-tenant-subdomain"] = ctx.subdomain
    response.headers["x-tenant-name"] = ctx.name
    if ctx.custom_domain:
        response.headers["x-tenant-custom-domain"] = "true"
    return response


def _contesto(tenant: TenantInfo, custom_domain: bool) -> TenantContext:
    return TenantContext(id=tenant.id, subdomain=tenant.subdomain, name=tenant.name, custom_domain=custom_domain)


class TenantMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.tenant = None

        if _escluso(request.url.path):
            return await call_next(request)

        host = request.headers.get("host")
        if not host:
            return await call_next(request)

        ctx: TenantContext | None = None
        subdomain = get_subdomain(host)

        if subdomain:
            if is_reserved_subdomain(subdomain):
                return JSONResponse({"detail": "Reserved subdomain"}, status_code=404)

            tenant = await run_in_threadpool(cached_resolve_tenant_by_subdomain, subdomain)
            if tenant is None:
                logger.warning("Nessun tenant per il sottodominio %s", subdomain)
                return JSONResponse({"detail": "Tenant not found"}, status_code=404)
            ctx = _contesto(tenant, custom_domain=False)
        else:
            hostname = strip_port(host.lower())
            if hostname not in get_impostazioni().domini_piattaforma:
                tenant = await run_in_threadpool(cached_resolve_tenant_by_domain, hostname)
                if tenant is not None:
                    ctx = _contesto(tenant, custom_domain=True)

        if ctx is None:
            return await call_next(request)

        request.state.tenant = ctx
        response = await call_next(request)
        return _attacca(request, response, ctx)


class SessionRefreshMiddleware(BaseHTTPMiddleware):
    """Se il bearer token scade entro la soglia, il nuovo token va in x-access-token."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)

        auth = request.headers.get("authorization", "")
        if not auth.lower().startswith("bearer "):
            return response

        try:
            payload = decode_token(clean_token(auth[7:]))
        except JWTError:
            return response

        if token_da_rinnovare(payload):
            response.headers["x-access-token"] = refresh_token(payload)
        return response
