"""
Estrazione del sottodominio dall'hostname per il routing multi-tenant.

{subdomain}.ROOT_DOMAIN -> tenant; i sottodomini riservati non sono mai tenant.
"""
from __future__ import annotations

import re

from .config import get_impostazioni

RESERVED_SUBDOMAINS: tuple[str, ...] = (
    "www",
    "app",
    "api",
    "admin",
    "support",
    "help",
    "docs",
    "blog",
    "mail",
    "ftp",
    "staging",
    "dev",
    "test",
    "demo",
    "status",
    "cdn",
    "assets",
    "static",
    "media",
    "files",
)

_PROTOCOLLO = re.compile(r"^https?://")
_PORTA = re.compile(r":\d+$")
_SUBDOMAIN_VALIDO = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


def _root_domain(root_domain: str | None) -> str:
    root = root_domain if root_domain is not None else get_impostazioni().root_domain
    return _PROTOCOLLO.sub("", root).lower()


def strip_port(hostname: str) -> str:
    return _PORTA.sub("", hostname)


def get_subdomain(hostname: str, root_domain: str | None = None) -> str | None:
    host = _PROTOCOLLO.sub("", hostname.strip().lower())

    # sviluppo locale: rossi.localhost:8000
    if "localhost" in host:
        parts = host.split(".")
        if len(parts) > 1 and parts[0] != "localhost":
            return parts[0]
        return None

    root = _root_domain(root_domain)
    if not _PORTA.search(root):
        host = strip_port(host)

    if host == root or host == f"www.{root}":
        return None

    match = re.match(rf"^(.+)\.{re.escape(root)}$", host)
    if match and match.group(1) != "www":
        return match.group(1)

    return None


def has_subdomain(hostname: str, root_domain: str | None = None) -> bool:
    return get_subdomain(hostname, root_domain) is not None


def get_tenant_url(subdomain: str, path: str = "/") -> str:
    imp = get_impostazioni()
    protocol = "https" if imp.ambiente == "production" else "http"
    return f"{protocol}://{subdomain}.{_root_domain(imp.root_domain)}{path}"


def is_valid_subdomain(subdomain: str) -> bool:
    if not subdomain:
        return False
    return len(subdomain) <= 63 and _SUBDOMAIN_VALIDO.match(subdomain) is not None


def get_subdomain_from_request(url: str, host: str | None = None) -> str | None:
    if not host:
        return None
    return get_subdomain(host)


def is_reserved_subdomain(subdomain: str) -> bool:
    return subdomain in RESERVED_SUBDOMAINS
