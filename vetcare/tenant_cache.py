"""
Cache in memoria con TTL per la risoluzione dei tenant.

Chiavi "tenant:{tipo}:{valore}" con tipo in {subdomain, domain, id}.
Anche i risultati negativi (None) vanno in cache, con TTL più breve.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Literal

from .config import get_impostazioni
from .tenant_resolver import (
    TenantInfo,
    get_tenant_by_id,
    resolve_tenant_by_domain,
    resolve_tenant_by_subdomain,
)

logger = logging.getLogger(__name__)

TipoChiave = Literal["subdomain", "domain", "id"]


@dataclass(frozen=True)
class VoceCache:
    tenant: TenantInfo | None
    timestamp: float
    ttl: float

    def valida(self, adesso: float) -> bool:
        return adesso - self.timestamp < self.ttl


@dataclass(frozen=True)
class StatisticheCache:
    total_entries: int
    valid_entries: int
    expired_entries: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        return self.hits / max(self.hits + self.misses, 1)

    def as_dict(self) -> dict:
        return {
            "total_entries": self.total_entries,
            "valid_entries": self.valid_entries,
            "expired_entries": self.expired_entries,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 4),
        }


def cache_key(tipo: TipoChiave, valore: str) -> str:
    return f"tenant:{tipo}:{valore}"


class TenantCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._voci: dict[str, VoceCache] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def get(self, tipo: TipoChiave, valore: str) -> VoceCache | None:
        """None = miss (assente o scaduta). Una voce valida può contenere tenant=None."""
        key = cache_key(tipo, valore)
        with self._lock:
            voce = self._voci.get(key)
            if voce is None:
                self._misses += 1
                return None
            if not voce.valida(self._clock()):
                del self._voci[key]
                self._misses += 1
                return None
            self._hits += 1
            return voce

    def set(self, tipo: TipoChiave, valore: str, tenant: TenantInfo | None, ttl: float | None = None) -> None:
        if ttl is None:
            ttl = get_impostazioni().tenant_cache_ttl_secondi
        with self._lock:
            self._voci[cache_key(tipo, valore)] = VoceCache(tenant=tenant, timestamp=self._clock(), ttl=ttl)

    def invalidate(self, tipo: TipoChiave, valore: str) -> None:
        with self._lock:
            self._voci.pop(cache_key(tipo, valore), None)

    def invalidate_all(self, tenant: TenantInfo) -> None:
        """Rimuove tutte le chiavi con cui il tenant può essere stato risolto."""
        self.invalidate("id", tenant.id)
        if tenant.subdomain:
            self.invalidate("subdomain", tenant.subdomain)
        if tenant.custom_domain:
            self.invalidate("domain", tenant.custom_domain)

    def clear_expired(self) -> int:
        adesso = self._clock()
        with self._lock:
            scadute = [k for k, v in self._voci.items() if not v.valida(adesso)]
            for k in scadute:
                del self._voci[k]
        return len(scadute)

    def clear(self) -> None:
        with self._lock:
            self._voci.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> StatisticheCache:
        adesso = self._clock()
        with self._lock:
            valide = sum(1 for v in self._voci.values() if v.valida(adesso))
            return StatisticheCache(
                total_entries=len(self._voci),
                valid_entries=valide,
                expired_entries=len(self._voci) - valide,
                hits=self._hits,
                misses=self._misses,
            )


tenant_cache = TenantCache()


def _ttl(tenant: TenantInfo | None) -> int:
    imp = get_impostazioni()
    return imp.tenant_cache_ttl_secondi if tenant else imp.tenant_cache_ttl_null_secondi


def cached_resolve_tenant_by_subdomain(subdomain: str) -> TenantInfo | None:
    voce = tenant_cache.get("subdomain", subdomain)
    if voce is not None:
        return voce.tenant

    tenant = resolve_tenant_by_subdomain(subdomain)
    tenant_cache.set("subdomain", subdomain, tenant, _ttl(tenant))
    return tenant


def cached_resolve_tenant_by_domain(domain: str) -> TenantInfo | None:
    voce = tenant_cache.get("domain", domain)
    if voce is not None:
        return voce.tenant

    tenant = resolve_tenant_by_domain(domain)
    tenant_cache.set("domain", domain, tenant, _ttl(tenant))
    return tenant


def cached_get_tenant_by_id(tenant_id: str) -> TenantInfo | None:
    voce = tenant_cache.get("id", tenant_id)
    if voce is not None:
        return voce.tenant

    tenant = get_tenant_by_id(tenant_id)
    tenant_cache.set("id", tenant_id, tenant)
    return tenant


async def sweep_periodico(intervallo: float | None = None, cache: TenantCache = tenant_cache) -> None:
    """Pulizia periodica delle voci scadute (task avviato allo startup dell'API)."""
    if intervallo is None:
        intervallo = get_impostazioni().tenant_cache_sweep_secondi
    while True:
        await asyncio.sleep(intervallo)
        rimosse = cache.clear_expired()
        if rimosse:
            logger.debug("Cache tenant: rimosse %d voci scadute", rimosse)
