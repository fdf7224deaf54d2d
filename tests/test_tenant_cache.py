from __future__ import annotations

import asyncio

import pytest

from vetcare.services_staff import crea_tenant
from vetcare.tenant_cache import (
    TenantCache,
    cache_key,
    cached_get_tenant_by_id,
    cached_resolve_tenant_by_domain,
    cached_resolve_tenant_by_subdomain,
    sweep_periodico,
    tenant_cache,
)
from vetcare.tenant_resolver import TenantInfo


class Orologio:
    def __init__(self) -> None:
        self.t = 1000.0

    def __call__(self) -> float:
        return self.t


@pytest.fixture
def orologio() -> Orologio:
    return Orologio()


@pytest.fixture
def cache(orologio) -> TenantCache:
    return TenantCache(clock=orologio)


def _info(**kw) -> TenantInfo:
    base = {"id": "t1", "name": "Aurora", "slug": "aurora", "subdomain": "aurora"}
    base.update(kw)
    return TenantInfo(**base)


def test_cache_key():
    assert cache_key("subdomain", "aurora") == "tenant:subdomain:aurora"


def test_hit_e_scadenza(cache, orologio):
    cache.set("subdomain", "aurora", _info(), ttl=60)
    assert cache.get("subdomain", "aurora").tenant.id == "t1"

    orologio.t += 59.9
    assert cache.get("subdomain", "aurora") is not None

    orologio.t += 0.2
    assert cache.get("subdomain", "aurora") is None
    # la voce scaduta viene rimossa alla lettura
    assert cache.stats().total_entries == 0


def test_risultato_negativo_in_cache(cache):
    cache.set("domain", "sconosciuto.it", None, ttl=30)
    voce = cache.get("domain", "sconosciuto.it")
    assert voce is not None
    assert voce.tenant is None


def test_invalidate_all(cache):
    t = _info(custom_domain="clinica-aurora.it")
    cache.set("id", t.id, t, ttl=60)
    cache.set("subdomain", "aurora", t, ttl=60)
    cache.set("domain", "clinica-aurora.it", t, ttl=60)
    cache.set("subdomain", "borgo", _info(id="t2", subdomain="borgo"), ttl=60)

    cache.invalidate_all(t)

    assert cache.get("id", "t1") is None
    assert cache.get("subdomain", "aurora") is None
    assert cache.get("domain", "clinica-aurora.it") is None
    assert cache.get("subdomain", "borgo") is not None


def test_clear_expired_e_stats(cache, orologio):
    cache.set("subdomain", "a", _info(), ttl=10)
    cache.set("subdomain", "b", _info(), ttl=100)
    orologio.t += 50

    st = cache.stats()
    assert (st.total_entries, st.valid_entries, st.expired_entries) == (2, 1, 1)

    assert cache.clear_expired() == 1
    assert cache.stats().total_entries == 1


def test_hit_rate(cache):
    cache.get("subdomain", "x")
    cache.set("subdomain", "x", _info(), ttl=60)
    cache.get("subdomain", "x")
    cache.get("subdomain", "x")

    st = cache.stats()
    assert st.hits == 2
    assert st.misses == 1
    assert st.as_dict()["hit_rate"] == pytest.approx(0.6667, abs=1e-4)


def test_clear_azzera_contatori(cache):
    cache.get("subdomain", "x")
    cache.clear()
    assert cache.stats().misses == 0


def test_risoluzione_con_cache(studio, monkeypatch):
    t = cached_resolve_tenant_by_subdomain("aurora")
    assert t.id == studio

    # seconda lettura servita dalla cache
    monkeypatch.setattr("vetcare.tenant_cache.resolve_tenant_by_subdomain", lambda s: pytest.fail("DB interrogato"))
    assert cached_resolve_tenant_by_subdomain("aurora").id == studio
    assert cached_get_tenant_by_id(studio).subdomain == "aurora"


def test_nuovo_tenant_invalida_risultato_negativo():
    assert cached_resolve_tenant_by_subdomain("nuovo") is None
    assert cached_resolve_tenant_by_domain("nuovo-studio.it") is None

    tid = crea_tenant("Studio Nuovo", subdomain="nuovo", custom_domain="nuovo-studio.it")

    assert cached_resolve_tenant_by_subdomain("nuovo").id == tid
    assert cached_resolve_tenant_by_domain("nuovo-studio.it").id == tid
    assert tenant_cache.stats().total_entries == 2


def test_sweep_periodico(cache, orologio):
    cache.set("subdomain", "a", _info(), ttl=1)
    orologio.t += 5

    async def scenario():
        task = asyncio.create_task(sweep_periodico(intervallo=0.01, cache=cache))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert cache.stats().total_entries == 0
