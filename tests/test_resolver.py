from __future__ import annotations

from conftest import dati_cliente, nuovo_utente
from sqlalchemy import select

from vetcare.db import db_session
from vetcare.models import Cliente
from vetcare.services_clienti import crea_cliente
from vetcare.services_staff import crea_tenant, invita_membro
from vetcare.tenant_models import RuoloMembro
from vetcare.tenant_resolver import (
    TenantInfo,
    check_tenant_access,
    get_tenant_by_id,
    get_user_primary_tenant,
    resolve_tenant_by_domain,
    resolve_tenant_by_hostname,
    resolve_tenant_by_subdomain,
    validate_tenant,
)
from vetcare.tenant_utente import get_current_user_tenant


def test_resolve_by_subdomain(studio):
    t = resolve_tenant_by_subdomain("Aurora")
    assert isinstance(t, TenantInfo)
    assert t.id == studio
    assert t.primary_color == "#2563eb"
    assert resolve_tenant_by_subdomain("inesistente") is None


def test_resolve_by_domain_e_hostname(studio):
    tid = crea_tenant("Clinica Sole", subdomain="sole", custom_domain="www.clinicasole.it")

    assert resolve_tenant_by_domain("WWW.ClinicaSole.it").id == tid
    assert resolve_tenant_by_hostname("https://www.clinicasole.it:443").id == tid
    assert resolve_tenant_by_hostname("aurora.vetcare.test:8000").id == studio
    assert resolve_tenant_by_hostname("vetcare.test") is None
    assert resolve_tenant_by_hostname("sconosciuto.it") is None


def test_get_tenant_by_id_e_validate(studio):
    assert get_tenant_by_id(studio).subdomain == "aurora"
    assert get_tenant_by_id("inesistente") is None
    assert validate_tenant(studio)
    assert not validate_tenant("inesistente")


def test_tenant_info_confronto_ignora_settings(studio):
    a = get_tenant_by_id(studio)
    b = TenantInfo(**{**a.__dict__, "settings": {"x": 1}})
    assert a == b
    assert hash(a) == hash(b)


def test_check_tenant_access(studio, altro_studio, titolare):
    assert check_tenant_access(titolare.id, studio)
    assert not check_tenant_access(titolare.id, altro_studio)
    assert not check_tenant_access("inesistente", studio)


def test_get_user_primary_tenant(studio, altro_studio, membro):
    capo = nuovo_utente("capo@esempio.it", altro_studio, RuoloMembro.TITOLARE)
    invita_membro(get_current_user_tenant(capo), membro.email)

    # la membership più vecchia
    assert get_user_primary_tenant(membro.id).id == studio
    assert get_user_primary_tenant("inesistente") is None


def test_sessione_tenant_filtra_le_righe(studio, altro_studio, cliente):
    crea_cliente(altro_studio, dati_cliente(nome="Luca", email="luca@esempio.it", telefono="3335556666"))

    with db_session(studio) as s:
        assert [c.id for c in s.scalars(select(Cliente)).all()] == [cliente]
    with db_session(altro_studio) as s:
        assert [c.nome for c in s.scalars(select(Cliente)).all()] == ["Luca"]
    # senza tenant: nessun filtro (uso amministrativo)
    with db_session() as s:
        assert len(s.scalars(select(Cliente)).all()) == 2
