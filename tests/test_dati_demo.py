from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func, select

from vetcare import genera_dati_demo
from vetcare.db import db_session
from vetcare.models import Animale, Appuntamento, Cliente, StatoAppuntamento
from vetcare.seed import seed_base
from vetcare.services_appuntamenti import verifica_conflitti
from vetcare.services_staff import lista_profili_staff
from vetcare.tenant_resolver import resolve_tenant_by_subdomain


def _conta(modello, tenant_id: str) -> int:
    with db_session() as s:
        return s.scalar(select(func.count()).select_from(modello).where(modello.tenant_id == tenant_id))


def test_seed_base_idempotente():
    seed_base()
    seed_base()
    aurora = resolve_tenant_by_subdomain("aurora")
    assert aurora.primary_color == "#2563eb"
    # titolare e vet hanno un profilo calendario, la reception no
    assert len(lista_profili_staff(aurora.id)) == 2


def test_make_slots_for_day():
    slots = genera_dati_demo._make_slots_for_day(date(2026, 1, 14), "09:00", "10:00")
    assert slots[0] == datetime(2026, 1, 14, 9, 0)
    assert slots[-1] == datetime(2026, 1, 14, 9, 45)
    assert len(slots) == 4


def test_main_popola_e_resetta(monkeypatch, capsys):
    monkeypatch.setattr(genera_dati_demo, "CLIENTI_COUNT", 5)
    monkeypatch.setattr(genera_dati_demo, "GIORNI_PASSATI", 7)
    monkeypatch.setattr(genera_dati_demo, "GIORNI_FUTURI", 3)

    genera_dati_demo.main(["--subdomain", "aurora"])
    assert "popolato" in capsys.readouterr().out
    tid = resolve_tenant_by_subdomain("aurora").id
    assert _conta(Cliente, tid) == 5
    n_app = _conta(Appuntamento, tid)
    assert n_app > 0

    # passato: completato o annullato; nessuna sovrapposizione per membro dello staff
    oggi = datetime.combine(date.today(), datetime.min.time())
    with db_session() as s:
        apps = s.scalars(select(Appuntamento).where(Appuntamento.tenant_id == tid)).all()
        for a in apps:
            if a.inizio < oggi:
                assert a.stato in (StatoAppuntamento.COMPLETATO, StatoAppuntamento.ANNULLATO)
            staff_id = a.assegnazioni[0].profilo_staff_id
            assert verifica_conflitti(tid, staff_id, a.inizio, a.fine, a.id) == []

    # di nuovo con reset: i dati precedenti vengono sostituiti
    genera_dati_demo.main(["--subdomain", "aurora"])
    assert _conta(Cliente, tid) == 5

    genera_dati_demo.main(["--subdomain", "aurora", "--no-reset"])
    assert _conta(Cliente, tid) == 10
    assert _conta(Animale, tid) >= 10
