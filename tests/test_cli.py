from __future__ import annotations

import pytest
from conftest import PASSWORD

from vetcare import cli
from vetcare.services_appuntamenti import get_appuntamento, lista_appuntamenti
from vetcare.services_clienti import lista_clienti
from vetcare.tenant_resolver import resolve_tenant_by_subdomain

CLIENTE = [
    "--nome", "Mario", "--cognome", "Rossi", "--email", "mario.rossi@esempio.it", "--telefono", "3331234567",
    "--via", "Via Roma 1", "--citta", "Milano", "--provincia", "MI", "--cap", "20100",
]


def test_add_tenant_e_tenants(capsys):
    cli.main(["add-tenant", "--name", "Clinica Sole", "--subdomain", "sole", "--custom-domain", "clinicasole.it"])
    tid = resolve_tenant_by_subdomain("sole").id
    assert tid in capsys.readouterr().out

    cli.main(["tenants"])
    assert f"{tid} | Clinica Sole | sole | clinicasole.it" in capsys.readouterr().out


def test_errore_dominio_esce_con_1(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["list", "clienti", "--tenant", "fantasma"])
    assert exc.value.code == 1
    assert "Studio non trovato: fantasma" in capsys.readouterr().out


def test_add_user_e_membri(studio, capsys):
    cli.main(["add-user", "--email", "vet@esempio.it", "--password", PASSWORD,
              "--tenant", "aurora", "--ruolo", "ADMIN"])
    cli.main(["list", "membri", "--tenant", studio])
    assert "vet@esempio.it | ADMIN | ATTIVO" in capsys.readouterr().out


def test_add_customer(studio, capsys):
    cli.main(["add-customer", "--tenant", "aurora", *CLIENTE, "--consenso-gdpr"])
    assert "Cliente registrato." in capsys.readouterr().out
    assert lista_clienti(studio)["total_count"] == 1

    # duplicato: esito negativo stampato, nessun errore
    cli.main(["add-customer", "--tenant", "aurora", *CLIENTE, "--consenso-gdpr"])
    assert "Esiste già un cliente" in capsys.readouterr().out


def test_add_customer_non_valido(studio, capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["add-customer", "--tenant", "aurora", *CLIENTE])
    assert exc.value.code == 2
    assert "consenso_gdpr" in capsys.readouterr().out


def test_book_cancel_feed(studio, animale, tipo_visita, profilo, domani_alle_10, capsys):
    cli.main([
        "book", "--tenant", "aurora", "--animale-id", animale, "--tipo-visita-id", tipo_visita,
        "--staff-id", profilo, "--start", domani_alle_10.isoformat(timespec="minutes"),
    ])
    app = lista_appuntamenti(studio)[0]
    assert app["id"] in capsys.readouterr().out
    # fine calcolata dalla durata del tipo visita (30 min)
    assert get_appuntamento(studio, app["id"])["fine"].endswith("10:30:00")

    cli.main(["cancel", "--tenant", "aurora", "--appuntamento-id", app["id"]])
    assert f"Appuntamento {app['id']}: ANNULLATO" in capsys.readouterr().out

    cli.main(["feed", "--tenant", "aurora", "--tipo", "appuntamento"])
    righe = capsys.readouterr().out.strip().splitlines()
    assert [r.split(" | ")[2] for r in righe] == ["created", "status_changed"]


@pytest.mark.parametrize("argomenti", [["--start", "domani alle 10"], ["--start", "2026-01-14T10:30", "--end", "14/01/2026"]])
def test_book_data_non_valida(studio, animale, tipo_visita, profilo, capsys, argomenti):
    with pytest.raises(SystemExit) as exc:
        cli.main([
            "book", "--tenant", "aurora", "--animale-id", animale, "--tipo-visita-id", tipo_visita,
            "--staff-id", profilo, *argomenti,
        ])
    assert exc.value.code == 2
    assert "Data non valida" in capsys.readouterr().out
    assert lista_appuntamenti(studio) == []


def test_cache_stats_api_non_raggiungibile(capsys):
    with pytest.raises(SystemExit) as exc:
        cli.main(["cache-stats", "--api", "http://127.0.0.1:9"])
    assert exc.value.code == 1
    assert "API non raggiungibile" in capsys.readouterr().out
