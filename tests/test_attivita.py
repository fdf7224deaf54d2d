from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from conftest import dati_cliente

from vetcare.db import utc_now
from vetcare.errors import DatiNonValidi, NonTrovato
from vetcare.schemas_cliente import ClienteUpdate
from vetcare.services_attivita import (
    aggiungi_commento,
    change_feed,
    differenze,
    feed_attivita,
    formatta_data_relativa,
    riepilogo_attivita,
)
from vetcare.services_clienti import aggiorna_cliente, crea_cliente

ADESSO = datetime(2026, 10, 19, 12, 0)


@pytest.mark.parametrize(
    "fa, atteso",
    [
        (timedelta(seconds=30), "now"),
        (timedelta(minutes=5), "5m ago"),
        (timedelta(hours=3), "3h ago"),
        (timedelta(days=2), "2d ago"),
        (timedelta(days=15), "2w ago"),
        (timedelta(days=40), "09/09/2026"),
    ],
)
def test_formatta_data_relativa(fa, atteso):
    assert formatta_data_relativa(ADESSO - fa, ADESSO) == atteso


def test_differenze():
    assert differenze({"a": 1, "b": "x"}, {"a": 1, "b": "y"}) == {"b": {"da": "x", "a": "y"}}
    assert differenze({"d": None}, {"d": datetime(2026, 1, 1)}) == {"d": {"da": None, "a": "2026-01-01T00:00:00"}}


def test_feed_con_commenti(studio, titolare, cliente):
    aggiorna_cliente(studio, cliente, ClienteUpdate(nome="Marco"), utente_id=titolare.id)
    commento = aggiungi_commento(studio, titolare.id, cliente, "cliente", "  Preferisce appuntamenti al mattino  ")
    assert commento["comment"] == "Preferisce appuntamenti al mattino"
    assert commento["person"] == "Giulia Ferri"

    feed = feed_attivita(studio, cliente, "cliente")
    assert [v["type"] for v in feed] == ["comment", "activity", "activity"]
    assert feed[1]["person"] == "Giulia Ferri"
    assert feed[2]["person"] == "System"
    assert feed[2]["date"] == "now"

    riepilogo = riepilogo_attivita(studio, cliente, "cliente")
    assert riepilogo["totale_attivita"] == 2
    assert riepilogo["totale_commenti"] == 1
    assert riepilogo["ultima"]["type"] == "comment"


def test_commento_non_valido(studio, altro_studio, titolare, cliente):
    with pytest.raises(DatiNonValidi):
        aggiungi_commento(studio, titolare.id, cliente, "cliente", "   ")
    with pytest.raises(DatiNonValidi):
        aggiungi_commento(studio, titolare.id, cliente, "fattura", "ok")
    with pytest.raises(NonTrovato):
        aggiungi_commento(altro_studio, titolare.id, cliente, "cliente", "ok")


def test_feed_record_senza_attivita(studio):
    assert feed_attivita(studio, "inesistente", "animale") == []
    assert riepilogo_attivita(studio, "inesistente", "animale")["ultima"] is None


def test_change_feed_cursore(studio, altro_studio, cliente):
    primo = change_feed(studio)
    assert [r["tipo_azione"] for r in primo] == ["created"]
    cursore = primo[-1]["id"]

    assert change_feed(studio, dopo_id=cursore) == []
    crea_cliente(studio, dati_cliente(nome="Paola", email="paola@esempio.it", telefono="3331112222"))
    crea_cliente(altro_studio, dati_cliente())

    nuovi = change_feed(studio, dopo_id=cursore)
    assert len(nuovi) == 1
    assert nuovi[0]["descrizione"] == "Cliente Paola Rossi registrato"
    assert nuovi[0]["id"] > cursore

    assert change_feed(studio, tipo_record="animale") == []
    assert len(change_feed(studio, limit=1)) == 1
    assert change_feed(studio, dal=utc_now() + timedelta(hours=1)) == []


def test_change_feed_dal_con_fuso(studio, cliente):
    new_york = timezone(timedelta(hours=-5))
    dopo = (utc_now() + timedelta(minutes=30)).replace(tzinfo=timezone.utc).astimezone(new_york)
    assert change_feed(studio, dal=dopo) == []

    prima = (utc_now() - timedelta(minutes=30)).replace(tzinfo=timezone.utc).astimezone(new_york)
    assert [r["tipo_azione"] for r in change_feed(studio, dal=prima)] == ["created"]
