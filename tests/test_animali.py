from __future__ import annotations

from datetime import date

import pytest
from conftest import dati_animale, dati_cliente

from vetcare.errors import DatiNonValidi, NonTrovato
from vetcare.schemas_animale import AnimaleUpdate
from vetcare.services_animali import (
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
from vetcare.services_attivita import change_feed
from vetcare.services_clienti import crea_cliente


def test_crea_animale(studio, cliente, animale):
    a = get_animale(studio, animale)
    assert a["nome"] == "Fido"
    assert a["eta"].startswith("3 years")
    assert a["proprietario"]["cognome"] == "Rossi"

    # registro: animale creato + animale aggiunto al cliente
    azioni = [(r["tipo_record"], r["tipo_azione"]) for r in change_feed(studio)]
    assert ("animale", "created") in azioni
    assert ("cliente", "animal_added") in azioni


def test_duplicato_stesso_proprietario(studio, cliente, animale):
    esito = crea_animale(studio, dati_animale(cliente, specie="Cat"))
    assert not esito.ok
    assert esito.animale_id == animale


def test_stesso_nome_altro_proprietario(studio, cliente, animale):
    altro = crea_cliente(studio, dati_cliente(nome="Paola", email="paola@esempio.it", telefono="3331112222"))
    assert crea_animale(studio, dati_animale(altro.cliente_id)).ok


def test_proprietario_di_altro_studio(altro_studio, cliente):
    esito = crea_animale(altro_studio, dati_animale(cliente))
    assert not esito.ok
    assert esito.messaggio == "Proprietario non valido."


def test_aggiorna_animale(studio, animale):
    out = aggiorna_animale(studio, animale, AnimaleUpdate(peso_kg=30.0, nome=None))
    assert out["peso_kg"] == 30.0
    assert out["nome"] == "Fido"


def test_aggiorna_animale_altro_studio(altro_studio, animale):
    with pytest.raises(NonTrovato):
        aggiorna_animale(altro_studio, animale, AnimaleUpdate(peso_kg=30.0))
    with pytest.raises(NonTrovato):
        get_animale(altro_studio, animale)


def test_lista_e_ordinamento(studio, cliente):
    crea_animale(studio, dati_animale(cliente, nome="Birba", specie="Cat", razza="Persian"))
    crea_animale(studio, dati_animale(cliente, nome="Argo", data_nascita=date(2024, 1, 1)))
    crea_animale(studio, dati_animale(cliente, nome="Cleo", specie="Rabbit", razza=None, data_nascita=None))

    res = lista_animali(studio, sort_by="nome", sort_order="asc")
    assert [a["nome"] for a in res["animali"]] == ["Argo", "Birba", "Cleo"]
    assert res["total_count"] == 3
    assert res["animali"][0]["proprietario"]["nome"] == "Mario"

    res = lista_animali(studio, search="pers")
    assert [a["nome"] for a in res["animali"]] == ["Birba"]

    # età crescente, senza data in fondo
    res = lista_animali(studio, sort_by="eta", sort_order="asc")
    assert res["animali"][-1]["nome"] == "Cleo"


def test_animali_del_cliente(studio, cliente, animale):
    assert [a["id"] for a in animali_del_cliente(studio, cliente)] == [animale]


def test_statistiche_e_specie(studio, cliente, animale):
    crea_animale(studio, dati_animale(cliente, nome="Birba", specie="Cat", data_nascita=None))
    crea_animale(studio, dati_animale(cliente, nome="Rex"))

    stats = statistiche_animali(studio)
    assert stats["total_animals"] == 3
    assert stats["total_species"] == 2
    assert stats["recent_animals"] == 3
    assert stats["average_age"] == 3.0

    assert distribuzione_specie(studio) == [{"specie": "Dog", "count": 2}, {"specie": "Cat", "count": 1}]
    assert len(animali_recenti(studio, limit=2)) == 2


def test_cerca_animali(studio, cliente, animale):
    with pytest.raises(DatiNonValidi):
        cerca_animali(studio)
    assert cerca_animali(studio, "F") == []
    assert [a["id"] for a in cerca_animali(studio, "labr")] == [animale]
    assert [a["id"] for a in cerca_animali(studio, cliente_id=cliente)] == [animale]
    assert cerca_animali(studio, initial=True)[0]["proprietario"]["id"] == cliente
