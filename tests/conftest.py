from __future__ import annotations

import os
import tempfile
from pathlib import Path

# configurazione prima di importare vetcare (engine e impostazioni sono creati all'import)
_DB_DIR = Path(tempfile.mkdtemp(prefix="vetcare-test-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.sqlite'}"
os.environ["APP_ENV"] = "test"
os.environ["SEED_DEMO"] = "0"
os.environ["ROOT_DOMAIN"] = "vetcare.test"
os.environ["PLATFORM_DOMAINS"] = "vetcare.test,localhost,testserver"
os.environ["JWT_SECRET"] = "segreto-di-test"
os.environ["BEFORE_USER_CREATED_API_KEY"] = "webhook-segreto"
os.environ.pop("DEFAULT_TENANT_ID", None)

from datetime import date, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from vetcare import models  # noqa: E402,F401
from vetcare.api_main import app  # noqa: E402
from vetcare.auth_service import emetti_token, get_utente_by_id, registra_utente  # noqa: E402
from vetcare.config import get_impostazioni  # noqa: E402
from vetcare.db import Base, engine  # noqa: E402
from vetcare.schemas_animale import AnimaleIntake  # noqa: E402
from vetcare.schemas_cliente import ClienteIntake  # noqa: E402
from vetcare.services_animali import crea_animale  # noqa: E402
from vetcare.services_appuntamenti import crea_tipo_visita  # noqa: E402
from vetcare.services_clienti import crea_cliente  # noqa: E402
from vetcare.services_staff import crea_profilo_staff, crea_tenant  # noqa: E402
from vetcare.tenant_cache import tenant_cache  # noqa: E402
from vetcare.tenant_models import RuoloMembro  # noqa: E402
from vetcare.tenant_utente import get_current_user_tenant  # noqa: E402

PASSWORD = "segreta123"


@pytest.fixture(autouse=True)
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    tenant_cache.clear()
    yield
    tenant_cache.clear()
    get_impostazioni.cache_clear()


@pytest.fixture
def client() -> TestClient:
    # senza "with": lo startup (seed, sweep) non parte
    return TestClient(app)


@pytest.fixture
def studio() -> str:
    return crea_tenant("Clinica Veterinaria Aurora", subdomain="aurora", primary_color="#2563eb")


@pytest.fixture
def altro_studio() -> str:
    return crea_tenant("Ambulatorio Borgo Antico", subdomain="borgo")


def nuovo_utente(email: str, tenant_id: str, ruolo: RuoloMembro = RuoloMembro.MEMBRO, nome: str | None = None):
    uid = registra_utente(email, PASSWORD, nome=nome, tenant_id=tenant_id, ruolo=ruolo)
    return get_utente_by_id(uid)


@pytest.fixture
def titolare(studio):
    return nuovo_utente("titolare@esempio.it", studio, RuoloMembro.TITOLARE, nome="Giulia Ferri")


@pytest.fixture
def ctx_titolare(titolare):
    return get_current_user_tenant(titolare)


@pytest.fixture
def membro(studio):
    return nuovo_utente("reception@esempio.it", studio, RuoloMembro.MEMBRO, nome="Sara Conti")


@pytest.fixture
def ctx_membro(membro):
    return get_current_user_tenant(membro)


def auth(utente, host: str | None = "aurora.vetcare.test") -> dict[str, str]:
    headers = {"Authorization": f"Bearer {emetti_token(utente)}"}
    if host:
        headers["Host"] = host
    return headers


def dati_cliente(**kw) -> ClienteIntake:
    base = {
        "nome": "Mario",
        "cognome": "Rossi",
        "email": "mario.rossi@esempio.it",
        "telefono": "(333) 123-4567",
        "indirizzo": {"via": "Via Roma 1", "citta": "Milano", "provincia": "MI", "cap": "20100", "paese": "IT"},
        "consenso_gdpr": True,
    }
    base.update(kw)
    return ClienteIntake(**base)


@pytest.fixture
def cliente(studio) -> str:
    esito = crea_cliente(studio, dati_cliente())
    assert esito.ok
    return esito.cliente_id


def dati_animale(cliente_id: str, **kw) -> AnimaleIntake:
    base = {
        "nome": "Fido",
        "specie": "Dog",
        "razza": "Labrador",
        "sesso": "Male",
        "data_nascita": date.today() - timedelta(days=3 * 365 + 10),
        "peso_kg": 28.5,
        "cliente_id": cliente_id,
    }
    base.update(kw)
    return AnimaleIntake(**base)


@pytest.fixture
def animale(studio, cliente) -> str:
    esito = crea_animale(studio, dati_animale(cliente))
    assert esito.ok
    return esito.animale_id


@pytest.fixture
def tipo_visita(studio) -> str:
    return crea_tipo_visita(studio, "Visita Generale", 30, "#3b82f6")


@pytest.fixture
def profilo(ctx_titolare, titolare) -> str:
    return crea_profilo_staff(ctx_titolare, titolare.id, "veterinario")


@pytest.fixture
def domani_alle_10() -> datetime:
    return datetime.combine(date.today() + timedelta(days=1), datetime.min.time()).replace(hour=10)
