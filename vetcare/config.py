from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

load_dotenv()

# DB SQLite su file nella root del progetto (accanto a streamlit_app.py)
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "vetcare.sqlite"

class Impostazioni(BaseSettings):
    """
    Configurazione applicativa letta dalle variabili d'ambiente (.env incluso).
    Valori non validi fanno fallire l'avvio con ValidationError.
    """

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    database_url: str = Field(default=f"sqlite:///{DEFAULT_DB_PATH}", validation_alias="DATABASE_URL")
    ambiente: Literal["development", "production", "test"] = Field(default="development", validation_alias="APP_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # In produzione: mettila in variabile d'ambiente
    jwt_secret: str = Field(default="CHANGE_ME_DEV_SECRET", validation_alias="JWT_SECRET")
    jwt_expire_minutes: int = Field(default=60, gt=0, validation_alias="JWT_EXPIRE_MINUTES")
    jwt_refresh_soglia_minuti: int = Field(default=15, ge=0, validation_alias="JWT_REFRESH_MINUTES")

    root_domain: str = Field(default="localhost:8000", validation_alias="ROOT_DOMAIN")
    # CSV: "vetcare.it,localhost"
    domini_piattaforma: Annotated[list[str], NoDecode] = Field(
        default=["localhost", "127.0.0.1"], validation_alias="PLATFORM_DOMAINS"
    )
    default_tenant_id: str | None = Field(default=None, validation_alias="DEFAULT_TENANT_ID")
    webhook_secret: str | None = Field(default=None, validation_alias="BEFORE_USER_CREATED_API_KEY")

    tenant_cache_ttl_secondi: int = Field(default=30 * 60, gt=0, validation_alias="TENANT_CACHE_TTL")
    tenant_cache_ttl_null_secondi: int = Field(default=5 * 60, gt=0, validation_alias="TENANT_CACHE_NULL_TTL")
    tenant_cache_sweep_secondi: int = Field(default=10 * 60, gt=0, validation_alias="TENANT_CACHE_SWEEP")

    seed_demo: bool = Field(default=True, validation_alias="SEED_DEMO")

    @field_validator("root_domain")
    @classmethod
    def _senza_protocollo(cls, v: str) -> str:
        return v.replace("https://", "").replace("http://", "").strip().lower()

    @field_validator("domini_piattaforma", mode="before")
    @classmethod
    def _lista_csv(cls, v):
        if isinstance(v, str):
            return [d.strip().lower() for d in v.split(",") if d.strip()]
        return v

    @field_validator("default_tenant_id", "webhook_secret", mode="before")
    @classmethod
    def _vuoto_a_none(cls, v):
        return v or None


@lru_cache
def get_impostazioni() -> Impostazioni:
    return Impostazioni()
