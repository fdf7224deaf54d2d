from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, EmailStr, Field

from .models import TipoRecord


# Schemi Auth

class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    nome: str | None = None
    tenant_id: str | None = None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    email: str
    nome: str | None
    is_active: bool
    tenant_id: str | None
    ruolo: str | None = None


class SwitchTenantIn(BaseModel):
    tenant_id: str


# Schemi Tenant / Staff

class TenantUpdateIn(BaseModel):
    name: str | None = None
    logo: str | None = None
    primary_color: str | None = None
    custom_domain: str | None = None
    settings: dict[str, Any] | None = None


class InvitoIn(BaseModel):
    email: EmailStr
    ruolo: Literal["ADMIN", "MEMBRO"] = "MEMBRO"


class RuoloIn(BaseModel):
    ruolo: Literal["ADMIN", "MEMBRO"]


class ProfiloStaffIn(BaseModel):
    utente_id: str
    tipo_staff: str = Field(default="veterinario", min_length=1, max_length=50)
    colore: str | None = None


class TipoVisitaIn(BaseModel):
    nome: str = Field(..., min_length=1, max_length=120)
    durata_minuti: int = Field(default=30, gt=0)
    colore: str | None = None


# Schemi Appuntamenti

StatoIn = Literal["PROGRAMMATO", "CONFERMATO", "ANNULLATO", "COMPLETATO"]


class AppuntamentoIn(BaseModel):
    animale_id: str
    tipo_visita_id: str
    start: datetime
    end: datetime
    staff_ids: list[str] = Field(..., min_length=1)
    stato: StatoIn = "PROGRAMMATO"
    motivo: str | None = None
    note: str | None = None


class AppuntamentoUpdateIn(BaseModel):
    animale_id: str | None = None
    tipo_visita_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    staff_ids: list[str] | None = None
    stato: StatoIn | None = None
    motivo: str | None = None
    note: str | None = None


class SpostamentoIn(BaseModel):
    start: datetime
    end: datetime


class StatoAppuntamentoIn(BaseModel):
    stato: StatoIn


# Schemi Attività

class CommentoIn(BaseModel):
    record_id: str
    tipo_record: TipoRecord
    commento: str = Field(..., min_length=1)
