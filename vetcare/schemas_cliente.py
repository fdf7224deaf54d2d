"""
Validazione dati di accettazione cliente (proprietario).
"""
from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

TITOLI = ("Mr.", "Mrs.", "Ms.", "Dr.", "Prof.", "Rev.")

_NOME_VALIDO = re.compile(r"^[a-zA-Z\s\-'.]+$")
_TELEFONO_VALIDO = re.compile(r"^[\d\s\-()+.]+$")

DOMINI_EMAIL_COMUNI = ("gmail.com", "yahoo.com", "outlook.com", "hotmail.com")


def _solo_cifre(valore: str) -> str:
    return re.sub(r"\D", "", valore)


def normalizza_telefono(v: str) -> str:
    """Formato libero in ingresso, salvato solo con le cifre."""
    if len(v) < 10:
        raise ValueError("Il numero di telefono deve avere almeno 10 cifre")
    if not _TELEFONO_VALIDO.match(v):
        raise ValueError("Formato numero di telefono non valido")
    cifre = _solo_cifre(v)
    if len(cifre) < 10:
        raise ValueError("Il numero di telefono deve avere almeno 10 cifre")
    return cifre


def _valida_nome(v: str) -> str:
    v = v.strip()
    if not _NOME_VALIDO.match(v):
        raise ValueError("Sono ammessi solo lettere, spazi, trattini e apostrofi")
    return v


class Indirizzo(BaseModel):
    via: str = Field(..., min_length=1)
    citta: str = Field(..., min_length=1)
    provincia: str = Field(..., min_length=2, max_length=10)
    cap: str = Field(..., min_length=5)
    paese: str = "US"


class ContattoEmergenzaIn(BaseModel):
    nome: str | None = Field(default=None, max_length=100)
    telefono: str | None = None
    relazione: str | None = Field(default=None, max_length=50)

    def vuoto(self) -> bool:
        return not (self.nome or self.telefono or self.relazione)


class ClienteIntake(BaseModel):
    titolo: Literal["Mr.", "Mrs.", "Ms.", "Dr.", "Prof.", "Rev."] | None = None
    nome: str = Field(..., min_length=2, max_length=50)
    cognome: str = Field(..., min_length=2, max_length=50)

    email: EmailStr
    telefono: str

    indirizzo: Indirizzo
    studio_preferito: str | None = None

    consenso_gdpr: bool
    note_aggiuntive: str | None = Field(default=None, max_length=500)
    consenso_marketing: bool = False

    contatto_emergenza: ContattoEmergenzaIn | None = None

    @field_validator("nome", "cognome")
    @classmethod
    def _nome(cls, v: str) -> str:
        return _valida_nome(v)

    @field_validator("email")
    @classmethod
    def _email_minuscola(cls, v: str) -> str:
        return v.lower()

    @field_validator("telefono")
    @classmethod
    def _telefono(cls, v: str) -> str:
        return normalizza_telefono(v)

    @field_validator("consenso_gdpr")
    @classmethod
    def _consenso(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("È necessario il consenso al trattamento dei dati")
        return v


class ClienteUpdate(BaseModel):
    """Modifica dati anagrafici di base (campi assenti = invariati)."""

    titolo: Literal["Mr.", "Mrs.", "Ms.", "Dr.", "Prof.", "Rev."] | None = None
    nome: str | None = Field(default=None, min_length=2, max_length=50)
    cognome: str | None = Field(default=None, min_length=2, max_length=50)
    email: EmailStr | None = None
    telefono: str | None = None
    indirizzo: Indirizzo | None = None
    note_aggiuntive: str | None = Field(default=None, max_length=500)

    @field_validator("nome", "cognome")
    @classmethod
    def _nome(cls, v: str | None) -> str | None:
        return _valida_nome(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def _email_minuscola(cls, v: str | None) -> str | None:
        return v.lower() if v else v

    @field_validator("telefono")
    @classmethod
    def _telefono(cls, v: str | None) -> str | None:
        return normalizza_telefono(v) if v is not None else v


def format_phone_number(telefono: str) -> str:
    """(555) 123-4567 per numeri a 10 cifre, altrimenti invariato."""
    m = re.match(r"^(\d{3})(\d{3})(\d{4})$", _solo_cifre(telefono))
    if m:
        return f"({m.group(1)}) {m.group(2)}-{m.group(3)}"
    return telefono


def get_email_suggestion(email: str) -> str | None:
    parti = email.split("@")
    if len(parti) != 2:
        return None
    utente, dominio = parti
    dominio = dominio.lower()
    for d in DOMINI_EMAIL_COMUNI:
        if dominio in d and d != dominio:
            return f"{utente}@{d}"
    return None
