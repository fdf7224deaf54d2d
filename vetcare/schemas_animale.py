"""
Validazione dati di accettazione animale + helper di visualizzazione.
"""
from __future__ import annotations

import re
from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, field_validator

SPECIE = (
    "Dog",
    "Cat",
    "Rabbit",
    "Bird",
    "Fish",
    "Reptile",
    "Hamster",
    "Guinea Pig",
    "Horse",
    "Ferret",
    "Other",
)

Specie = Literal[
    "Dog", "Cat", "Rabbit", "Bird", "Fish", "Reptile", "Hamster", "Guinea Pig", "Horse", "Ferret", "Other"
]
Sesso = Literal["Male", "Female", "Male (Neutered)", "Female (Spayed)", "Unknown"]

_NOME_VALIDO = re.compile(r"^[a-zA-Z\s\-'.0-9]+$")

KG_PER_LBS = 2.20462

RAZZE: dict[str, list[str]] = {
    "Dog": ["Labrador", "Golden Retriever", "German Shepherd", "Bulldog", "Beagle", "Poodle", "Rottweiler",
            "Yorkshire Terrier", "Mixed Breed"],
    "Cat": ["Domestic Shorthair", "Domestic Longhair", "Persian", "Maine Coon", "Siamese", "Ragdoll",
            "British Shorthair", "Russian Blue", "Mixed Breed"],
    "Rabbit": ["Holland Lop", "Netherland Dwarf", "Lionhead", "Angora", "Rex", "Dutch", "Flemish Giant",
               "Mixed Breed"],
    "Bird": ["Parakeet", "Cockatiel", "Canary", "Finch", "Lovebird", "Conure", "Macaw", "Cockatoo"],
    "Horse": ["Thoroughbred", "Quarter Horse", "Arabian", "Paint", "Appaloosa", "Friesian", "Clydesdale",
              "Mixed Breed"],
    "Fish": ["Goldfish", "Betta", "Guppy", "Tetra", "Angelfish", "Cichlid", "Catfish", "Koi"],
    "Reptile": ["Ball Python", "Bearded Dragon", "Leopard Gecko", "Iguana", "Turtle", "Tortoise", "Chameleon",
                "Snake"],
    "Guinea Pig": ["American", "Peruvian", "Abyssinian", "Silkie", "Texel", "Skinny Pig", "Mixed Breed"],
    "Hamster": ["Syrian", "Dwarf", "Roborovski", "Chinese", "Winter White", "Campbell's"],
    "Ferret": ["Domestic Ferret", "Angora Ferret", "Sable", "Albino", "Silver", "Chocolate"],
}


class VoceMedica(BaseModel):
    """Allergia, condizione o farmaco."""

    name: str = Field(..., min_length=1)
    notes: str | None = None
    severity: Literal["Mild", "Moderate", "Severe"] | None = None
    date_diagnosed: str | None = None


def _nome_animale(v: str) -> str:
    v = v.strip()
    if not _NOME_VALIDO.match(v):
        raise ValueError("Il nome può contenere solo lettere, numeri, spazi, trattini e apostrofi")
    return v


def _non_futura(v: date | None) -> date | None:
    if v is not None and v > date.today():
        raise ValueError("La data di nascita non può essere nel futuro")
    return v


class AnimaleIntake(BaseModel):
    nome: str = Field(..., min_length=2, max_length=50)
    specie: Specie
    razza: str | None = Field(default=None, max_length=50)
    colore: str | None = Field(default=None, max_length=50)
    sesso: Sesso | None = None
    data_nascita: date | None = None
    peso_kg: float | None = Field(default=None, ge=0.1, le=1000)

    cliente_id: str = Field(..., min_length=1)

    allergie: list[VoceMedica] = []
    condizioni_mediche: list[VoceMedica] = []
    farmaci: list[VoceMedica] = []

    microchip_id: str | None = Field(default=None, max_length=50)
    assicurazione_fornitore: str | None = Field(default=None, max_length=100)
    assicurazione_polizza: str | None = Field(default=None, max_length=100)
    note_comportamentali: str | None = Field(default=None, max_length=1000)
    esigenze_alimentari: str | None = Field(default=None, max_length=1000)

    @field_validator("nome")
    @classmethod
    def _nome(cls, v: str) -> str:
        return _nome_animale(v)

    @field_validator("data_nascita")
    @classmethod
    def _nascita(cls, v: date | None) -> date | None:
        return _non_futura(v)


class AnimaleUpdate(BaseModel):
    nome: str | None = Field(default=None, min_length=2, max_length=50)
    specie: Specie | None = None
    razza: str | None = Field(default=None, max_length=50)
    colore: str | None = Field(default=None, max_length=50)
    sesso: Sesso | None = None
    data_nascita: date | None = None
    peso_kg: float | None = Field(default=None, ge=0.1, le=1000)
    microchip_id: str | None = Field(default=None, max_length=50)
    note_comportamentali: str | None = Field(default=None, max_length=1000)
    esigenze_alimentari: str | None = Field(default=None, max_length=1000)

    @field_validator("nome")
    @classmethod
    def _nome(cls, v: str | None) -> str | None:
        return _nome_animale(v) if v is not None else v

    @field_validator("data_nascita")
    @classmethod
    def _nascita(cls, v: date | None) -> date | None:
        return _non_futura(v)


def _plurale(n: int, parola: str) -> str:
    return f"{n} {parola}{'s' if n > 1 else ''}"


def calcola_eta(data_nascita: date | None, oggi: date | None = None) -> str:
    """Età leggibile: giorni sotto il mese, mesi sotto l'anno, poi anni e mesi."""
    if not data_nascita:
        return "Unknown"
    oggi = oggi or date.today()
    giorni = abs((oggi - data_nascita).days)

    if giorni < 30:
        return f"{giorni} days"
    if giorni < 365:
        return _plurale(giorni // 30, "month")

    anni = giorni // 365
    mesi = (giorni % 365) // 30
    if mesi == 0:
        return _plurale(anni, "year")
    return f"{_plurale(anni, 'year')}, {_plurale(mesi, 'month')}"


def convert_weight(peso: float, unita: Literal["kg", "lbs"]) -> float:
    """Conversione kg <-> lbs arrotondata a 2 decimali (unita = unità di destinazione)."""
    if unita == "lbs":
        return round(peso * KG_PER_LBS, 2)
    return round(peso / KG_PER_LBS, 2)


def format_weight(peso_kg: float | None, unita: Literal["kg", "lbs"] = "kg") -> str:
    if not peso_kg:
        return "Unknown"
    if unita == "lbs":
        return f"{convert_weight(peso_kg, 'lbs')} lbs"
    return f"{peso_kg:g} kg"


def validate_microchip_id(chip: str | None) -> bool:
    """Formati comuni: 9, 10 o 15 cifre (ISO). Vuoto = ammesso."""
    if not chip:
        return True
    return re.fullmatch(r"\d{9}|\d{10}|\d{15}", chip) is not None


def get_breed_suggestions(specie: str) -> list[str]:
    return list(RAZZE.get(specie, []))

