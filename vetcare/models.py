from __future__ import annotations

import enum
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .auth_models import Utente
from .db import Base, TenantMixin, utc_now
from .tenant_models import MembroTenant, Tenant, new_uuid

__all__ = [
    "Animale",
    "Appuntamento",
    "AssegnazioneStaff",
    "Cliente",
    "CommentoAttivita",
    "ContattoEmergenza",
    "MembroTenant",
    "ProfiloStaff",
    "RegistroAttivita",
    "StatoAppuntamento",
    "Tenant",
    "TipoRecord",
    "TipoVisita",
    "Utente",
]


class StatoAppuntamento(enum.Enum):
    PROGRAMMATO = "PROGRAMMATO"
    CONFERMATO = "CONFERMATO"
    ANNULLATO = "ANNULLATO"
    COMPLETATO = "COMPLETATO"


class TipoRecord(enum.Enum):
    CLIENTE = "cliente"
    ANIMALE = "animale"
    APPUNTAMENTO = "appuntamento"


class Cliente(TenantMixin, Base):
    """Proprietario degli animali (cliente dello studio)."""

    __tablename__ = "clienti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    titolo: Mapped[str | None] = mapped_column(String(10), nullable=True)
    nome: Mapped[str] = mapped_column(String(50), nullable=False)
    cognome: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, index=True)
    telefono: Mapped[str] = mapped_column(String(30), nullable=False)
    indirizzo: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    studio_preferito: Mapped[str | None] = mapped_column(String(120), nullable=True)
    consenso_gdpr: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    consenso_marketing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    note_aggiuntive: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    contatti_emergenza: Mapped[list["ContattoEmergenza"]] = relationship(
        back_populates="cliente", cascade="all, delete-orphan"
    )
    animali: Mapped[list["Animale"]] = relationship(back_populates="cliente", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Cliente({self.nome} {self.cognome})"


class ContattoEmergenza(Base):
    __tablename__ = "contatti_emergenza"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cliente_id: Mapped[str] = mapped_column(ForeignKey("clienti.id"), nullable=False)
    nome: Mapped[str | None] = mapped_column(String(100), nullable=True)
    telefono: Mapped[str | None] = mapped_column(String(30), nullable=True)
    relazione: Mapped[str | None] = mapped_column(String(50), nullable=True)

    cliente: Mapped["Cliente"] = relationship(back_populates="contatti_emergenza")


class Animale(TenantMixin, Base):
    __tablename__ = "animali"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    cliente_id: Mapped[str] = mapped_column(ForeignKey("clienti.id"), nullable=False, index=True)

    nome: Mapped[str] = mapped_column(String(50), nullable=False)
    specie: Mapped[str] = mapped_column(String(30), nullable=False)
    razza: Mapped[str | None] = mapped_column(String(50), nullable=True)
    colore: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sesso: Mapped[str | None] = mapped_column(String(20), nullable=True)
    data_nascita: Mapped[date | None] = mapped_column(Date, nullable=True)
    peso_kg: Mapped[float | None] = mapped_column(Float, nullable=True)

    # liste di {name, notes, severity, date_diagnosed}
    allergie: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    condizioni_mediche: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    farmaci: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    microchip_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    assicurazione_fornitore: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assicurazione_polizza: Mapped[str | None] = mapped_column(String(100), nullable=True)
    note_comportamentali: Mapped[str | None] = mapped_column(Text, nullable=True)
    esigenze_alimentari: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    cliente: Mapped["Cliente"] = relationship(back_populates="animali")
    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="animale", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Animale({self.nome}, {self.specie})"


class TipoVisita(TenantMixin, Base):
    __tablename__ = "tipi_visita"
    __table_args__ = (
        UniqueConstraint("tenant_id", "nome", name="uq_tipo_visita_tenant_nome"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    colore: Mapped[str | None] = mapped_column(String(20), nullable=True)
    durata_minuti: Mapped[int] = mapped_column(Integer, nullable=False, default=30)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="tipo_visita")


class ProfiloStaff(TenantMixin, Base):
    """Profilo calendario di un membro dello staff (veterinario, infermiere, ...)."""

    __tablename__ = "profili_staff"
    __table_args__ = (
        UniqueConstraint("tenant_id", "utente_id", name="uq_profilo_staff_tenant_utente"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    utente_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False)
    tipo_staff: Mapped[str] = mapped_column(String(50), nullable=False, default="veterinario")
    colore: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    utente: Mapped["Utente"] = relationship()
    assegnazioni: Mapped[list["AssegnazioneStaff"]] = relationship(
        back_populates="profilo_staff", cascade="all, delete-orphan"
    )


class Appuntamento(TenantMixin, Base):
    __tablename__ = "appuntamenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    animale_id: Mapped[str] = mapped_column(ForeignKey("animali.id"), nullable=False, index=True)
    tipo_visita_id: Mapped[str] = mapped_column(ForeignKey("tipi_visita.id"), nullable=False)

    inizio: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    fine: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    stato: Mapped[StatoAppuntamento] = mapped_column(
        Enum(StatoAppuntamento), default=StatoAppuntamento.PROGRAMMATO, nullable=False
    )

    motivo: Mapped[str | None] = mapped_column(Text, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    animale: Mapped["Animale"] = relationship(back_populates="appuntamenti")
    tipo_visita: Mapped["TipoVisita"] = relationship(back_populates="appuntamenti")
    assegnazioni: Mapped[list["AssegnazioneStaff"]] = relationship(
        back_populates="appuntamento", cascade="all, delete-orphan"
    )


class AssegnazioneStaff(Base):
    __tablename__ = "assegnazioni_staff"
    __table_args__ = (
        UniqueConstraint("appuntamento_id", "profilo_staff_id", name="uq_assegnazione"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appuntamento_id: Mapped[str] = mapped_column(ForeignKey("appuntamenti.id"), nullable=False)
    profilo_staff_id: Mapped[str] = mapped_column(ForeignKey("profili_staff.id"), nullable=False)
    ruolo: Mapped[str] = mapped_column(String(30), nullable=False, default="primario")

    appuntamento: Mapped["Appuntamento"] = relationship(back_populates="assegnazioni")
    profilo_staff: Mapped["ProfiloStaff"] = relationship(back_populates="assegnazioni")


class RegistroAttivita(TenantMixin, Base):
    """Storico modifiche di un record (alimenta feed attività e change feed)."""

    __tablename__ = "registro_attivita"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    tipo_record: Mapped[TipoRecord] = mapped_column(Enum(TipoRecord), nullable=False)
    tipo_azione: Mapped[str] = mapped_column(String(30), nullable=False)
    descrizione: Mapped[str] = mapped_column(Text, nullable=False)
    modifiche: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    eseguita_da: Mapped[str | None] = mapped_column(ForeignKey("utenti.id"), nullable=True)

    creata_il: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False, index=True)

    autore: Mapped[Utente | None] = relationship()


class CommentoAttivita(TenantMixin, Base):
    __tablename__ = "commenti_attivita"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    record_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    tipo_record: Mapped[TipoRecord] = mapped_column(Enum(TipoRecord), nullable=False)
    commento: Mapped[str] = mapped_column(Text, nullable=False)
    autore_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False)

    creato_il: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    autore: Mapped["Utente"] = relationship()
