from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base, utc_now


def new_uuid() -> str:
    return str(uuid.uuid4())


class RuoloMembro(enum.Enum):
    TITOLARE = "TITOLARE"
    ADMIN = "ADMIN"
    MEMBRO = "MEMBRO"


class StatoMembro(enum.Enum):
    ATTIVO = "ATTIVO"
    INVITATO = "INVITATO"
    SOSPESO = "SOSPESO"


class Tenant(Base):
    """Studio veterinario (account isolato tramite tenant_id sulle tabelle condivise)."""

    __tablename__ = "tenant"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    slug: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    logo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    subdomain: Mapped[str | None] = mapped_column(String(63), nullable=True, unique=True)
    custom_domain: Mapped[str | None] = mapped_column(String(253), nullable=True, unique=True)
    primary_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    membri: Mapped[list["MembroTenant"]] = relationship(back_populates="tenant", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"Tenant({self.name}, {self.subdomain or self.custom_domain or '-'})"


class MembroTenant(Base):
    __tablename__ = "membri_tenant"
    __table_args__ = (
        UniqueConstraint("utente_id", "tenant_id", name="uq_membro_utente_tenant"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    utente_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False, index=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenant.id"), nullable=False, index=True)

    ruolo: Mapped[RuoloMembro] = mapped_column(Enum(RuoloMembro), default=RuoloMembro.MEMBRO, nullable=False)
    stato: Mapped[StatoMembro] = mapped_column(Enum(StatoMembro), default=StatoMembro.ATTIVO, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    tenant: Mapped["Tenant"] = relationship(back_populates="membri")
    utente: Mapped["Utente"] = relationship(back_populates="membri")  # noqa: F821


# registra il mapper Utente referenziato da MembroTenant.utente
from . import auth_models  # noqa: E402,F401
