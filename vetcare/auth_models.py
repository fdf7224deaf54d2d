from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base, utc_now
from .tenant_models import MembroTenant, new_uuid


class Utente(Base):
    """
    Utente applicativo per autenticazione.
    - email univoca (minuscola)
    - password_hash con bcrypt (passlib)
    - tenant_id: studio attivo dell'utente
    """
    __tablename__ = "utenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    email: Mapped[str] = mapped_column(String(254), unique=True, nullable=False)
    nome: Mapped[str | None] = mapped_column(String(120), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    tenant_id: Mapped[str | None] = mapped_column(ForeignKey("tenant.id"), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    membri: Mapped[list[MembroTenant]] = relationship(back_populates="utente", cascade="all, delete-orphan")
