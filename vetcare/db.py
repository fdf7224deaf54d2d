from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator

from sqlalchemy import ForeignKey, String, create_engine, event
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    ORMExecuteState,
    Session,
    mapped_column,
    sessionmaker,
    with_loader_criteria,
)

from .config import get_impostazioni

DATABASE_URL = get_impostazioni().database_url

engine = create_engine(
    DATABASE_URL,
    echo=False,              # metti True se vuoi vedere le query
    future=True,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base ORM per tutti i modelli."""
    pass


def utc_now() -> datetime:
    """Timestamp UTC naive (le colonne DateTime non salvano il fuso)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_naive(dt: datetime) -> datetime:
    """Datetime con fuso convertito in UTC naive; i naive restano invariati."""
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


class TenantMixin:
    """Colonna tenant_id per le tabelle condivise (multi-tenancy a livello di riga)."""

    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenant.id"), nullable=False, index=True)


@event.listens_for(Session, "do_orm_execute")
def _filtro_tenant(state: ORMExecuteState) -> None:
    """
    Se la sessione è legata a un tenant, ogni SELECT ORM vede solo le righe
    di quel tenant (equivalente applicativo della row-level security).
    """
    tenant_id = state.session.info.get("tenant_id")
    if (
        tenant_id
        and state.is_select
        and not state.is_column_load
        and not state.is_relationship_load
    ):
        state.statement = state.statement.options(
            with_loader_criteria(TenantMixin, lambda cls: cls.tenant_id == tenant_id, include_aliases=True)
        )


@contextmanager
def db_session(tenant_id: str | None = None) -> Iterator[Session]:
    """
    Context manager per gestire correttamente la sessione:
    - commit se tutto ok
    - rollback su eccezioni
    - close sempre
    Con tenant_id le letture ORM sono ristrette a quel tenant.
    """
    session: Session = SessionLocal()
    if tenant_id:
        session.info["tenant_id"] = tenant_id
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Crea le tabelle se non esistono."""
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
