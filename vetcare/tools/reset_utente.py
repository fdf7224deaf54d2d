from __future__ import annotations

import sys

from sqlalchemy import delete, select, update

from vetcare.auth_models import Utente
from vetcare.db import db_session
from vetcare.models import ProfiloStaff
from vetcare.tenant_models import MembroTenant


def main() -> None:
    if len(sys.argv) < 2:
        print("Uso: python -m vetcare.tools.reset_utente <email>")
        raise SystemExit(2)

    email = sys.argv[1].strip().lower()
    if not email:
        print("Email non valida.")
        raise SystemExit(2)

    with db_session() as s:
        uid = s.execute(select(Utente.id).where(Utente.email == email)).scalar_one_or_none()
        if uid is None:
            print(f"Nessun utente '{email}'.")
            return
        # i profili calendario con appuntamenti assegnati restano: l'utente viene solo disattivato
        if s.execute(select(ProfiloStaff.id).where(ProfiloStaff.utente_id == uid)).first():
            s.execute(delete(MembroTenant).where(MembroTenant.utente_id == uid))
            s.execute(update(Utente).where(Utente.id == uid).values(tenant_id=None))
            print(f"OK: utente '{email}' rimosso da tutti gli studi (ha un profilo staff).")
            return
        s.execute(delete(MembroTenant).where(MembroTenant.utente_id == uid))
        s.execute(delete(Utente).where(Utente.id == uid))

    print(f"OK: utente '{email}' cancellato.")


if __name__ == "__main__":
    main()
