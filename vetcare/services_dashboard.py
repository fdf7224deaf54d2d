from __future__ import annotations

from .services_animali import distribuzione_specie, statistiche_animali
from .services_appuntamenti import statistiche_appuntamenti
from .services_clienti import statistiche_clienti


def dashboard(tenant_id: str) -> dict:
    """Statistiche per la home dello studio in un'unica chiamata."""
    return {
        "clienti": statistiche_clienti(tenant_id),
        "animali": statistiche_animali(tenant_id),
        "appuntamenti": statistiche_appuntamenti(tenant_id),
        "specie": distribuzione_specie(tenant_id),
    }
