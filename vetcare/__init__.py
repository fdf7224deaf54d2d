"""
Backend applicativo VetCare (gestionale multi-tenant per studi veterinari).

Struttura:
- config.py / logging_setup.py / errors.py : impostazioni, logging, errori di dominio
- db.py, *_models.py, models.py            : engine, sessioni e modelli ORM (filtro per tenant)
- tenant_subdomain / tenant_resolver       : dal nome host allo studio
- tenant_cache.py                          : cache TTL delle risoluzioni tenant
- middleware.py                            : contesto tenant per richiesta + rinnovo sessione
- auth_*.py, tenant_utente.py              : utenti, JWT, membership
- services_*.py                            : clienti, animali, calendario, staff, registro attività
- api_main.py                              : API REST (FastAPI)
- cli.py                                   : amministrazione e simulazione sistemi esterni via CLI
"""
