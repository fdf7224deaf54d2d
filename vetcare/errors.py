from __future__ import annotations


class ErroreDominio(Exception):
    """Errore applicativo con status HTTP associato (mappato in api_main)."""

    status_code = 400

    def __init__(self, messaggio: str) -> None:
        super().__init__(messaggio)
        self.messaggio = messaggio


class DatiNonValidi(ErroreDominio):
    status_code = 400


class NonAutenticato(ErroreDominio):
    status_code = 401


class AccessoNegato(ErroreDominio):
    status_code = 403


class UtenteNonConfigurato(AccessoNegato):
    """Utente senza tenant attivo associato."""


class NonTrovato(ErroreDominio):
    status_code = 404


class Conflitto(ErroreDominio):
    status_code = 409
