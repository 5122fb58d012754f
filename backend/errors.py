from __future__ import annotations


class ErroreDominio(ValueError):
    """Regola di dominio violata. Resta un ValueError come nel resto del backend."""


class EntitaNonTrovata(ErroreDominio):
    def __init__(self, entita: str, entita_id: object) -> None:
        super().__init__(f"{entita} non trovato: {entita_id}")
        self.entita = entita
        self.entita_id = entita_id


class OperazioneNonConsentita(ErroreDominio):
    pass


class PermessoNegato(ErroreDominio):
    pass
