"""
Numerazione dentale FDI (sistema internazionale a due cifre).

- prima cifra: quadrante (1-4 permanenti, 5-8 decidui)
- seconda cifra: posizione dal centro (1-8 permanenti, 1-5 decidui)

La selezione dei denti viene salvata come stringa "11, 12, 21".
"""
from __future__ import annotations

from .models import AssociazioneDenti

DENTI_ADULTO: tuple[str, ...] = tuple(
    f"{q}{n}" for q in (1, 2, 3, 4) for n in range(1, 9)
)
DENTI_BAMBINO: tuple[str, ...] = tuple(
    f"{q}{n}" for q in (5, 6, 7, 8) for n in range(1, 6)
)
DENTI_VALIDI = frozenset(DENTI_ADULTO + DENTI_BAMBINO)

SEPARATORE = ", "


def parse_denti(testo: str | None) -> list[str]:
    """Separa su virgola, rimuove vuoti e duplicati mantenendo l'ordine."""
    if not testo:
        return []
    out: list[str] = []
    for parte in testo.split(","):
        parte = parte.strip()
        if parte and parte not in out:
            out.append(parte)
    return out


def formatta_denti(denti: list[str]) -> str:
    return SEPARATORE.join(denti)


def valida_denti(testo: str | None, associazione: AssociazioneDenti) -> str:
    """
    Controlla la selezione contro il tipo di sotto-trattamento
    e ritorna la stringa normalizzata.
    """
    denti = parse_denti(testo)

    invalidi = [d for d in denti if d not in DENTI_VALIDI]
    if invalidi:
        raise ValueError(f"Numero dente non valido (FDI): {', '.join(invalidi)}")

    if associazione == AssociazioneDenti.NON_CORRELATO:
        if denti:
            raise ValueError("Questo trattamento non è associato a denti specifici.")
    elif associazione == AssociazioneDenti.DENTE_SINGOLO:
        if len(denti) != 1:
            raise ValueError("Selezionare esattamente un dente.")
    elif not denti:
        raise ValueError("Selezionare almeno un dente.")

    return formatta_denti(denti)


def alterna_dente(testo: str | None, dente: str, associazione: AssociazioneDenti) -> str:
    """Click sullo schema dentale: singolo sostituisce, multiplo aggiunge/toglie."""
    if dente not in DENTI_VALIDI:
        raise ValueError(f"Numero dente non valido (FDI): {dente}")
    if associazione == AssociazioneDenti.NON_CORRELATO:
        raise ValueError("Questo trattamento non è associato a denti specifici.")
    if associazione == AssociazioneDenti.DENTE_SINGOLO:
        return dente

    denti = parse_denti(testo)
    if dente in denti:
        denti.remove(dente)
    else:
        denti.append(dente)
    return formatta_denti(denti)


def stessi_denti(a: str | None, b: str | None) -> bool:
    return set(parse_denti(a)) == set(parse_denti(b))
