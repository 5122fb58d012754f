from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


# importi come float (asdecimal=False): niente Decimal nei dict serializzati
Importo = Numeric(12, 2, asdecimal=False)

# tutti i timestamp sono nell'ora locale dello studio, come Appuntamento.inizio


class StatoAppuntamento(enum.Enum):
    PROGRAMMATO = "PROGRAMMATO"
    COMPLETATO = "COMPLETATO"
    ANNULLATO = "ANNULLATO"


class AssociazioneDenti(enum.Enum):
    NON_CORRELATO = "NON_CORRELATO"
    DENTE_SINGOLO = "DENTE_SINGOLO"
    DENTI_MULTIPLI = "DENTI_MULTIPLI"


class Valuta(enum.Enum):
    SYP = "SYP"
    USD = "USD"


class Ruolo(enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    MEDICO = "MEDICO"
    ASSISTENTE = "ASSISTENTE"
    RECEPTIONIST = "RECEPTIONIST"


class Medico(Base):
    __tablename__ = "medici"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(80), nullable=False)
    cognome: Mapped[str] = mapped_column(String(80), nullable=False)
    specializzazione: Mapped[str] = mapped_column(String(120), nullable=False)
    telefono: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    attivo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="medico", cascade="all, delete-orphan")

    @property
    def nome_completo(self) -> str:
        return f"{self.nome} {self.cognome}"

    def __repr__(self) -> str:
        return f"Medico({self.nome} {self.cognome}, {self.specializzazione})"


class Paziente(Base):
    __tablename__ = "pazienti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(80), nullable=False)
    cognome: Mapped[str] = mapped_column(String(80), nullable=False)
    data_nascita: Mapped[date] = mapped_column(Date, nullable=False)
    telefono: Mapped[str] = mapped_column(String(30), nullable=False)
    contatto: Mapped[str | None] = mapped_column(String(120), nullable=True)  # persona di riferimento
    indirizzo: Mapped[str | None] = mapped_column(String(200), nullable=True)
    professione: Mapped[str | None] = mapped_column(String(120), nullable=True)
    note_mediche: Mapped[str | None] = mapped_column(Text, nullable=True)

    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    aggiornato_il: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="paziente", cascade="all, delete-orphan")
    piani: Mapped[list["PianoTrattamento"]] = relationship(back_populates="paziente", cascade="all, delete-orphan")

    @property
    def nome_completo(self) -> str:
        return f"{self.nome} {self.cognome}"

    def __repr__(self) -> str:
        return f"Paziente({self.nome} {self.cognome})"


class Appuntamento(Base):
    __tablename__ = "appuntamenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    paziente_id: Mapped[str] = mapped_column(ForeignKey("pazienti.id"), nullable=False)
    medico_id: Mapped[str] = mapped_column(ForeignKey("medici.id"), nullable=False)

    inizio: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    stato: Mapped[StatoAppuntamento] = mapped_column(
        Enum(StatoAppuntamento), default=StatoAppuntamento.PROGRAMMATO, nullable=False
    )

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    aggiornato_il: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    paziente: Mapped["Paziente"] = relationship(back_populates="appuntamenti")
    medico: Mapped["Medico"] = relationship(back_populates="appuntamenti")
    registri: Mapped[list["RegistroTrattamento"]] = relationship(
        back_populates="appuntamento", cascade="all, delete-orphan"
    )
    pagamenti: Mapped[list["Pagamento"]] = relationship(back_populates="appuntamento", cascade="all, delete-orphan")
    passi_eseguiti: Mapped[list["PassoEseguito"]] = relationship(
        back_populates="appuntamento", cascade="all, delete-orphan"
    )


class Trattamento(Base):
    __tablename__ = "trattamenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    nome: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    descrizione: Mapped[str | None] = mapped_column(Text, nullable=True)
    costo_stimato: Mapped[float] = mapped_column(Importo, nullable=False, default=0)
    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    sotto_trattamenti: Mapped[list["SottoTrattamento"]] = relationship(
        back_populates="trattamento", cascade="all, delete-orphan"
    )


class SottoTrattamento(Base):
    __tablename__ = "sotto_trattamenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    trattamento_id: Mapped[str] = mapped_column(ForeignKey("trattamenti.id"), nullable=False)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    associazione_denti: Mapped[AssociazioneDenti] = mapped_column(
        Enum(AssociazioneDenti), default=AssociazioneDenti.NON_CORRELATO, nullable=False
    )

    trattamento: Mapped["Trattamento"] = relationship(back_populates="sotto_trattamenti")
    passi: Mapped[list["PassoTrattamento"]] = relationship(
        back_populates="sotto_trattamento", cascade="all, delete-orphan", order_by="PassoTrattamento.ordine"
    )


class PassoTrattamento(Base):
    __tablename__ = "passi_trattamento"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    sotto_trattamento_id: Mapped[str] = mapped_column(ForeignKey("sotto_trattamenti.id"), nullable=False)
    nome: Mapped[str] = mapped_column(String(120), nullable=False)
    descrizione: Mapped[str | None] = mapped_column(Text, nullable=True)
    ordine: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    percentuale_completamento: Mapped[float] = mapped_column(Importo, nullable=False, default=0)

    sotto_trattamento: Mapped["SottoTrattamento"] = relationship(back_populates="passi")
    esecuzioni: Mapped[list["PassoEseguito"]] = relationship(back_populates="passo", cascade="all, delete-orphan")


class RegistroTrattamento(Base):
    __tablename__ = "registri_trattamento"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    appuntamento_id: Mapped[str] = mapped_column(ForeignKey("appuntamenti.id"), nullable=False)
    trattamento_id: Mapped[str] = mapped_column(ForeignKey("trattamenti.id"), nullable=False)
    sotto_trattamento_id: Mapped[str] = mapped_column(ForeignKey("sotto_trattamenti.id"), nullable=False)

    numero_dente: Mapped[str] = mapped_column(String(200), nullable=False, default="")  # es. "11, 12"
    costo_syp: Mapped[float] = mapped_column(Importo, nullable=False, default=0)
    costo_usd: Mapped[float] = mapped_column(Importo, nullable=False, default=0)
    completato: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    eseguito_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    appuntamento: Mapped["Appuntamento"] = relationship(back_populates="registri")
    trattamento: Mapped["Trattamento"] = relationship()
    sotto_trattamento: Mapped["SottoTrattamento"] = relationship()
    passi_eseguiti: Mapped[list["PassoEseguito"]] = relationship(back_populates="registro")


class PassoEseguito(Base):
    __tablename__ = "passi_eseguiti"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    appuntamento_id: Mapped[str] = mapped_column(ForeignKey("appuntamenti.id"), nullable=False)
    passo_id: Mapped[str] = mapped_column(ForeignKey("passi_trattamento.id"), nullable=False)
    # registro a cui il passo contribuisce (anche da un appuntamento successivo)
    registro_id: Mapped[str | None] = mapped_column(
        ForeignKey("registri_trattamento.id", ondelete="SET NULL"), nullable=True
    )
    completato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    appuntamento: Mapped["Appuntamento"] = relationship(back_populates="passi_eseguiti")
    passo: Mapped["PassoTrattamento"] = relationship(back_populates="esecuzioni")
    registro: Mapped["RegistroTrattamento"] = relationship(back_populates="passi_eseguiti")


class PianoTrattamento(Base):
    __tablename__ = "piani_trattamento"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    paziente_id: Mapped[str] = mapped_column(ForeignKey("pazienti.id"), nullable=False)
    trattamento_id: Mapped[str] = mapped_column(ForeignKey("trattamenti.id"), nullable=False)
    sotto_trattamento_id: Mapped[str] = mapped_column(ForeignKey("sotto_trattamenti.id"), nullable=False)
    numero_dente: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    eseguito: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    eseguito_il: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    appuntamento_id: Mapped[str | None] = mapped_column(
        ForeignKey("appuntamenti.id", ondelete="SET NULL"), nullable=True
    )
    registro_id: Mapped[str | None] = mapped_column(
        ForeignKey("registri_trattamento.id", ondelete="SET NULL"), nullable=True
    )
    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    paziente: Mapped["Paziente"] = relationship(back_populates="piani")
    trattamento: Mapped["Trattamento"] = relationship()
    sotto_trattamento: Mapped["SottoTrattamento"] = relationship()


class Pagamento(Base):
    __tablename__ = "pagamenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    appuntamento_id: Mapped[str] = mapped_column(ForeignKey("appuntamenti.id"), nullable=False)
    importo: Mapped[float] = mapped_column(Importo, nullable=False)
    valuta: Mapped[Valuta] = mapped_column(Enum(Valuta), default=Valuta.SYP, nullable=False)
    pagato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)

    appuntamento: Mapped["Appuntamento"] = relationship(back_populates="pagamenti")


class PermessoRuolo(Base):
    __tablename__ = "permessi_ruolo"
    __table_args__ = (UniqueConstraint("ruolo", "risorsa", name="uq_permesso_ruolo_risorsa"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ruolo: Mapped[Ruolo] = mapped_column(Enum(Ruolo), nullable=False)
    risorsa: Mapped[str] = mapped_column(String(40), nullable=False)
    puo_creare: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    puo_modificare: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    puo_eliminare: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class LogAttivita(Base):
    __tablename__ = "log_attivita"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    utente: Mapped[str] = mapped_column(String(50), nullable=False)
    azione: Mapped[str] = mapped_column(String(80), nullable=False)
    tipo_entita: Mapped[str | None] = mapped_column(String(40), nullable=True)
    entita_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    dettagli: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    creato_il: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
