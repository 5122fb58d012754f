from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.db import Base
from backend.models import Ruolo


def new_uuid() -> str:
    return str(uuid.uuid4())


class Utente(Base):
    """
    Utente applicativo per autenticazione.
    - username univoco
    - password_hash con bcrypt (passlib)
    - ruolo: decide i permessi su appuntamenti, registri e pagamenti
    """
    __tablename__ = "utenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    ruolo: Mapped[Ruolo] = mapped_column(Enum(Ruolo), default=Ruolo.RECEPTIONIST, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, nullable=False)
