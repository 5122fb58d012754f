from __future__ import annotations

import logging

from sqlalchemy import func, select

from backend.auth_models import Utente
from backend.auth_security import hash_password, verify_password
from backend.db import db_session
from backend.models import Ruolo

logger = logging.getLogger(__name__)


def crea_utente(username: str, password: str, ruolo: Ruolo | None = None) -> str:
    """
    Registra un utente. Il primo utente registrato diventa SUPER_ADMIN,
    gli altri prendono il ruolo indicato (default RECEPTIONIST).
    """
    username = username.strip().lower()
    if not username or not password:
        raise ValueError("Username e password sono obbligatori.")

    with db_session() as s:
        exists = s.execute(select(Utente).where(Utente.username == username)).scalar_one_or_none()
        if exists:
            raise ValueError("Username già registrato.")

        primo = s.scalar(select(func.count(Utente.id))) == 0
        u = Utente(
            username=username,
            password_hash=hash_password(password),
            ruolo=Ruolo.SUPER_ADMIN if primo else (ruolo or Ruolo.RECEPTIONIST),
            is_active=True,
        )
        s.add(u)
        s.flush()
        logger.info("Utente registrato: %s (%s)", u.username, u.ruolo.value)
        return u.id


def autentica(username: str, password: str) -> Utente | None:
    username = username.strip().lower()
    with db_session() as s:
        u = s.execute(select(Utente).where(Utente.username == username)).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            logger.warning("Login fallito per %s", username)
            return None
        return u


def get_utente_by_id(user_id: str) -> Utente | None:
    with db_session() as s:
        return s.get(Utente, user_id)


def imposta_ruolo(user_id: str, ruolo: Ruolo) -> bool:
    with db_session() as s:
        u = s.get(Utente, user_id)
        if not u:
            return False
        u.ruolo = ruolo
        return True


def lista_utenti_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Utente.id, Utente.username, Utente.ruolo, Utente.is_active).order_by(Utente.username)
        ).all()
        return [
            {"id": r.id, "username": r.username, "ruolo": r.ruolo.value, "is_active": r.is_active}
            for r in rows
        ]
