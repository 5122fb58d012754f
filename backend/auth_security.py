from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from backend.config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALG, JWT_SECRET
from backend.models import Ruolo

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(utente_id: str, username: str, ruolo: Ruolo) -> str:
    """
    sub = id utente; username e ruolo viaggiano nel token per il client Streamlit,
    che li legge senza chiamare /api/me.
    """
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    payload: dict[str, Any] = {
        "sub": utente_id,
        "username": username,
        "ruolo": ruolo.value,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])


def get_subject(token: str) -> str | None:
    try:
        return decode_token(token).get("sub")
    except JWTError:
        return None


def get_ruolo(token: str) -> Ruolo | None:
    """Ruolo al momento del login (None se il token non è valido)."""
    try:
        return Ruolo(decode_token(token).get("ruolo"))
    except (JWTError, ValueError):
        return None
