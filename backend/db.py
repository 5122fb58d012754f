from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATABASE_URL

# SQLite: le richieste FastAPI girano nel threadpool
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    echo=False,              # metti True se vuoi vedere le query
    future=True,
    connect_args=_connect_args,
)

if DATABASE_URL.startswith("sqlite"):
    # SQLite non applica le foreign key se non richiesto per ogni connessione
    @event.listens_for(engine, "connect")
    def _abilita_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """Base ORM per tutti i modelli."""
    pass


@contextmanager
def db_session() -> Iterator[Session]:
    """
    Context manager per gestire correttamente la sessione:
    - commit se tutto ok
    - rollback su eccezioni
    - close sempre

    Ogni use case multi-tabella gira dentro una sola sessione,
    quindi è atomico.
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Crea le tabelle se non esistono."""
    # registra tutti i modelli nel metadata
    from . import auth_models, models  # noqa: F401

    Base.metadata.create_all(bind=engine)
