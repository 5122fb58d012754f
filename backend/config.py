from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# .env nella root del progetto (accanto a streamlit_app.py)
ROOT_DIR = Path(__file__).resolve().parents[1]
load_dotenv(dotenv_path=ROOT_DIR / ".env")

DEFAULT_DB_PATH = ROOT_DIR / "studio_dentistico.sqlite"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}")

# In produzione: mettila in variabile d'ambiente
JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET")
JWT_ALG = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# SYP o USD
VALUTA_PREDEFINITA = os.getenv("VALUTA_PREDEFINITA", "SYP").upper()


def configura_logging(level: str | None = None) -> None:
    """Configurazione unica del logging per API e CLI."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
