import os
import sqlite3
from pathlib import Path

DB_ENV = "DB_PATH"
DEFAULT_DB_PATH = str(Path(__file__).resolve().parent / "db" / "shared.db")
SCHEMA_PATH = Path(__file__).resolve().parent / "db" / "schema.sql"


def get_db_path() -> str:
    return os.environ.get(DB_ENV, DEFAULT_DB_PATH)


def connect(db_path: str | None = None) -> sqlite3.Connection:
    path = db_path or get_db_path()
    # isolation_level=None hands transaction control to the caller (BEGIN/COMMIT).
    conn = sqlite3.connect(path, check_same_thread=False, timeout=5, isolation_level=None)
    # Use WAL for concurrent reads/writes across services.
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def init_db(db_path: str | None = None) -> None:
    path = db_path or get_db_path()
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = connect(path)
    try:
        # Schema statements are idempotent, so this also upgrades existing DBs.
        with open(SCHEMA_PATH, "r", encoding="utf-8") as handle:
            conn.executescript(handle.read())
    finally:
        conn.close()
