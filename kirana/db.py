# kirana/db.py
from __future__ import annotations
import sqlite3
from decimal import Decimal
from pathlib import Path
from typing import Optional, Any, Dict

DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "data" / "kirana.db"
SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

# money columns are TEXT; keep Decimal exact on the way in
sqlite3.register_adapter(Decimal, str)

def connect(db_path: Path = DEFAULT_DB_PATH, timeout: float = 10.0) -> sqlite3.Connection:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn

def init_db(conn: sqlite3.Connection) -> None:
    schema = SCHEMA_PATH.read_text(encoding="utf-8")
    conn.executescript(schema)
    conn.commit()

def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))

def exec_one(conn: sqlite3.Connection, sql: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
    cur = conn.execute(sql, params)
    row = cur.fetchone()
    return dict(row) if row else None
