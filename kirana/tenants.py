# kirana/tenants.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

from kirana.db import connect, exec_one, DEFAULT_DB_PATH

logger = logging.getLogger(__name__)

def ensure_store(external_id: str, name: Optional[str] = None, db_path: Path = DEFAULT_DB_PATH) -> int:
    """
    Map an external chat identity to its store id, creating the store on
    first contact. Stores are never merged or deleted.
    """
    external_id = external_id.strip()
    if not external_id:
        raise ValueError("external_id must not be empty")

    conn = connect(db_path)
    try:
        conn.execute(
            "INSERT INTO stores(external_id, name, created_at) VALUES (?, ?, ?) "
            "ON CONFLICT(external_id) DO NOTHING",
            (external_id, (name or external_id).strip(), datetime.now(timezone.utc).isoformat()),
        )
        created = conn.total_changes > 0
        row = conn.execute("SELECT id FROM stores WHERE external_id = ?", (external_id,)).fetchone()
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    if created:
        logger.info("created store id=%s for external_id=%s", row["id"], external_id)
    return int(row["id"])

def store_exists(store_id: int, db_path: Path = DEFAULT_DB_PATH) -> bool:
    conn = connect(db_path)
    try:
        row = conn.execute("SELECT 1 FROM stores WHERE id = ?", (store_id,)).fetchone()
        return row is not None
    finally:
        conn.close()

def get_store(store_id: int, db_path: Path = DEFAULT_DB_PATH) -> Optional[Dict[str, Any]]:
    conn = connect(db_path)
    try:
        return exec_one(conn, "SELECT id, external_id, name, created_at FROM stores WHERE id = ?", (store_id,))
    finally:
        conn.close()
