# kirana/audit.py
from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Dict, List

from kirana.db import connect, DEFAULT_DB_PATH

def stock_drift(store_id: int, db_path: Path = DEFAULT_DB_PATH) -> Dict[int, tuple[int, int]]:
    """
    Items whose current_stock differs from the signed sum of their
    transactions, as {item_id: (current_stock, ledger_sum)}. Empty when the
    stock history is consistent.
    """
    conn = connect(db_path)
    try:
        rows = conn.execute(
            """
            SELECT i.id, i.current_stock,
                   COALESCE(SUM(CASE t.type WHEN 'SALE' THEN -t.qty ELSE t.qty END), 0) AS ledger_sum
            FROM items i
            LEFT JOIN transactions t ON t.item_id = i.id AND t.store_id = i.store_id
            WHERE i.store_id = ?
            GROUP BY i.id, i.current_stock
            """,
            (store_id,),
        ).fetchall()
        return {
            r["id"]: (int(r["current_stock"]), int(r["ledger_sum"]))
            for r in rows
            if int(r["current_stock"]) != int(r["ledger_sum"])
        }
    finally:
        conn.close()

def audit_store(store_id: int, limit_tx: int = 20, db_path: Path = DEFAULT_DB_PATH) -> str:
    """
    DB ground truth for one store:
    - catalog with stock levels
    - udhar balances per customer
    - recent stock transactions
    - stock drift check
    """
    conn = connect(db_path)
    try:
        store = conn.execute("SELECT id, name, external_id FROM stores WHERE id = ?", (store_id,)).fetchone()
        if store is None:
            return f"No store found for store_id={store_id}"

        out: List[str] = []
        out.append("=== DB AUDIT (SOURCE OF TRUTH) ===")
        out.append(f"Store: {store['name']} (id {store['id']}, owner {store['external_id']})")
        out.append("")

        out.append("--- Items ---")
        items = conn.execute(
            "SELECT id, name, unit, current_stock, min_stock FROM items WHERE store_id = ? ORDER BY name ASC",
            (store_id,),
        ).fetchall()
        if not items:
            out.append("(no items)")
        for i in items:
            flag = "  LOW" if i["current_stock"] <= i["min_stock"] else ""
            out.append(f"{i['id']} | {i['name']} | {i['current_stock']} {i['unit'] or ''} | min {i['min_stock']}{flag}")
        out.append("")

        out.append("--- Udhar ---")
        parties = conn.execute(
            "SELECT id, name FROM ledger_parties WHERE store_id = ? ORDER BY name ASC", (store_id,)
        ).fetchall()
        if not parties:
            out.append("(no customers)")
        for p in parties:
            deltas = conn.execute(
                "SELECT delta_amount FROM ledger_entries WHERE party_id = ?", (p["id"],)
            ).fetchall()
            balance = sum((Decimal(d["delta_amount"]) for d in deltas), Decimal("0"))
            out.append(f"{p['id']} | {p['name']} | ₹{balance} ({len(deltas)} entries)")
        out.append("")

        out.append(f"--- Transactions (last {limit_tx}) ---")
        txs = conn.execute(
            """
            SELECT t.id, t.type, t.qty, t.price, t.note, t.ts, i.name
            FROM transactions t
            JOIN items i ON i.id = t.item_id
            WHERE t.store_id = ?
            ORDER BY t.ts DESC, t.id DESC
            LIMIT ?
            """,
            (store_id, limit_tx),
        ).fetchall()
        if not txs:
            out.append("(no transactions)")
        for t in txs:
            price = f" | ₹{t['price']}" if t["price"] is not None else ""
            note = f" | {t['note']}" if t["note"] else ""
            out.append(f"T{t['id']} | {t['ts']} | {t['type']} {t['name']} {t['qty']}{price}{note}")
    finally:
        conn.close()

    drift = stock_drift(store_id, db_path=db_path)
    out.append("")
    if drift:
        out.append("!!! Stock drift detected (item: current vs transactions) !!!")
        for item_id, (current, summed) in drift.items():
            out.append(f"  item {item_id}: {current} vs {summed}")
    else:
        out.append("Stock history consistent.")
    return "\n".join(out)
