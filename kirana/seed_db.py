# kirana/seed_db.py
from __future__ import annotations
from decimal import Decimal
from pathlib import Path

from kirana.config import load_settings
from kirana.db import connect, init_db
from kirana.store import StoreRepository
from kirana.tenants import ensure_store

# name, aliases, unit, stock, min_stock, cost per unit
SEED_ITEMS = [
    ("Maggi", ["Maagi", "noodles", "noodal"], "pcs", 24, 5, "12"),
    ("Dairy Milk", ["chocolate", "cadbury"], "pcs", 15, 5, "40"),
    ("Parle-G Biscuit", ["parle", "biscuit", "glucose"], "pcs", 30, 10, "10"),
    ("Amul Butter 500g", ["butter", "makhan"], "pcs", 8, 3, "280"),
    ("Amul Milk 500ml", ["doodh", "milk", "amul doodh"], "pcs", 20, 8, "30"),
    ("Tata Salt 1kg", ["namak", "salt"], "pcs", 12, 5, "28"),
    ("Aashirvaad Atta 5kg", ["atta", "aata", "gehun"], "pcs", 6, 3, "280"),
    ("Fortune Oil 1L", ["tel", "oil", "soybean oil"], "pcs", 10, 4, "155"),
    ("Sugar 1kg", ["cheeni", "shakkar"], "kg", 15, 5, "45"),
    ("Toor Dal 1kg", ["dal", "arhar dal", "daal"], "kg", 8, 4, "160"),
    ("Basmati Rice 1kg", ["chawal", "rice", "basmati"], "kg", 10, 5, "90"),
    ("Surf Excel 1kg", ["surf", "detergent", "washing"], "pcs", 5, 3, "220"),
    ("Lifebuoy Soap", ["sabun", "soap"], "pcs", 18, 5, "38"),
    ("Red Label Tea 250g", ["chai patti", "tea", "chai"], "pcs", 7, 3, "125"),
    # deliberately low, for the reorder demo
    ("Britannia Bread", ["bread", "double roti"], "pcs", 2, 5, "45"),
    ("Amul Paneer 200g", ["paneer"], "pcs", 1, 5, "90"),
]

SEED_DEBTS = [
    ("Ramesh", "450", "monthly ration"),
    ("Sunita Devi", "1200", None),
]

def reset_db(db_path: Path) -> None:
    if db_path.exists():
        db_path.unlink()

def seed(db_path: Path, external_id: str = "demo") -> int:
    reset_db(db_path)
    conn = connect(db_path)
    try:
        init_db(conn)
    finally:
        conn.close()

    store_id = ensure_store(external_id, "Demo Kirana Store", db_path=db_path)
    repo = StoreRepository(db_path)

    # stock goes in through STOCK_IN so every unit has a transaction behind it
    for name, aliases, unit, stock, min_stock, cost in SEED_ITEMS:
        item = repo.add_item(store_id, name, unit=unit, min_stock=min_stock, aliases=aliases)
        repo.add_stock(store_id, name, stock, item_id=item.id, cost_per_unit=Decimal(cost))

    for party, amount, note in SEED_DEBTS:
        repo.add_debt(store_id, party, Decimal(amount), note)

    print(f"✅ Seeded store {store_id} ({external_id!r}) at: {db_path}")
    return store_id

if __name__ == "__main__":
    seed(load_settings().db_path)
