# kirana/audit_cli.py
from __future__ import annotations
import argparse
from kirana.audit import audit_store
from kirana.config import load_settings
from kirana.tenants import store_exists

def main():
    settings = load_settings()
    p = argparse.ArgumentParser()
    p.add_argument("--store_id", type=int, required=True)
    p.add_argument("--transactions", type=int, default=20)
    args = p.parse_args()

    if not store_exists(args.store_id, db_path=settings.db_path):
        p.error(f"no store with id {args.store_id} in {settings.db_path}")

    print(audit_store(args.store_id, limit_tx=args.transactions, db_path=settings.db_path))

if __name__ == "__main__":
    main()
