# kirana/chat_cli.py
from __future__ import annotations

import argparse
import logging

from kirana.agent import StoreAgent
from kirana.config import load_settings
from kirana.db import connect, init_db
from kirana.store import StoreRepository
from kirana.tenants import ensure_store, get_store


def prompt_for_handle() -> str | None:
    while True:
        handle = input("Enter your shop handle (or type 'exit' to quit): ").strip()

        if handle.lower() in {"exit", "quit"}:
            return None

        if not handle:
            print("Handle cannot be empty. Please try again.")
            continue

        return handle


def main():
    settings = load_settings()
    parser = argparse.ArgumentParser()
    parser.add_argument("--user", default=None, help="External identity of the shopkeeper (skips the prompt).")
    parser.add_argument("--store-name", default=None, help="Store name used when the store is created.")
    parser.add_argument("--model", default=settings.gemini_model, help="Gemini model name.")
    parser.add_argument("--max-steps", type=int, default=settings.max_steps, help="Tool-call rounds per turn.")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    conn = connect(settings.db_path)
    try:
        init_db(conn)
    finally:
        conn.close()

    print("Welcome to Kirana Copilot! Type 'exit' to quit.")

    handle = args.user or prompt_for_handle()
    if handle is None:
        print("Goodbye.")
        return

    store_id = ensure_store(handle, args.store_name, db_path=settings.db_path)
    store = get_store(store_id, db_path=settings.db_path) or {}

    repo = StoreRepository(settings.db_path, store_tz=settings.store_tz)
    agent = StoreAgent(repo, gemini_model=args.model, max_steps=args.max_steps)

    print(f"\nNamaste! Store: {store.get('name', handle)} (id {store_id}). Kya karna hai?")
    print(f"Model: {args.model}")

    while True:
        msg = input("\nYou: ").strip()
        if msg.lower() in {"exit", "quit"}:
            print("Goodbye.")
            return
        if not msg:
            continue

        reply = agent.run_turn(msg, store_id=store_id)
        print("\nCopilot:", reply)


if __name__ == "__main__":
    main()
