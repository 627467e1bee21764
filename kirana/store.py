# kirana/store.py
"""
Store repository: every read and write against items, stock transactions,
ledger parties and ledger entries, always scoped by an explicit store id.

Stock guards are single conditional UPDATE statements (the row predicate is
evaluated at write time), so two concurrent sales can never both pass the
same guard. Balances are always summed from ledger entries, never stored.
"""
from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from kirana.db import connect, DEFAULT_DB_PATH, to_decimal
from kirana.matching import (
    ITEM_EXACT_ALIAS,
    PARTY_EXACT_NAME,
    Match,
    pick_unique,
    rank_items,
    rank_parties,
)
from kirana.models import (
    DEFAULT_MIN_STOCK,
    ActionType,
    AdjustResponse,
    BatchSaleResponse,
    Code,
    DailySummary,
    Item,
    LedgerEntry,
    LedgerResponse,
    LowStockItem,
    Party,
    PartyBalance,
    PartyDetail,
    RecentAction,
    ReorderSuggestion,
    SaleFailure,
    SaleLine,
    SaleResponse,
    SalesTotals,
    StockInResponse,
    UndoResponse,
)

logger = logging.getLogger(__name__)

RESOLVE_LIMIT = 5


# -------------------------
# Errors
# -------------------------

class StoreError(Exception):
    """A domain failure the tool layer reports back as ok=False."""

    code = "STORE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.data = data


class NotFound(StoreError):
    code = Code.NOT_FOUND


class InsufficientStock(StoreError):
    code = Code.INSUFFICIENT_STOCK


class AmbiguousMatch(StoreError):
    code = Code.AMBIGUOUS_MATCH


class InvalidInput(StoreError):
    code = Code.INVALID_INPUT


class AlreadyExists(StoreError):
    code = Code.ITEM_EXISTS


class UndoFailed(StoreError):
    code = Code.UNDO_FAILED


# -------------------------
# Helpers (internal)
# -------------------------

def _row_to_item(row: Dict[str, Any]) -> Item:
    return Item(
        id=row["id"],
        name=row["name"],
        aliases=json.loads(row["aliases"] or "[]"),
        unit=row["unit"],
        current_stock=int(row["current_stock"]),
        min_stock=int(row["min_stock"]),
        last_cost_price=to_decimal(row["last_cost_price"]),
    )

def _row_to_party(row: Dict[str, Any]) -> Party:
    return Party(id=row["id"], name=row["name"], phone=row["phone"])

def _item_candidates(matches: Sequence[Match[Item]]) -> List[Dict[str, Any]]:
    return [
        {"id": m.row.id, "name": m.row.name, "score": m.score, "current_stock": m.row.current_stock}
        for m in matches
    ]

def _party_candidates(matches: Sequence[Match[Party]]) -> List[Dict[str, Any]]:
    return [{"id": m.row.id, "name": m.row.name, "score": m.score} for m in matches]

def suggest_reorder_qty(current_stock: int, min_stock: int) -> int:
    return max(min_stock * 2 - current_stock, min_stock)


class StoreRepository:
    def __init__(
        self,
        db_path: Path = DEFAULT_DB_PATH,
        store_tz: timezone = timezone(timedelta(hours=5, minutes=30)),
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db_path = Path(db_path)
        self.store_tz = store_tz
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -------------------------
    # Connection handling
    # -------------------------
    @contextmanager
    def _tx(self, immediate: bool = False, snapshot: bool = False) -> Iterator[sqlite3.Connection]:
        conn = connect(self.db_path)
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE;")
            elif snapshot:
                conn.execute("BEGIN;")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _now_iso(self) -> str:
        return self._clock().astimezone(timezone.utc).isoformat(timespec="microseconds")

    def today(self) -> date:
        return self._clock().astimezone(self.store_tz).date()

    # -------------------------
    # Items: reads
    # -------------------------
    def _load_items(self, conn: sqlite3.Connection, store_id: int) -> List[Item]:
        rows = conn.execute(
            "SELECT * FROM items WHERE store_id = ? ORDER BY id ASC", (store_id,)
        ).fetchall()
        return [_row_to_item(dict(r)) for r in rows]

    def _fetch_item(self, conn: sqlite3.Connection, store_id: int, item_id: int) -> Optional[Item]:
        row = conn.execute(
            "SELECT * FROM items WHERE id = ? AND store_id = ?", (item_id, store_id)
        ).fetchone()
        return _row_to_item(dict(row)) if row else None

    def _require_item(self, conn: sqlite3.Connection, store_id: int, item_id: int) -> Item:
        item = self._fetch_item(conn, store_id, item_id)
        if item is None:
            raise NotFound("Item not found in your store.", code=Code.ITEM_NOT_FOUND, data={"item_id": item_id})
        return item

    def _resolve_item(self, conn: sqlite3.Connection, store_id: int, ref: Union[int, str]) -> Optional[Item]:
        if isinstance(ref, int) or str(ref).strip().isdigit():
            return self._fetch_item(conn, store_id, int(ref))
        return self._match_item(conn, store_id, str(ref))

    def _match_item(self, conn: sqlite3.Connection, store_id: int, ref: str) -> Optional[Item]:
        # names only: an all-digit name is still a name here
        matches = rank_items(ref, self._load_items(conn, store_id), limit=RESOLVE_LIMIT)
        picked = pick_unique(matches, ITEM_EXACT_ALIAS)
        if picked is not None:
            return picked.row
        if not matches:
            return None
        raise AmbiguousMatch(
            f'"{ref}" matches several items. Which one did you mean?',
            data={"query": str(ref), "candidates": _item_candidates(matches)},
        )

    def list_items(self, store_id: int) -> List[Item]:
        with self._tx() as conn:
            return self._load_items(conn, store_id)

    def get_item(self, store_id: int, item_id: int) -> Item:
        with self._tx() as conn:
            return self._require_item(conn, store_id, item_id)

    def search_items(self, store_id: int, query: str, limit: int = 5) -> List[Match[Item]]:
        with self._tx() as conn:
            return rank_items(query, self._load_items(conn, store_id), limit=limit)

    def resolve_item(self, store_id: int, ref: Union[int, str]) -> Item:
        with self._tx() as conn:
            item = self._resolve_item(conn, store_id, ref)
        if item is None:
            raise NotFound(f'No item matching "{ref}" in your store.', code=Code.ITEM_NOT_FOUND)
        return item

    # -------------------------
    # Stock movements
    # -------------------------
    def _apply_delta(
        self,
        conn: sqlite3.Connection,
        store_id: int,
        item_id: int,
        delta: int,
        guard: bool,
    ) -> Dict[str, Any]:
        """
        Move stock by `delta` in one statement. With `guard`, the row only
        matches while the result stays >= 0.
        """
        sql = "UPDATE items SET current_stock = current_stock + ? WHERE id = ? AND store_id = ?"
        params: tuple = (delta, item_id, store_id)
        if guard:
            sql += " AND current_stock + ? >= 0"
            params += (delta,)
        sql += " RETURNING id, name, current_stock, min_stock"
        rows = conn.execute(sql, params).fetchall()
        if rows:
            return dict(rows[0])

        item = self._require_item(conn, store_id, item_id)
        raise InsufficientStock(
            f"Not enough stock for {item.name}. Current stock: {item.current_stock}, requested: {abs(delta)}.",
            data={"item_id": item.id, "item_name": item.name, "current_stock": item.current_stock, "requested": abs(delta)},
        )

    def _insert_tx(
        self,
        conn: sqlite3.Connection,
        store_id: int,
        tx_type: str,
        item_id: int,
        qty: int,
        price: Optional[Decimal] = None,
        note: Optional[str] = None,
    ) -> int:
        cur = conn.execute(
            "INSERT INTO transactions(store_id, type, item_id, qty, price, note, ts) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (store_id, tx_type, item_id, qty, price, note, self._now_iso()),
        )
        return int(cur.lastrowid)

    def _sell(self, conn: sqlite3.Connection, store_id: int, item_id: int, qty: int, price: Optional[Decimal]) -> SaleResponse:
        if qty <= 0:
            raise InvalidInput("qty must be > 0")
        row = self._apply_delta(conn, store_id, item_id, -qty, guard=True)
        tx_id = self._insert_tx(conn, store_id, "SALE", item_id, qty, price)

        stock_after = int(row["current_stock"])
        warning = None
        if stock_after <= int(row["min_stock"]):
            warning = f"Low stock alert: {row['name']} is now at {stock_after} (min {row['min_stock']})."
        return SaleResponse(
            transaction_id=tx_id,
            item_id=item_id,
            item_name=row["name"],
            qty=qty,
            price=price,
            stock_before=stock_after + qty,
            stock_after=stock_after,
            low_stock_warning=warning,
        )

    def record_sale(self, store_id: int, item_id: int, qty: int, price: Optional[Decimal] = None) -> SaleResponse:
        with self._tx(immediate=True) as conn:
            out = self._sell(conn, store_id, item_id, qty, price)
        logger.info("sale store=%s item=%s qty=%s stock=%s", store_id, item_id, qty, out.stock_after)
        return out

    def record_sale_batch(self, store_id: int, lines: Sequence[SaleLine]) -> BatchSaleResponse:
        recorded: List[SaleResponse] = []
        failed: List[SaleFailure] = []
        # one transaction per line: a failed line never rolls back the others
        for line in lines:
            try:
                recorded.append(self.record_sale(store_id, line.item_id, line.qty, line.price))
            except StoreError as e:
                failed.append(SaleFailure(item_id=line.item_id, qty=line.qty, code=e.code, message=e.message))
        return BatchSaleResponse(recorded=recorded, failed=failed)

    def add_stock(
        self,
        store_id: int,
        name: str,
        qty: int,
        item_id: Optional[int] = None,
        unit: Optional[str] = None,
        cost_per_unit: Optional[Decimal] = None,
    ) -> StockInResponse:
        if qty <= 0:
            raise InvalidInput("qty must be > 0")

        with self._tx(immediate=True) as conn:
            if item_id is not None:
                item = self._require_item(conn, store_id, item_id)
            else:
                item = self._match_item(conn, store_id, name)

            created = False
            if item is None:
                cur = conn.execute(
                    "INSERT INTO items(store_id, name, aliases, unit, current_stock, min_stock, last_cost_price) "
                    "VALUES (?, ?, '[]', ?, 0, ?, ?)",
                    (store_id, name.strip(), unit, DEFAULT_MIN_STOCK, cost_per_unit),
                )
                item = self._require_item(conn, store_id, int(cur.lastrowid))
                created = True

            rows = conn.execute(
                "UPDATE items SET current_stock = current_stock + ?, "
                "last_cost_price = COALESCE(?, last_cost_price), unit = COALESCE(unit, ?) "
                "WHERE id = ? AND store_id = ? RETURNING current_stock",
                (qty, cost_per_unit, unit, item.id, store_id),
            ).fetchall()
            stock_after = int(rows[0]["current_stock"])

            total_cost = cost_per_unit * qty if cost_per_unit is not None else None
            tx_id = self._insert_tx(conn, store_id, "STOCK_IN", item.id, qty, total_cost)

        logger.info("stock_in store=%s item=%s qty=%s created=%s", store_id, item.id, qty, created)
        return StockInResponse(
            transaction_id=tx_id,
            item_id=item.id,
            item_name=item.name,
            qty=qty,
            created=created,
            stock_before=stock_after - qty,
            stock_after=stock_after,
            total_cost=total_cost,
        )

    def adjust_stock(self, store_id: int, item_id: int, qty: int, reason: str) -> AdjustResponse:
        if qty == 0:
            raise InvalidInput("Adjustment quantity must be non-zero.")

        with self._tx(immediate=True) as conn:
            row = self._apply_delta(conn, store_id, item_id, qty, guard=qty < 0)
            tx_id = self._insert_tx(conn, store_id, "ADJUST", item_id, qty, note=reason)

        stock_after = int(row["current_stock"])
        logger.info("adjust store=%s item=%s qty=%s reason=%r", store_id, item_id, qty, reason)
        return AdjustResponse(
            transaction_id=tx_id,
            item_id=item_id,
            item_name=row["name"],
            qty=qty,
            reason=reason,
            stock_before=stock_after - qty,
            stock_after=stock_after,
        )

    # -------------------------
    # Catalog admin
    # -------------------------
    def add_item(
        self,
        store_id: int,
        name: str,
        unit: Optional[str] = None,
        min_stock: int = DEFAULT_MIN_STOCK,
        aliases: Sequence[str] = (),
    ) -> Item:
        if min_stock < 0:
            raise InvalidInput("min_stock must be >= 0")
        clean = name.strip()
        with self._tx(immediate=True) as conn:
            for existing in self._load_items(conn, store_id):
                if existing.name.strip().casefold() == clean.casefold():
                    raise AlreadyExists(
                        f'"{existing.name}" already exists in your catalog.',
                        code=Code.ITEM_EXISTS,
                        data={"item_id": existing.id, "name": existing.name},
                    )
            alias_list = [a.strip() for a in aliases if a.strip()]
            cur = conn.execute(
                "INSERT INTO items(store_id, name, aliases, unit, current_stock, min_stock) VALUES (?, ?, ?, ?, 0, ?)",
                (store_id, clean, json.dumps(alias_list), unit, min_stock),
            )
            return self._require_item(conn, store_id, int(cur.lastrowid))

    def add_item_alias(self, store_id: int, item_id: int, alias: str) -> Item:
        clean = alias.strip()
        if not clean:
            raise InvalidInput("alias must not be empty")
        with self._tx(immediate=True) as conn:
            item = self._require_item(conn, store_id, item_id)
            taken = {a.casefold() for a in item.aliases} | {item.name.casefold()}
            if clean.casefold() in taken:
                raise AlreadyExists(
                    f'"{clean}" is already a name or alias of {item.name}.',
                    code=Code.ALIAS_EXISTS,
                    data={"item_id": item.id, "aliases": item.aliases},
                )
            conn.execute(
                "UPDATE items SET aliases = ? WHERE id = ? AND store_id = ?",
                (json.dumps(item.aliases + [clean]), item.id, store_id),
            )
            return self._require_item(conn, store_id, item.id)

    def set_min_stock(self, store_id: int, item_id: int, min_stock: int) -> Item:
        if min_stock < 0:
            raise InvalidInput("min_stock must be >= 0")
        with self._tx() as conn:
            rows = conn.execute(
                "UPDATE items SET min_stock = ? WHERE id = ? AND store_id = ? RETURNING *",
                (min_stock, item_id, store_id),
            ).fetchall()
            if not rows:
                raise NotFound("Item not found in your store.", code=Code.ITEM_NOT_FOUND, data={"item_id": item_id})
            return _row_to_item(dict(rows[0]))

    # -------------------------
    # Low stock / reorder
    # -------------------------
    def _low_rows(self, store_id: int, limit: int) -> List[Dict[str, Any]]:
        with self._tx() as conn:
            rows = conn.execute(
                "SELECT id, name, unit, current_stock, min_stock FROM items "
                "WHERE store_id = ? AND current_stock <= min_stock "
                "ORDER BY (current_stock - min_stock) ASC, id ASC LIMIT ?",
                (store_id, limit),
            ).fetchall()
        return [dict(r) for r in rows]

    def low_stock(self, store_id: int, limit: int = 20) -> List[LowStockItem]:
        return [
            LowStockItem(shortfall=r["min_stock"] - r["current_stock"], **r)
            for r in self._low_rows(store_id, limit)
        ]

    def reorder_suggestions(self, store_id: int, limit: int = 10) -> List[ReorderSuggestion]:
        return [
            ReorderSuggestion(
                shortfall=r["min_stock"] - r["current_stock"],
                suggested_qty=suggest_reorder_qty(r["current_stock"], r["min_stock"]),
                **r,
            )
            for r in self._low_rows(store_id, limit)
        ]

    # -------------------------
    # Ledger
    # -------------------------
    def _load_parties(self, conn: sqlite3.Connection, store_id: int) -> List[Party]:
        rows = conn.execute(
            "SELECT id, name, phone FROM ledger_parties WHERE store_id = ? ORDER BY id ASC", (store_id,)
        ).fetchall()
        return [_row_to_party(dict(r)) for r in rows]

    def _fetch_party(self, conn: sqlite3.Connection, store_id: int, party_id: int) -> Optional[Party]:
        row = conn.execute(
            "SELECT id, name, phone FROM ledger_parties WHERE id = ? AND store_id = ?", (party_id, store_id)
        ).fetchone()
        return _row_to_party(dict(row)) if row else None

    def _resolve_party(self, conn: sqlite3.Connection, store_id: int, name: str) -> Optional[Party]:
        matches = rank_parties(name, self._load_parties(conn, store_id), limit=RESOLVE_LIMIT)
        picked = pick_unique(matches, PARTY_EXACT_NAME)
        if picked is not None:
            return picked.row
        if not matches:
            return None
        raise AmbiguousMatch(
            f'"{name}" matches several customers. Which one did you mean?',
            data={"query": name, "candidates": _party_candidates(matches)},
        )

    def _balances(self, conn: sqlite3.Connection, party_ids: Sequence[int]) -> Dict[int, Decimal]:
        totals: Dict[int, Decimal] = {pid: Decimal("0") for pid in party_ids}
        if not party_ids:
            return totals
        marks = ", ".join("?" * len(party_ids))
        rows = conn.execute(
            f"SELECT party_id, delta_amount FROM ledger_entries WHERE party_id IN ({marks})",
            tuple(party_ids),
        ).fetchall()
        for r in rows:
            totals[r["party_id"]] += Decimal(r["delta_amount"])
        return totals

    def _balance(self, conn: sqlite3.Connection, party_id: int) -> Decimal:
        return self._balances(conn, [party_id])[party_id]

    def _insert_entry(self, conn: sqlite3.Connection, party_id: int, delta: Decimal, note: Optional[str]) -> int:
        cur = conn.execute(
            "INSERT INTO ledger_entries(party_id, delta_amount, note, ts) VALUES (?, ?, ?, ?)",
            (party_id, delta, note, self._now_iso()),
        )
        return int(cur.lastrowid)

    def add_debt(self, store_id: int, party_name: str, amount: Decimal, note: Optional[str] = None) -> LedgerResponse:
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidInput("amount must be > 0")

        with self._tx(immediate=True) as conn:
            party = self._resolve_party(conn, store_id, party_name)
            created = False
            if party is None:
                cur = conn.execute(
                    "INSERT INTO ledger_parties(store_id, name) VALUES (?, ?)",
                    (store_id, party_name.strip()),
                )
                party = Party(id=int(cur.lastrowid), name=party_name.strip())
                created = True

            entry_id = self._insert_entry(conn, party.id, amount, note)
            balance = self._balance(conn, party.id)

        logger.info("debt store=%s party=%s amount=%s balance=%s", store_id, party.id, amount, balance)
        return LedgerResponse(
            entry_id=entry_id,
            party_id=party.id,
            party_name=party.name,
            party_created=created,
            delta_amount=amount,
            balance=balance,
        )

    def receive_payment(self, store_id: int, party_name: str, amount: Decimal, note: Optional[str] = None) -> LedgerResponse:
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidInput("amount must be > 0")

        with self._tx(immediate=True) as conn:
            party = self._resolve_party(conn, store_id, party_name)
            if party is None:
                # no auto-create: a payment without a prior debt is most likely a name miss
                raise NotFound(
                    f'Customer "{party_name}" not found in ledger. Check the name.',
                    code=Code.PARTY_NOT_FOUND,
                    data={"query": party_name},
                )
            entry_id = self._insert_entry(conn, party.id, -amount, note)
            balance = self._balance(conn, party.id)

        logger.info("payment store=%s party=%s amount=%s balance=%s", store_id, party.id, amount, balance)
        return LedgerResponse(
            entry_id=entry_id,
            party_id=party.id,
            party_name=party.name,
            delta_amount=-amount,
            balance=balance,
            store_owes_customer=balance < 0,
        )

    def lookup_party(self, store_id: int, name: str, recent: int = 5) -> PartyDetail:
        with self._tx(snapshot=True) as conn:
            party = self._resolve_party(conn, store_id, name)
            if party is None:
                raise NotFound(f'No customer named "{name}" found.', code=Code.PARTY_NOT_FOUND, data={"query": name})
            balance = self._balance(conn, party.id)
            rows = conn.execute(
                "SELECT * FROM ledger_entries WHERE party_id = ? ORDER BY ts DESC, id DESC LIMIT ?",
                (party.id, recent),
            ).fetchall()
        entries = [
            LedgerEntry(id=r["id"], party_id=r["party_id"], delta_amount=Decimal(r["delta_amount"]), note=r["note"], ts=r["ts"])
            for r in rows
        ]
        return PartyDetail(party=PartyBalance(balance=balance, **party.model_dump()), recent_entries=entries)

    def list_parties(self, store_id: int) -> List[PartyBalance]:
        with self._tx(snapshot=True) as conn:
            parties = self._load_parties(conn, store_id)
            balances = self._balances(conn, [p.id for p in parties])
        return [PartyBalance(balance=balances[p.id], **p.model_dump()) for p in parties]

    def resolve_party(self, store_id: int, ref: Union[int, str]) -> Party:
        with self._tx() as conn:
            if isinstance(ref, int) or str(ref).strip().isdigit():
                party = self._fetch_party(conn, store_id, int(ref))
            else:
                party = self._resolve_party(conn, store_id, str(ref))
        if party is None:
            raise NotFound(f'No customer matching "{ref}" found.', code=Code.PARTY_NOT_FOUND, data={"query": str(ref)})
        return party

    # -------------------------
    # Summary / history
    # -------------------------
    def _day_bounds(self, day: date) -> tuple[str, str]:
        start = datetime.combine(day, time.min, tzinfo=self.store_tz)
        end = start + timedelta(days=1)
        return (
            start.astimezone(timezone.utc).isoformat(timespec="microseconds"),
            end.astimezone(timezone.utc).isoformat(timespec="microseconds"),
        )

    def daily_summary(self, store_id: int, day: Optional[date] = None) -> DailySummary:
        day = day or self.today()
        start, end = self._day_bounds(day)

        with self._tx(snapshot=True) as conn:
            tx_rows = conn.execute(
                "SELECT type, qty, price FROM transactions WHERE store_id = ? AND ts >= ? AND ts < ?",
                (store_id, start, end),
            ).fetchall()
            entry_rows = conn.execute(
                "SELECT e.delta_amount FROM ledger_entries e "
                "JOIN ledger_parties p ON p.id = e.party_id "
                "WHERE p.store_id = ? AND e.ts >= ? AND e.ts < ?",
                (store_id, start, end),
            ).fetchall()

        sales = SalesTotals()
        stock_ins = adjustments = 0
        for r in tx_rows:
            if r["type"] == "SALE":
                sales.count += 1
                sales.total_qty += int(r["qty"])
                if r["price"] is not None:
                    sales.total_amount += Decimal(r["price"])
            elif r["type"] == "STOCK_IN":
                stock_ins += 1
            else:
                adjustments += 1

        new_udhar = Decimal("0")
        received = Decimal("0")
        for r in entry_rows:
            delta = Decimal(r["delta_amount"])
            if delta > 0:
                new_udhar += delta
            else:
                received += -delta

        offset = self.store_tz.utcoffset(None)
        return DailySummary(
            date=day.isoformat(),
            utc_offset_minutes=int(offset.total_seconds() // 60),
            sales=sales,
            stock_ins=stock_ins,
            adjustments=adjustments,
            new_udhar=new_udhar,
            payments_received=received,
        )

    def recent_actions(self, store_id: int, limit: int = 10) -> List[RecentAction]:
        with self._tx(snapshot=True) as conn:
            tx_rows = conn.execute(
                "SELECT t.id, t.type, t.qty, t.price, t.note, t.ts, i.name AS item_name "
                "FROM transactions t JOIN items i ON i.id = t.item_id "
                "WHERE t.store_id = ? ORDER BY t.ts DESC, t.id DESC LIMIT ?",
                (store_id, limit),
            ).fetchall()
            entry_rows = conn.execute(
                "SELECT e.id, e.delta_amount, e.note, e.ts, p.name AS party_name "
                "FROM ledger_entries e JOIN ledger_parties p ON p.id = e.party_id "
                "WHERE p.store_id = ? ORDER BY e.ts DESC, e.id DESC LIMIT ?",
                (store_id, limit),
            ).fetchall()

        actions: List[RecentAction] = []
        for r in tx_rows:
            if r["type"] == "SALE":
                desc = f"Sale: {r['item_name']} x{r['qty']}"
            elif r["type"] == "STOCK_IN":
                desc = f"Stock in: {r['item_name']} +{r['qty']}"
            else:
                desc = f"Adjust: {r['item_name']} {r['qty']:+d}" + (f" ({r['note']})" if r["note"] else "")
            actions.append(
                RecentAction(
                    label=f"T{r['id']}",
                    action_type="transaction",
                    action_id=r["id"],
                    kind=r["type"],
                    ts=r["ts"],
                    description=desc,
                    qty=r["qty"],
                    amount=to_decimal(r["price"]),
                )
            )
        for r in entry_rows:
            delta = Decimal(r["delta_amount"])
            kind = "DEBT" if delta > 0 else "PAYMENT"
            desc = f"{'Udhar' if delta > 0 else 'Payment'}: {r['party_name']} {delta:+}"
            if r["note"]:
                desc += f" ({r['note']})"
            actions.append(
                RecentAction(
                    label=f"L{r['id']}",
                    action_type="ledger",
                    action_id=r["id"],
                    kind=kind,
                    ts=r["ts"],
                    description=desc,
                    amount=delta,
                )
            )
        actions.sort(key=lambda a: (a.ts, a.action_id), reverse=True)
        return actions

    # -------------------------
    # Undo
    # -------------------------
    def undo_action(self, store_id: int, action_type: ActionType, action_id: int) -> UndoResponse:
        if action_type == "transaction":
            return self._undo_transaction(store_id, action_id)
        if action_type == "ledger":
            return self._undo_entry(store_id, action_id)
        raise InvalidInput(f"Unknown action type: {action_type!r}")

    def _undo_transaction(self, store_id: int, tx_id: int) -> UndoResponse:
        label = f"T{tx_id}"
        with self._tx(immediate=True) as conn:
            # the store filter in the DELETE is the ownership check
            rows = conn.execute(
                "DELETE FROM transactions WHERE id = ? AND store_id = ? RETURNING type, item_id, qty",
                (tx_id, store_id),
            ).fetchall()
            if not rows:
                raise NotFound(f"No action {label} found (already undone?).", data={"label": label})
            tx = dict(rows[0])

            qty = int(tx["qty"])
            if tx["type"] == "SALE":
                delta = qty
            else:
                # STOCK_IN qty is positive, ADJUST qty is signed
                delta = -qty

            try:
                row = self._apply_delta(conn, store_id, tx["item_id"], delta, guard=delta < 0)
            except InsufficientStock as e:
                raise UndoFailed(
                    f"Cannot undo {label}: stock would go below zero. {e.message}",
                    data={"label": label, **(e.data or {})},
                ) from e

        logger.info("undo store=%s %s type=%s item=%s delta=%s", store_id, label, tx["type"], tx["item_id"], delta)
        return UndoResponse(
            label=label,
            action_type="transaction",
            action_id=tx_id,
            description=f"Reversed {tx['type']} of {row['name']} ({delta:+d}).",
            item_stock_after=int(row["current_stock"]),
        )

    def _undo_entry(self, store_id: int, entry_id: int) -> UndoResponse:
        label = f"L{entry_id}"
        with self._tx(immediate=True) as conn:
            rows = conn.execute(
                "DELETE FROM ledger_entries WHERE id = ? "
                "AND party_id IN (SELECT id FROM ledger_parties WHERE store_id = ?) "
                "RETURNING party_id, delta_amount",
                (entry_id, store_id),
            ).fetchall()
            if not rows:
                raise NotFound(f"No action {label} found (already undone?).", data={"label": label})
            party_id = rows[0]["party_id"]
            delta = Decimal(rows[0]["delta_amount"])
            name = conn.execute("SELECT name FROM ledger_parties WHERE id = ?", (party_id,)).fetchone()["name"]
            balance = self._balance(conn, party_id)

        logger.info("undo store=%s %s party=%s delta=%s", store_id, label, party_id, delta)
        return UndoResponse(
            label=label,
            action_type="ledger",
            action_id=entry_id,
            description=f"Removed ledger entry {delta:+} for {name}.",
            party_balance_after=balance,
        )
