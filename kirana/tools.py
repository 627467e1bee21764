# kirana/tools.py
"""
The closed set of tools the planner may call.

A StoreTools instance is built per turn around one store id. No request model
has a store field and all of them forbid extra keys, so a tool call cannot
name another store. Every call returns a ToolResult; domain failures and bad
arguments come back as ok=False, only persistence errors propagate.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple, Type

from pydantic import ValidationError

from kirana.matching import ITEM_EXACT_ALIAS
from kirana.models import (
    AddItemAliasRequest,
    AddItemRequest,
    AddStockRequest,
    AdjustStockRequest,
    Code,
    DailySummaryRequest,
    GetInventoryRequest,
    LedgerRequest,
    LimitRequest,
    ListPartiesRequest,
    LookupPartyRequest,
    RecentActionsRequest,
    RecordSaleBatchRequest,
    RecordSaleRequest,
    SearchItemsRequest,
    SetMinStockRequest,
    ToolRequest,
    ToolResult,
    UndoActionRequest,
)
from kirana.store import StoreError, StoreRepository

logger = logging.getLogger(__name__)


# -------------------------
# Helpers (internal)
# -------------------------

def _rupees(amount: Optional[Decimal]) -> str:
    if amount is None:
        return "₹?"
    s = f"{amount:,.2f}"
    if s.endswith(".00"):
        s = s[:-3]
    return f"₹{s}"

def _ok(code: str, message: str, data: Optional[Dict[str, Any]] = None) -> ToolResult:
    return ToolResult(ok=True, code=code, message=message, data=data)

def _fail(code: str, message: str, data: Optional[Dict[str, Any]] = None) -> ToolResult:
    return ToolResult(ok=False, code=code, message=message, data=data)

def _invalid(e: ValidationError) -> ToolResult:
    errors = e.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()))
    msg = first.get("msg", "invalid arguments")
    return _fail(Code.INVALID_INPUT, f"Invalid input: {where + ': ' if where else ''}{msg}.",
                 {"errors": [{"field": ".".join(str(p) for p in err.get("loc", ())), "msg": err.get("msg")} for err in errors]})


class StoreTools:
    def __init__(self, store_id: int, repo: StoreRepository):
        self._store_id = store_id
        self._repo = repo

    def dispatch(self, name: str, args: Optional[Dict[str, Any]] = None) -> ToolResult:
        entry = TOOL_HANDLERS.get(name)
        if entry is None:
            return _fail(Code.UNKNOWN_TOOL, f"Tool not found: {name}", {"tools": list(TOOL_HANDLERS)})

        request_model, handler = entry
        try:
            request = request_model.model_validate(args or {})
        except ValidationError as e:
            return _invalid(e)

        try:
            return handler(self, request)
        except StoreError as e:
            logger.info("tool %s store=%s -> %s: %s", name, self._store_id, e.code, e.message)
            return _fail(e.code, e.message, e.data)

    # -------------------------
    # Catalog reads
    # -------------------------
    def search_items(self, req: SearchItemsRequest) -> ToolResult:
        matches = self._repo.search_items(self._store_id, req.query, limit=req.limit)
        if not matches:
            return _fail(Code.NOT_FOUND, f'No item matching "{req.query}" found in catalog.', {"items": []})

        exact = matches[0].score >= ITEM_EXACT_ALIAS
        items = [
            {**m.row.model_dump(), "score": m.score}
            for m in matches
        ]
        listing = ", ".join(f"{m.row.name} (id {m.row.id}, stock {m.row.current_stock})" for m in matches)
        return _ok(
            Code.FOUND,
            f"Found {len(matches)} item(s): {listing}.",
            {"items": items, "exact": exact, "needs_clarification": len(matches) > 1 and not exact},
        )

    def get_inventory(self, req: GetInventoryRequest) -> ToolResult:
        items = self._repo.list_items(self._store_id)
        if not items:
            return _fail(Code.NO_ITEMS, "No items in catalog yet.", {"items": []})
        return _ok(
            Code.INVENTORY_LISTED,
            f"{len(items)} item(s) in catalog.",
            {"items": [i.model_dump() for i in items]},
        )

    # -------------------------
    # Stock movements
    # -------------------------
    def record_sale(self, req: RecordSaleRequest) -> ToolResult:
        out = self._repo.record_sale(self._store_id, req.item_id, req.qty, req.price)
        msg = f"Sale recorded: {out.item_name} x{out.qty}. Stock: {out.stock_before} → {out.stock_after}."
        if out.low_stock_warning:
            msg += f" {out.low_stock_warning}"
        return _ok(Code.SALE_RECORDED, msg, {**out.model_dump(), "label": f"T{out.transaction_id}"})

    def record_sale_batch(self, req: RecordSaleBatchRequest) -> ToolResult:
        out = self._repo.record_sale_batch(self._store_id, req.items)
        recorded = [{**r.model_dump(), "label": f"T{r.transaction_id}"} for r in out.recorded]
        failed = [f.model_dump() for f in out.failed]
        data = {"recorded": recorded, "failed": failed, "partial": bool(out.recorded and out.failed)}

        done = ", ".join(f"{r.item_name} x{r.qty}" for r in out.recorded)
        missed = "; ".join(f"item {f.item_id} x{f.qty}: {f.message}" for f in out.failed)
        if not out.recorded:
            return _fail(Code.SALE_FAILED, f"No sale recorded. {missed}", data)

        msg = f"Sale recorded: {done}."
        if out.failed:
            msg += f" Failed: {missed}"
        warnings = [r.low_stock_warning for r in out.recorded if r.low_stock_warning]
        if warnings:
            msg += " " + " ".join(warnings)
        return _ok(Code.SALE_RECORDED, msg, data)

    def add_stock(self, req: AddStockRequest) -> ToolResult:
        out = self._repo.add_stock(
            self._store_id,
            req.name,
            req.qty,
            item_id=req.item_id,
            unit=req.unit,
            cost_per_unit=req.cost_per_unit,
        )
        data = {**out.model_dump(), "label": f"T{out.transaction_id}"}
        if out.created:
            return _ok(
                Code.ITEM_CREATED_AND_STOCKED,
                f"New item created: {out.item_name}. Stock: {out.stock_after}.",
                data,
            )
        return _ok(
            Code.STOCK_ADDED,
            f"Stock added: {out.item_name} +{out.qty}. Stock: {out.stock_before} → {out.stock_after}.",
            data,
        )

    def adjust_stock(self, req: AdjustStockRequest) -> ToolResult:
        out = self._repo.adjust_stock(self._store_id, req.item_id, req.qty, req.reason)
        return _ok(
            Code.STOCK_ADJUSTED,
            f"Stock adjusted: {out.item_name} {out.qty:+d} ({out.reason}). Stock: {out.stock_before} → {out.stock_after}.",
            {**out.model_dump(), "label": f"T{out.transaction_id}"},
        )

    # -------------------------
    # Ledger
    # -------------------------
    def lookup_party(self, req: LookupPartyRequest) -> ToolResult:
        out = self._repo.lookup_party(self._store_id, req.name)
        return _ok(
            Code.PARTY_FOUND,
            f"{out.party.name}: balance {_rupees(out.party.balance)}.",
            out.model_dump(),
        )

    def list_parties(self, req: ListPartiesRequest) -> ToolResult:
        parties = self._repo.list_parties(self._store_id)
        if not parties:
            return _fail(Code.NO_PARTIES, "No customers in ledger yet.", {"parties": []})
        owed = sum((p.balance for p in parties if p.balance > 0), Decimal("0"))
        return _ok(
            Code.PARTIES_LISTED,
            f"{len(parties)} customer(s); total udhar outstanding {_rupees(owed)}.",
            {"parties": [p.model_dump() for p in parties], "total_outstanding": owed},
        )

    def add_debt(self, req: LedgerRequest) -> ToolResult:
        out = self._repo.add_debt(self._store_id, req.party_name, req.amount, req.note)
        msg = f"Udhar recorded: {out.party_name} +{_rupees(out.delta_amount)}. Total balance: {_rupees(out.balance)}."
        if out.party_created:
            msg = f"New customer {out.party_name} added. " + msg
        return _ok(Code.DEBT_ADDED, msg, {**out.model_dump(), "label": f"L{out.entry_id}"})

    def receive_payment(self, req: LedgerRequest) -> ToolResult:
        out = self._repo.receive_payment(self._store_id, req.party_name, req.amount, req.note)
        msg = f"Payment received: {out.party_name} paid {_rupees(-out.delta_amount)}. Remaining balance: {_rupees(out.balance)}."
        if out.store_owes_customer:
            msg += f" Note: the store now owes {out.party_name} {_rupees(-out.balance)}."
        return _ok(Code.PAYMENT_RECEIVED, msg, {**out.model_dump(), "label": f"L{out.entry_id}"})

    # -------------------------
    # Reports
    # -------------------------
    def check_low_stock(self, req: LimitRequest) -> ToolResult:
        rows = self._repo.low_stock(self._store_id, limit=req.limit)
        if not rows:
            return _ok(Code.NO_LOW_STOCK, "All items are above minimum stock.", {"items": []})
        lines = "; ".join(f"{r.name}: {r.current_stock}{' ' + r.unit if r.unit else ''} (min {r.min_stock})" for r in rows)
        return _ok(Code.LOW_STOCK_FOUND, f"Low stock: {lines}.", {"items": [r.model_dump() for r in rows]})

    def suggest_reorder(self, req: LimitRequest) -> ToolResult:
        rows = self._repo.reorder_suggestions(self._store_id, limit=req.limit)
        if not rows:
            return _ok(Code.NO_REORDER_NEEDED, "No reorder needed right now. Stock is fine.", {"items": []})
        lines = "; ".join(
            f"{r.name}: order {r.suggested_qty}{' ' + r.unit if r.unit else ''} (current {r.current_stock}, min {r.min_stock})"
            for r in rows
        )
        return _ok(Code.REORDER_SUGGESTED, f"Reorder suggestions: {lines}.", {"items": [r.model_dump() for r in rows]})

    def get_daily_summary(self, req: DailySummaryRequest) -> ToolResult:
        day = None
        if req.date:
            try:
                day = date.fromisoformat(req.date.strip())
            except ValueError:
                return _fail(Code.INVALID_INPUT, f"Invalid date {req.date!r}; use YYYY-MM-DD.")
        s = self._repo.daily_summary(self._store_id, day)
        msg = (
            f"Hisaab for {s.date}: {s.sales.count} sale(s), {s.sales.total_qty} item(s), "
            f"{_rupees(s.sales.total_amount)}; {s.stock_ins} stock-in(s); {s.adjustments} adjustment(s); "
            f"new udhar {_rupees(s.new_udhar)}; payments received {_rupees(s.payments_received)}."
        )
        return _ok(Code.SUMMARY_GENERATED, msg, s.model_dump())

    def list_recent_actions(self, req: RecentActionsRequest) -> ToolResult:
        actions = self._repo.recent_actions(self._store_id, limit=req.limit)
        if not actions:
            return _ok(Code.RECENT_LISTED, "No recent actions.", {"actions": []})
        lines = "; ".join(f"{a.label} {a.description}" for a in actions)
        return _ok(Code.RECENT_LISTED, f"Recent actions: {lines}.", {"actions": [a.model_dump() for a in actions]})

    def undo_action(self, req: UndoActionRequest) -> ToolResult:
        out = self._repo.undo_action(self._store_id, req.action_type, req.action_id)
        msg = f"Undone {out.label}: {out.description}"
        if out.item_stock_after is not None:
            msg += f" Stock now {out.item_stock_after}."
        if out.party_balance_after is not None:
            msg += f" Balance now {_rupees(out.party_balance_after)}."
        return _ok(Code.ACTION_UNDONE, msg, out.model_dump())

    # -------------------------
    # Catalog admin
    # -------------------------
    def add_item(self, req: AddItemRequest) -> ToolResult:
        item = self._repo.add_item(self._store_id, req.name, unit=req.unit, min_stock=req.min_stock, aliases=req.aliases)
        return _ok(Code.ITEM_ADDED, f"Item added: {item.name} (id {item.id}, min {item.min_stock}).", item.model_dump())

    def add_item_alias(self, req: AddItemAliasRequest) -> ToolResult:
        item = self._repo.add_item_alias(self._store_id, req.item_id, req.alias)
        return _ok(Code.ALIAS_ADDED, f'"{req.alias.strip()}" now refers to {item.name}.', item.model_dump())

    def set_min_stock(self, req: SetMinStockRequest) -> ToolResult:
        item = self._repo.set_min_stock(self._store_id, req.item_id, req.min_stock)
        return _ok(Code.MIN_STOCK_SET, f"Minimum stock for {item.name} set to {item.min_stock}.", item.model_dump())


Handler = Callable[[StoreTools, Any], ToolResult]

TOOL_HANDLERS: Dict[str, Tuple[Type[ToolRequest], Handler]] = {
    "search_items": (SearchItemsRequest, StoreTools.search_items),
    "get_inventory": (GetInventoryRequest, StoreTools.get_inventory),
    "record_sale": (RecordSaleRequest, StoreTools.record_sale),
    "record_sale_batch": (RecordSaleBatchRequest, StoreTools.record_sale_batch),
    "add_stock": (AddStockRequest, StoreTools.add_stock),
    "adjust_stock": (AdjustStockRequest, StoreTools.adjust_stock),
    "lookup_party": (LookupPartyRequest, StoreTools.lookup_party),
    "list_parties": (ListPartiesRequest, StoreTools.list_parties),
    "add_debt": (LedgerRequest, StoreTools.add_debt),
    "receive_payment": (LedgerRequest, StoreTools.receive_payment),
    "check_low_stock": (LimitRequest, StoreTools.check_low_stock),
    "suggest_reorder": (LimitRequest, StoreTools.suggest_reorder),
    "get_daily_summary": (DailySummaryRequest, StoreTools.get_daily_summary),
    "list_recent_actions": (RecentActionsRequest, StoreTools.list_recent_actions),
    "undo_action": (UndoActionRequest, StoreTools.undo_action),
    "add_item": (AddItemRequest, StoreTools.add_item),
    "add_item_alias": (AddItemAliasRequest, StoreTools.add_item_alias),
    "set_min_stock": (SetMinStockRequest, StoreTools.set_min_stock),
}

TOOL_NAMES: Tuple[str, ...] = tuple(TOOL_HANDLERS)
