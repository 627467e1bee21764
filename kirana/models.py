# kirana/models.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Literal, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, conint, condecimal, field_validator


# ---------- Shared ----------
Qty = conint(gt=0)  # type: ignore[valid-type]
Money = condecimal(ge=0)  # type: ignore[valid-type]
Amount = condecimal(gt=0)  # type: ignore[valid-type]

ActionType = Literal["transaction", "ledger"]

DEFAULT_MIN_STOCK = 5


class Code:
    """Stable outcome tags carried in ToolResult.code."""

    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"
    INVENTORY_LISTED = "INVENTORY_LISTED"
    NO_ITEMS = "NO_ITEMS"
    SALE_RECORDED = "SALE_RECORDED"
    SALE_FAILED = "SALE_FAILED"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    STOCK_ADDED = "STOCK_ADDED"
    ITEM_CREATED_AND_STOCKED = "ITEM_CREATED_AND_STOCKED"
    STOCK_ADJUSTED = "STOCK_ADJUSTED"
    AMBIGUOUS_MATCH = "AMBIGUOUS_MATCH"
    PARTY_FOUND = "PARTY_FOUND"
    PARTY_NOT_FOUND = "PARTY_NOT_FOUND"
    PARTIES_LISTED = "PARTIES_LISTED"
    NO_PARTIES = "NO_PARTIES"
    DEBT_ADDED = "DEBT_ADDED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    LOW_STOCK_FOUND = "LOW_STOCK_FOUND"
    NO_LOW_STOCK = "NO_LOW_STOCK"
    REORDER_SUGGESTED = "REORDER_SUGGESTED"
    NO_REORDER_NEEDED = "NO_REORDER_NEEDED"
    SUMMARY_GENERATED = "SUMMARY_GENERATED"
    RECENT_LISTED = "RECENT_LISTED"
    ACTION_UNDONE = "ACTION_UNDONE"
    UNDO_FAILED = "UNDO_FAILED"
    ITEM_ADDED = "ITEM_ADDED"
    ITEM_EXISTS = "ITEM_EXISTS"
    ALIAS_ADDED = "ALIAS_ADDED"
    ALIAS_EXISTS = "ALIAS_EXISTS"
    MIN_STOCK_SET = "MIN_STOCK_SET"
    INVALID_INPUT = "INVALID_INPUT"
    UNKNOWN_TOOL = "UNKNOWN_TOOL"


# ---------- Envelope ----------
class ToolResult(BaseModel):
    ok: bool
    code: str
    message: str
    data: Optional[Dict[str, Any]] = None

    def payload(self) -> Dict[str, Any]:
        """JSON-safe dict (decimals become strings) for the planner."""
        return self.model_dump(mode="json", exclude_none=True)


# ---------- Rows ----------
class Item(BaseModel):
    id: int
    name: str
    aliases: List[str] = Field(default_factory=list)
    unit: Optional[str] = None
    current_stock: int
    min_stock: int = DEFAULT_MIN_STOCK
    last_cost_price: Optional[Decimal] = None


class Party(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None


class PartyBalance(Party):
    balance: Decimal = Decimal("0")


class LedgerEntry(BaseModel):
    id: int
    party_id: int
    delta_amount: Decimal
    note: Optional[str] = None
    ts: str


# ---------- Requests (one per tool; store id is never a field) ----------
class ToolRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SearchItemsRequest(ToolRequest):
    query: str = Field(..., min_length=1, description="Item name or alias")
    limit: conint(gt=0, le=20) = 5  # type: ignore[valid-type]


class GetInventoryRequest(ToolRequest):
    pass


class RecordSaleRequest(ToolRequest):
    item_id: int
    qty: Qty
    price: Optional[Money] = Field(default=None, description="Total sale price, or null")


class SaleLine(ToolRequest):
    item_id: int
    qty: Qty
    price: Optional[Money] = None


class RecordSaleBatchRequest(ToolRequest):
    items: List[SaleLine] = Field(..., min_length=1)


class AddStockRequest(ToolRequest):
    item_id: Optional[int] = None
    name: str = Field(..., min_length=1)
    qty: Qty
    unit: Optional[str] = None
    cost_per_unit: Optional[Money] = None


class AdjustStockRequest(ToolRequest):
    item_id: int
    qty: int
    reason: str = Field(..., min_length=1)

    @field_validator("qty")
    @classmethod
    def _non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("qty must be non-zero")
        return v


class LookupPartyRequest(ToolRequest):
    name: str = Field(..., min_length=1)


class ListPartiesRequest(ToolRequest):
    pass


class LedgerRequest(ToolRequest):
    party_name: str = Field(..., min_length=1)
    amount: Amount
    note: Optional[str] = None


class LimitRequest(ToolRequest):
    limit: conint(gt=0, le=50) = 20  # type: ignore[valid-type]


class DailySummaryRequest(ToolRequest):
    date: Optional[str] = Field(default=None, description="YYYY-MM-DD, or null for today")


class RecentActionsRequest(ToolRequest):
    limit: conint(gt=0, le=50) = 10  # type: ignore[valid-type]


class UndoActionRequest(ToolRequest):
    action_type: ActionType
    action_id: int

    @field_validator("action_type", mode="before")
    @classmethod
    def _lower(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class AddItemRequest(ToolRequest):
    name: str = Field(..., min_length=1)
    unit: Optional[str] = None
    min_stock: conint(ge=0) = DEFAULT_MIN_STOCK  # type: ignore[valid-type]
    aliases: List[str] = Field(default_factory=list)


class AddItemAliasRequest(ToolRequest):
    item_id: int
    alias: str = Field(..., min_length=1)


class SetMinStockRequest(ToolRequest):
    item_id: int
    min_stock: conint(ge=0)  # type: ignore[valid-type]


# ---------- Repository responses ----------
class SaleResponse(BaseModel):
    transaction_id: int
    item_id: int
    item_name: str
    qty: int
    price: Optional[Decimal] = None
    stock_before: int
    stock_after: int
    low_stock_warning: Optional[str] = None


class SaleFailure(BaseModel):
    item_id: int
    qty: int
    code: str
    message: str


class BatchSaleResponse(BaseModel):
    recorded: List[SaleResponse]
    failed: List[SaleFailure]


class StockInResponse(BaseModel):
    transaction_id: int
    item_id: int
    item_name: str
    qty: int
    created: bool
    stock_before: int
    stock_after: int
    total_cost: Optional[Decimal] = None


class AdjustResponse(BaseModel):
    transaction_id: int
    item_id: int
    item_name: str
    qty: int
    reason: str
    stock_before: int
    stock_after: int


class LedgerResponse(BaseModel):
    entry_id: int
    party_id: int
    party_name: str
    party_created: bool = False
    delta_amount: Decimal
    balance: Decimal
    store_owes_customer: bool = False


class PartyDetail(BaseModel):
    party: PartyBalance
    recent_entries: List[LedgerEntry]


class LowStockItem(BaseModel):
    id: int
    name: str
    unit: Optional[str] = None
    current_stock: int
    min_stock: int
    shortfall: int


class ReorderSuggestion(LowStockItem):
    suggested_qty: int


class SalesTotals(BaseModel):
    count: int = 0
    total_qty: int = 0
    total_amount: Decimal = Decimal("0")


class DailySummary(BaseModel):
    date: str
    utc_offset_minutes: int
    sales: SalesTotals
    stock_ins: int = 0
    adjustments: int = 0
    new_udhar: Decimal = Decimal("0")
    payments_received: Decimal = Decimal("0")


class RecentAction(BaseModel):
    label: str
    action_type: ActionType
    action_id: int
    kind: str
    ts: str
    description: str
    qty: Optional[int] = None
    amount: Optional[Decimal] = None


class UndoResponse(BaseModel):
    label: str
    action_type: ActionType
    action_id: int
    description: str
    item_stock_after: Optional[int] = None
    party_balance_after: Optional[Decimal] = None
