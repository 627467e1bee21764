# Overview: Pytest coverage for tool dispatch: envelopes, validation, store binding.

import json
from decimal import Decimal

import pytest

from kirana.models import Code, ToolResult
from kirana.tools import TOOL_HANDLERS, TOOL_NAMES, _rupees


class TestDispatch:

    def test_unknown_tool(self, tools_a):
        res = tools_a.dispatch("delete_store", {})
        assert res.ok is False
        assert res.code == Code.UNKNOWN_TOOL
        assert "record_sale" in res.data["tools"]

    def test_store_id_argument_is_rejected(self, repo, tools_a, store_a, store_b, maggi):
        res = tools_a.dispatch("record_sale", {"item_id": maggi.id, "qty": 1, "store_id": store_b})
        assert res.ok is False
        assert res.code == Code.INVALID_INPUT
        assert repo.get_item(store_a, maggi.id).current_stock == 24

    @pytest.mark.parametrize(
        "name,args",
        [
            ("record_sale", {"item_id": 1, "qty": 0}),
            ("record_sale", {"item_id": 1, "qty": -2}),
            ("record_sale", {"item_id": 1}),
            ("adjust_stock", {"item_id": 1, "qty": 0, "reason": "count"}),
            ("add_debt", {"party_name": "Ramesh", "amount": 0}),
            ("receive_payment", {"party_name": "Ramesh", "amount": -5}),
            ("record_sale_batch", {"items": []}),
            ("undo_action", {"action_type": "sale", "action_id": 1}),
            ("set_min_stock", {"item_id": 1, "min_stock": -1}),
        ],
    )
    def test_bad_arguments_become_invalid_input(self, tools_a, name, args):
        res = tools_a.dispatch(name, args)
        assert res.ok is False
        assert res.code == Code.INVALID_INPUT
        assert res.data["errors"]

    def test_every_result_is_json_safe(self, tools_a, maggi):
        tools_a.dispatch("add_debt", {"party_name": "Ramesh", "amount": 450.5})
        for name, args in [
            ("search_items", {"query": "maggi"}),
            ("get_inventory", {}),
            ("record_sale", {"item_id": maggi.id, "qty": 2, "price": 28}),
            ("lookup_party", {"name": "Ramesh"}),
            ("list_parties", {}),
            ("get_daily_summary", {}),
            ("list_recent_actions", {}),
            ("suggest_reorder", {}),
        ]:
            res = tools_a.dispatch(name, args)
            assert isinstance(res, ToolResult)
            assert res.ok, (name, res.message)
            json.dumps(res.payload())

    def test_handler_table_is_closed(self):
        assert set(TOOL_NAMES) == set(TOOL_HANDLERS)
        assert len(TOOL_NAMES) == 18


class TestCatalogTools:

    def test_search_exact(self, tools_a, maggi):
        res = tools_a.dispatch("search_items", {"query": "Maagi"})
        assert res.code == Code.FOUND
        assert res.data["items"][0]["id"] == maggi.id
        assert res.data["exact"] is True
        assert res.data["needs_clarification"] is False

    def test_search_needs_clarification(self, tools_a, store_a, stock_item):
        stock_item(store_a, "Tata Salt 1kg", 3)
        stock_item(store_a, "Tata Tea Gold", 3)
        res = tools_a.dispatch("search_items", {"query": "tata"})
        assert res.ok is True
        assert res.data["needs_clarification"] is True
        assert len(res.data["items"]) == 2

    def test_search_miss(self, tools_a, maggi):
        res = tools_a.dispatch("search_items", {"query": "atta"})
        assert res.ok is False
        assert res.code == Code.NOT_FOUND

    def test_empty_inventory(self, tools_b):
        res = tools_b.dispatch("get_inventory")
        assert res.ok is False
        assert res.code == Code.NO_ITEMS

    def test_add_item_then_alias(self, tools_a):
        added = tools_a.dispatch("add_item", {"name": "Amul Milk 500ml", "min_stock": 8})
        assert added.code == Code.ITEM_ADDED
        item_id = added.data["id"]

        alias = tools_a.dispatch("add_item_alias", {"item_id": item_id, "alias": "doodh"})
        assert alias.code == Code.ALIAS_ADDED
        assert tools_a.dispatch("search_items", {"query": "doodh"}).data["items"][0]["id"] == item_id

        dup = tools_a.dispatch("add_item", {"name": "amul milk 500ml"})
        assert dup.ok is False
        assert dup.code == Code.ITEM_EXISTS


class TestStockTools:

    def test_oversell_reports_current_stock(self, tools_a, maggi):
        res = tools_a.dispatch("record_sale", {"item_id": maggi.id, "qty": 30})
        assert res.ok is False
        assert res.code == Code.INSUFFICIENT_STOCK
        assert res.data["current_stock"] == 24
        assert "24" in res.message

    def test_sale_carries_undo_label(self, tools_a, maggi):
        res = tools_a.dispatch("record_sale", {"item_id": maggi.id, "qty": 4, "price": 56})
        assert res.code == Code.SALE_RECORDED
        assert res.data["label"] == f"T{res.data['transaction_id']}"
        assert res.data["stock_after"] == 20

    def test_add_stock_creates_item(self, tools_a):
        res = tools_a.dispatch("add_stock", {"name": "Milk", "qty": 10})
        assert res.ok is True
        assert res.code == Code.ITEM_CREATED_AND_STOCKED
        assert res.data["stock_after"] == 10

    def test_add_stock_ambiguous(self, tools_a, store_a, stock_item):
        stock_item(store_a, "Tata Salt 1kg", 3)
        stock_item(store_a, "Tata Tea Gold", 3)
        res = tools_a.dispatch("add_stock", {"name": "tata", "qty": 5})
        assert res.ok is False
        assert res.code == Code.AMBIGUOUS_MATCH
        assert len(res.data["candidates"]) == 2

    def test_batch_partial(self, tools_a, maggi):
        res = tools_a.dispatch(
            "record_sale_batch",
            {"items": [{"item_id": maggi.id, "qty": 2}, {"item_id": maggi.id, "qty": 100}]},
        )
        assert res.ok is True
        assert res.data["partial"] is True
        assert [f["code"] for f in res.data["failed"]] == [Code.INSUFFICIENT_STOCK]

    def test_batch_all_failed(self, tools_a, maggi):
        res = tools_a.dispatch("record_sale_batch", {"items": [{"item_id": maggi.id, "qty": 100}]})
        assert res.ok is False
        assert res.code == Code.SALE_FAILED

    def test_other_store_item_is_invisible(self, tools_b, maggi):
        res = tools_b.dispatch("record_sale", {"item_id": maggi.id, "qty": 1})
        assert res.ok is False
        assert res.code == Code.ITEM_NOT_FOUND

    def test_no_low_stock_is_ok(self, tools_a, maggi):
        for name, code in [("check_low_stock", Code.NO_LOW_STOCK), ("suggest_reorder", Code.NO_REORDER_NEEDED)]:
            res = tools_a.dispatch(name, {})
            assert res.ok is True
            assert res.code == code
            assert res.data["items"] == []

    def test_low_stock_listed(self, tools_a, store_a, stock_item):
        stock_item(store_a, "Britannia Bread", 2)
        res = tools_a.dispatch("suggest_reorder", {"limit": 5})
        assert res.code == Code.REORDER_SUGGESTED
        assert res.data["items"][0]["suggested_qty"] == 8


class TestLedgerTools:

    def test_debt_then_payment_messages(self, tools_a):
        debt = tools_a.dispatch("add_debt", {"party_name": "Ramesh", "amount": 450})
        assert debt.code == Code.DEBT_ADDED
        assert "New customer" in debt.message
        assert debt.data["label"] == f"L{debt.data['entry_id']}"

        pay = tools_a.dispatch("receive_payment", {"party_name": "Ramesh", "amount": 200})
        assert pay.code == Code.PAYMENT_RECEIVED
        assert "₹250" in pay.message
        assert pay.payload()["data"]["balance"] == "250"

    def test_payment_unknown_party(self, tools_a):
        res = tools_a.dispatch("receive_payment", {"party_name": "Mahesh", "amount": 10})
        assert res.ok is False
        assert res.code == Code.PARTY_NOT_FOUND

    def test_list_parties(self, tools_a, tools_b):
        assert tools_a.dispatch("list_parties").code == Code.NO_PARTIES
        tools_a.dispatch("add_debt", {"party_name": "Ramesh", "amount": 450})
        tools_a.dispatch("add_debt", {"party_name": "Sunita Devi", "amount": 1200})
        res = tools_a.dispatch("list_parties")
        assert res.code == Code.PARTIES_LISTED
        assert res.data["total_outstanding"] == Decimal("1650")
        assert "₹1,650" in res.message
        assert tools_b.dispatch("list_parties").code == Code.NO_PARTIES


class TestHistoryTools:

    def test_invalid_summary_date(self, tools_a):
        res = tools_a.dispatch("get_daily_summary", {"date": "18/10/2026"})
        assert res.ok is False
        assert res.code == Code.INVALID_INPUT

    def test_summary_for_date(self, tools_a, maggi):
        res = tools_a.dispatch("get_daily_summary", {"date": "2026-10-18"})
        assert res.code == Code.SUMMARY_GENERATED
        assert res.data["stock_ins"] == 1

    def test_summary_message_counts_adjustments(self, tools_a, maggi):
        tools_a.dispatch("adjust_stock", {"item_id": maggi.id, "qty": -2, "reason": "damaged"})
        res = tools_a.dispatch("get_daily_summary", {})
        assert res.data["adjustments"] == 1
        assert "1 adjustment(s)" in res.message

    def test_undo_via_recent_label(self, repo, tools_a, store_a, maggi):
        sale = tools_a.dispatch("record_sale", {"item_id": maggi.id, "qty": 4})
        recent = tools_a.dispatch("list_recent_actions", {"limit": 3})
        top = recent.data["actions"][0]
        assert top["label"] == sale.data["label"]

        res = tools_a.dispatch("undo_action", {"action_type": "Transaction", "action_id": top["action_id"]})
        assert res.code == Code.ACTION_UNDONE
        assert repo.get_item(store_a, maggi.id).current_stock == 24

        again = tools_a.dispatch("undo_action", {"action_type": "transaction", "action_id": top["action_id"]})
        assert again.ok is False
        assert again.code == Code.NOT_FOUND


@pytest.mark.parametrize(
    "amount,expected",
    [(Decimal("250"), "₹250"), (Decimal("1200.5"), "₹1,200.50"), (Decimal("-30"), "₹-30"), (None, "₹?")],
)
def test_rupee_formatting(amount, expected):
    assert _rupees(amount) == expected
