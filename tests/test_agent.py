# Overview: Pytest coverage for the agent turn loop with a scripted planner.

import sqlite3

import httpx
import pytest
from google.genai import types

from kirana.agent import (
    APOLOGY_REPLY,
    FALLBACK_REPLY,
    PLANNER_DOWN_REPLY,
    StoreAgent,
    _gemini_tool_declarations,
    is_quota_error,
)
from kirana.models import Code
from kirana.tools import TOOL_NAMES


def _call(name, **args):
    return types.Part(function_call=types.FunctionCall(name=name, args=args))


def _reply(*parts):
    return types.GenerateContentResponse(
        candidates=[types.Candidate(content=types.Content(role="model", parts=list(parts)))]
    )


def _text(text):
    return _reply(types.Part(text=text))


class ScriptedPlanner:
    """Returns canned responses in order and keeps a copy of what it was sent."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.seen = []

    def generate(self, contents):
        self.seen.append(list(contents))
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def _function_responses(contents):
    return [p.function_response for c in contents for p in (c.parts or []) if p.function_response]


class TestTurnLoop:

    def test_tool_call_then_text(self, repo, store_a, maggi):
        planner = ScriptedPlanner(
            _reply(_call("record_sale", item_id=maggi.id, qty=4)),
            _text("Sold 4 Maggi. Stock: 24 → 20."),
        )
        agent = StoreAgent(repo, planner=planner)

        reply = agent.run_turn("4 maggi becha", store_id=store_a)

        assert reply == "Sold 4 Maggi. Stock: 24 → 20."
        assert repo.get_item(store_a, maggi.id).current_stock == 20
        assert len(planner.seen) == 2
        assert planner.seen[0][0].parts[0].text == "4 maggi becha"

    def test_failure_is_fed_back_to_planner(self, repo, store_a, maggi):
        planner = ScriptedPlanner(
            _reply(_call("record_sale", item_id=maggi.id, qty=30)),
            _text("Only 24 Maggi in stock."),
        )
        reply = StoreAgent(repo, planner=planner).run_turn("30 maggi", store_id=store_a)

        assert reply == "Only 24 Maggi in stock."
        second = planner.seen[1]
        assert [c.role for c in second] == ["user", "model", "user"]
        (fr,) = _function_responses(second)
        assert fr.name == "record_sale"
        assert fr.response["ok"] is False
        assert fr.response["code"] == Code.INSUFFICIENT_STOCK
        assert repo.get_item(store_a, maggi.id).current_stock == 24

    def test_several_calls_in_one_step(self, repo, store_a, maggi):
        planner = ScriptedPlanner(
            _reply(
                _call("add_debt", party_name="Ramesh", amount=450),
                _call("receive_payment", party_name="Ramesh", amount=200),
            ),
            _text("Ramesh owes ₹250."),
        )
        reply = StoreAgent(repo, planner=planner).run_turn("ramesh udhar", store_id=store_a)
        assert reply == "Ramesh owes ₹250."
        codes = [fr.response["code"] for fr in _function_responses(planner.seen[1])]
        assert codes == [Code.DEBT_ADDED, Code.PAYMENT_RECEIVED]

    def test_step_cap_reports_tool_messages(self, repo, store_a, maggi):
        planner = ScriptedPlanner(_reply(_call("search_items", query="maggi")))
        reply = StoreAgent(repo, planner=planner, max_steps=3).run_turn("maggi?", store_id=store_a)

        assert len(planner.seen) == 3
        assert reply.count("Found 1 item(s)") == 3

    def test_empty_text_falls_back(self, repo, store_a):
        reply = StoreAgent(repo, planner=ScriptedPlanner(_text("   "))).run_turn("hi", store_id=store_a)
        assert reply == FALLBACK_REPLY

    def test_no_candidates_falls_back(self, repo, store_a):
        planner = ScriptedPlanner(types.GenerateContentResponse(candidates=[]))
        reply = StoreAgent(repo, planner=planner).run_turn("hi", store_id=store_a)
        assert reply == FALLBACK_REPLY
        assert len(planner.seen) == 1

    def test_unknown_tool_is_reported_not_raised(self, repo, store_a):
        planner = ScriptedPlanner(_reply(_call("drop_tables")), _text("I can't do that."))
        reply = StoreAgent(repo, planner=planner).run_turn("delete everything", store_id=store_a)
        assert reply == "I can't do that."
        (fr,) = _function_responses(planner.seen[1])
        assert fr.response["code"] == Code.UNKNOWN_TOOL

    def test_turn_is_bound_to_callers_store(self, repo, store_a, store_b, maggi):
        planner = ScriptedPlanner(
            _reply(_call("record_sale", item_id=maggi.id, qty=1, store_id=store_a)),
            _text("Could not record."),
        )
        StoreAgent(repo, planner=planner).run_turn("1 maggi", store_id=store_b)
        (fr,) = _function_responses(planner.seen[1])
        assert fr.response["code"] == Code.INVALID_INPUT
        assert repo.get_item(store_a, maggi.id).current_stock == 24


class TestFailures:

    def test_persistence_error_apologises(self, repo, store_a, maggi, monkeypatch):
        def locked(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(repo, "record_sale", locked)
        planner = ScriptedPlanner(_reply(_call("record_sale", item_id=maggi.id, qty=1)))
        reply = StoreAgent(repo, planner=planner).run_turn("1 maggi", store_id=store_a)
        assert reply == APOLOGY_REPLY

    @pytest.mark.parametrize(
        "error",
        [ConnectionError("network down"), httpx.ConnectError("connection refused"), TimeoutError("read timed out")],
    )
    def test_unreachable_planner_still_replies(self, repo, store_a, maggi, error):
        class DownPlanner:
            def generate(self, contents):
                raise error

        reply = StoreAgent(repo, planner=DownPlanner()).run_turn("1 maggi", store_id=store_a)
        assert reply == PLANNER_DOWN_REPLY
        assert repo.get_item(store_a, maggi.id).current_stock == 24

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("429 RESOURCE_EXHAUSTED", True),
            ("You exceeded your current quota", True),
            ("Too Many Requests", True),
            ("500 INTERNAL", False),
        ],
    )
    def test_quota_detection(self, message, expected):
        assert is_quota_error(Exception(message)) is expected


def test_declarations_cover_every_tool():
    (tool,) = _gemini_tool_declarations()
    declared = [d.name for d in tool.function_declarations]
    assert sorted(declared) == sorted(TOOL_NAMES)
