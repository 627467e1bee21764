# kirana/agent.py
from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Protocol

import httpx
from google.genai import errors as genai_errors
from google.genai import types

from kirana.llm_clients import GeminiClient
from kirana.prompts import SYSTEM_INSTRUCTIONS
from kirana.store import StoreRepository
from kirana.tools import StoreTools

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 5
FALLBACK_REPLY = "Done."
APOLOGY_REPLY = "Sorry, something went wrong while updating your store. Please try again in a moment."
QUOTA_REPLY = "The assistant is busy right now (rate limit reached). Please try again in a minute."
PLANNER_DOWN_REPLY = "Sorry, I couldn't reach the assistant just now. Please try again."


class PlannerUnavailable(Exception):
    """The planner could not be reached (network or timeout)."""


class Planner(Protocol):
    def generate(self, contents: list[types.Content]) -> types.GenerateContentResponse: ...


def is_quota_error(e: Exception) -> bool:
    s = str(e).lower()
    return (
        "429" in s
        or "resource_exhausted" in s
        or "quota" in s
        or "rate limit" in s
        or "too many requests" in s
    )


def _obj(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "OBJECT", "properties": properties, "required": required}


def _gemini_tool_declarations() -> list[types.Tool]:
    # NOTE: google-genai expects uppercase "type" values.
    sale_line = _obj(
        {
            "item_id": {"type": "INTEGER"},
            "qty": {"type": "INTEGER"},
            "price": {"type": "NUMBER", "nullable": True, "description": "Total price for the line in INR, or null"},
        },
        ["item_id", "qty"],
    )
    limit = _obj({"limit": {"type": "INTEGER"}}, [])
    return [
        types.Tool(
            function_declarations=[
                types.FunctionDeclaration(
                    name="search_items",
                    description="Search the catalog by item name or alias. Use before any sale or adjustment to get item_id.",
                    parameters=_obj({"query": {"type": "STRING"}, "limit": {"type": "INTEGER"}}, ["query"]),
                ),
                types.FunctionDeclaration(
                    name="get_inventory",
                    description="List every item with its current stock.",
                ),
                types.FunctionDeclaration(
                    name="record_sale",
                    description="Record a sale of one item: decrements stock. Fails if stock is insufficient.",
                    parameters=sale_line,
                ),
                types.FunctionDeclaration(
                    name="record_sale_batch",
                    description="Record a sale of several items at once. Each line succeeds or fails on its own.",
                    parameters=_obj({"items": {"type": "ARRAY", "items": sale_line}}, ["items"]),
                ),
                types.FunctionDeclaration(
                    name="add_stock",
                    description="Add received stock. Creates the item if it is not in the catalog.",
                    parameters=_obj(
                        {
                            "item_id": {"type": "INTEGER", "nullable": True},
                            "name": {"type": "STRING"},
                            "qty": {"type": "INTEGER"},
                            "unit": {"type": "STRING", "nullable": True},
                            "cost_per_unit": {"type": "NUMBER", "nullable": True},
                        },
                        ["name", "qty"],
                    ),
                ),
                types.FunctionDeclaration(
                    name="adjust_stock",
                    description="Correct stock (damage, count mismatch). qty is signed and non-zero.",
                    parameters=_obj(
                        {"item_id": {"type": "INTEGER"}, "qty": {"type": "INTEGER"}, "reason": {"type": "STRING"}},
                        ["item_id", "qty", "reason"],
                    ),
                ),
                types.FunctionDeclaration(
                    name="lookup_party",
                    description="Look up a customer and their udhar balance.",
                    parameters=_obj({"name": {"type": "STRING"}}, ["name"]),
                ),
                types.FunctionDeclaration(
                    name="list_parties",
                    description="List all customers with their udhar balances.",
                ),
                types.FunctionDeclaration(
                    name="add_debt",
                    description="Record udhar: the customer owes the store this amount. Creates the customer if new.",
                    parameters=_obj(
                        {
                            "party_name": {"type": "STRING"},
                            "amount": {"type": "NUMBER"},
                            "note": {"type": "STRING", "nullable": True},
                        },
                        ["party_name", "amount"],
                    ),
                ),
                types.FunctionDeclaration(
                    name="receive_payment",
                    description="Record a payment from an existing customer (reduces udhar).",
                    parameters=_obj(
                        {
                            "party_name": {"type": "STRING"},
                            "amount": {"type": "NUMBER"},
                            "note": {"type": "STRING", "nullable": True},
                        },
                        ["party_name", "amount"],
                    ),
                ),
                types.FunctionDeclaration(
                    name="check_low_stock",
                    description="Items at or below their minimum stock, most critical first.",
                    parameters=limit,
                ),
                types.FunctionDeclaration(
                    name="suggest_reorder",
                    description="Reorder quantities for low-stock items.",
                    parameters=limit,
                ),
                types.FunctionDeclaration(
                    name="get_daily_summary",
                    description="Hisaab for a day: sales, stock-ins, udhar and payments. date is YYYY-MM-DD or null for today.",
                    parameters=_obj({"date": {"type": "STRING", "nullable": True}}, []),
                ),
                types.FunctionDeclaration(
                    name="list_recent_actions",
                    description="Recent sales, stock movements and ledger entries with labels (T<id>, L<id>) for undo.",
                    parameters=limit,
                ),
                types.FunctionDeclaration(
                    name="undo_action",
                    description="Undo one recent action. action_type is 'transaction' (T labels) or 'ledger' (L labels).",
                    parameters=_obj(
                        {
                            "action_type": {"type": "STRING", "enum": ["transaction", "ledger"]},
                            "action_id": {"type": "INTEGER"},
                        },
                        ["action_type", "action_id"],
                    ),
                ),
                types.FunctionDeclaration(
                    name="add_item",
                    description="Add a new catalog item with zero stock.",
                    parameters=_obj(
                        {
                            "name": {"type": "STRING"},
                            "unit": {"type": "STRING", "nullable": True},
                            "min_stock": {"type": "INTEGER"},
                            "aliases": {"type": "ARRAY", "items": {"type": "STRING"}},
                        },
                        ["name"],
                    ),
                ),
                types.FunctionDeclaration(
                    name="add_item_alias",
                    description="Teach another name for an existing item (e.g. 'doodh' for milk).",
                    parameters=_obj({"item_id": {"type": "INTEGER"}, "alias": {"type": "STRING"}}, ["item_id", "alias"]),
                ),
                types.FunctionDeclaration(
                    name="set_min_stock",
                    description="Change an item's minimum stock threshold.",
                    parameters=_obj({"item_id": {"type": "INTEGER"}, "min_stock": {"type": "INTEGER"}}, ["item_id", "min_stock"]),
                ),
            ]
        )
    ]


class StoreAgent:
    """
    Runs one user turn: the planner may call tools for up to `max_steps`
    rounds, then its text becomes the reply. Tool failures are fed back to
    the planner as normal results; nothing is retried here.
    """

    def __init__(
        self,
        repo: StoreRepository,
        planner: Optional[Planner] = None,
        gemini_model: str = "gemini-2.5-flash",
        max_steps: int = DEFAULT_MAX_STEPS,
    ):
        self.repo = repo
        self.max_steps = max_steps
        self.planner = planner or GeminiClient(
            model=gemini_model,
            tools=_gemini_tool_declarations(),
            system_instruction=SYSTEM_INSTRUCTIONS,
        )

    def run_turn(self, user_text: str, store_id: int) -> str:
        try:
            return self._run(user_text, store_id)
        except sqlite3.Error:
            logger.exception("store=%s: persistence failure during turn", store_id)
            return APOLOGY_REPLY
        except PlannerUnavailable:
            logger.exception("store=%s: planner unreachable", store_id)
            return PLANNER_DOWN_REPLY
        except genai_errors.APIError as e:
            if is_quota_error(e):
                logger.warning("store=%s: planner quota/rate limit: %s", store_id, e)
                return QUOTA_REPLY
            logger.exception("store=%s: planner call failed", store_id)
            return PLANNER_DOWN_REPLY

    def _run(self, user_text: str, store_id: int) -> str:
        tools = StoreTools(store_id, self.repo)
        contents: list[types.Content] = [types.Content(role="user", parts=[types.Part(text=user_text)])]
        tool_messages: list[str] = []

        for _ in range(self.max_steps):
            try:
                resp = self.planner.generate(contents)
            except (httpx.TransportError, ConnectionError, TimeoutError) as e:
                raise PlannerUnavailable(str(e)) from e

            cand = (resp.candidates or [None])[0]
            if cand is None or cand.content is None:
                break

            parts = cand.content.parts or []
            function_calls = []
            text_chunks = []

            for part in parts:
                if getattr(part, "text", None):
                    text_chunks.append(part.text)
                fc = getattr(part, "function_call", None)
                if fc is not None:
                    function_calls.append(fc)

            if not function_calls:
                out = "".join(text_chunks).strip()
                return out or FALLBACK_REPLY

            contents.append(cand.content)
            response_parts = []
            for fc in function_calls:
                tool_name = fc.name or ""
                tool_args = dict(fc.args or {})
                logger.info("store=%s tool call %s(%s)", store_id, tool_name, tool_args)
                result = tools.dispatch(tool_name, tool_args)
                logger.info("store=%s tool result %s: %s %s", store_id, tool_name, result.code, result.message)
                tool_messages.append(result.message)
                response_parts.append(types.Part.from_function_response(name=tool_name, response=result.payload()))
            contents.append(types.Content(role="user", parts=response_parts))
        else:
            logger.warning("store=%s: step limit (%s) reached", store_id, self.max_steps)

        # no final text from the planner: report what the tools did
        if tool_messages:
            return "\n".join(tool_messages)
        return FALLBACK_REPLY
