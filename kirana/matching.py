# kirana/matching.py
"""
Ranking of free-text queries against a store's items or ledger parties.

Pure functions over rows already loaded for one store: no I/O, deterministic,
ties keep catalog order (sorted() is stable).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, Optional, Sequence, TypeVar

from kirana.models import Item, Party

T = TypeVar("T")

ITEM_EXACT_NAME = 100
ITEM_EXACT_ALIAS = 90
ITEM_NAME_PREFIX = 70
ITEM_ALIAS_PREFIX = 60
ITEM_NAME_CONTAINS = 40
ITEM_ALIAS_CONTAINS = 30

PARTY_EXACT_NAME = 100
PARTY_NAME_PREFIX = 70
PARTY_QUERY_PREFIX = 50  # "ramesh ji" -> "Ramesh"
PARTY_NAME_CONTAINS = 40
PARTY_QUERY_CONTAINS = 20


@dataclass(frozen=True)
class Match(Generic[T]):
    row: T
    score: int


def _norm(s: str) -> str:
    return s.strip().casefold()


def score_item(query: str, item: Item) -> int:
    q = _norm(query)
    if not q:
        return 0
    name = _norm(item.name)
    aliases = [_norm(a) for a in item.aliases]

    if name == q:
        return ITEM_EXACT_NAME
    if q in aliases:
        return ITEM_EXACT_ALIAS
    if name.startswith(q):
        return ITEM_NAME_PREFIX
    if any(a.startswith(q) for a in aliases):
        return ITEM_ALIAS_PREFIX
    if q in name:
        return ITEM_NAME_CONTAINS
    if any(q in a for a in aliases):
        return ITEM_ALIAS_CONTAINS
    return 0


def score_party(query: str, party: Party) -> int:
    q = _norm(query)
    name = _norm(party.name)
    if not q or not name:
        return 0

    if name == q:
        return PARTY_EXACT_NAME
    if name.startswith(q):
        return PARTY_NAME_PREFIX
    if q.startswith(name):
        return PARTY_QUERY_PREFIX
    if q in name:
        return PARTY_NAME_CONTAINS
    if name in q:
        return PARTY_QUERY_CONTAINS
    return 0


def rank_items(query: str, items: Sequence[Item], limit: int = 5) -> List[Match[Item]]:
    scored = [Match(row=i, score=score_item(query, i)) for i in items]
    ranked = sorted((m for m in scored if m.score > 0), key=lambda m: m.score, reverse=True)
    return ranked[:limit]


def rank_parties(query: str, parties: Sequence[Party], limit: int = 5) -> List[Match[Party]]:
    scored = [Match(row=p, score=score_party(query, p)) for p in parties]
    ranked = sorted((m for m in scored if m.score > 0), key=lambda m: m.score, reverse=True)
    return ranked[:limit]


def pick_unique(matches: Sequence[Match[T]], exact_score: int) -> Optional[Match[T]]:
    """
    Apply the disambiguation gate to a ranked list.

    Returns the single usable match, or None when the list is empty or when
    several candidates came back and the best one is not exact. Callers
    distinguish the two by checking whether `matches` is empty.
    """
    if not matches:
        return None
    if len(matches) == 1:
        return matches[0]
    top = matches[0]
    if top.score >= exact_score:
        return top
    return None
