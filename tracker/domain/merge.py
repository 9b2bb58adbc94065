"""
Merge decisions for offline-originated writes.

An incoming item is resolved against existing rows with a two-tier key:
first the client-generated client_id, then the semantic content key. The
resolver only decides; the application layer applies the decision.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Insert:
    item: Any


@dataclass(frozen=True)
class MergeInto:
    existing_id: int


@dataclass(frozen=True)
class NoOp:
    existing_id: int


def resolve(item, replayed_id=None, semantic_match_id=None):
    """
    Decide what an incoming item should do.

    replayed_id is the row already carrying the item's client_id;
    semantic_match_id is a row with the same semantic key and a different
    client_id. Entities without an aggregate counter always pass None for
    the latter.
    """
    if replayed_id is not None:
        return NoOp(replayed_id)
    if semantic_match_id is not None:
        return MergeInto(semantic_match_id)
    return Insert(item)


def normalize_client_id(client_id) -> Optional[str]:
    if client_id is None:
        return None
    client_id = str(client_id).strip()
    return client_id or None


def vote_semantic_key(village_id, required_infrastructure):
    return (int(village_id), " ".join(str(required_infrastructure).split()))
