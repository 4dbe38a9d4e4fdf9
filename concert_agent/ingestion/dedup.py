"""
Deduplicator Module
===================

Collapses candidates to one per natural key.

When two candidates share a key the one with the higher completeness score
wins (first seen on a tie), but the merge is strictly additive: a ticket
URL, image URL or on-sale date held by either side is never lost.
"""

from __future__ import annotations

from collections.abc import Iterable

from concert_agent.core.keys import NaturalKey
from concert_agent.core.schema import EventCandidate


def completeness_score(candidate: EventCandidate) -> int:
    """2 for a ticket URL, 1 for an image, 1 if tickets are on sale."""
    return (
        2 * bool(candidate.ticket_url)
        + bool(candidate.image_url)
        + bool(candidate.tickets_available)
    )


def merge_candidates(existing: EventCandidate, incoming: EventCandidate) -> EventCandidate:
    """
    Merge two candidates sharing a natural key.

    Args:
        existing: The candidate already kept (wins ties).
        incoming: The newly seen candidate.

    Returns:
        The winner, with empty fields filled from the loser.
    """
    if completeness_score(incoming) > completeness_score(existing):
        winner, loser = incoming, existing
    else:
        winner, loser = existing, incoming

    updates = {}
    for name in ("ticket_url", "image_url", "ticket_sale_date"):
        if getattr(winner, name) is None and getattr(loser, name) is not None:
            updates[name] = getattr(loser, name)
    if loser.tickets_available and not winner.tickets_available:
        updates["tickets_available"] = True

    return winner.model_copy(update=updates) if updates else winner


def deduplicate(candidates: Iterable[EventCandidate]) -> list[EventCandidate]:
    """
    One candidate per natural key.

    Output order follows the first appearance of each key.
    """
    seen: dict[NaturalKey, EventCandidate] = {}
    for candidate in candidates:
        key = candidate.key
        existing = seen.get(key)
        seen[key] = candidate if existing is None else merge_candidates(existing, candidate)
    return list(seen.values())
