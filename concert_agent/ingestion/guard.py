"""Deletion guard: never reintroduce events an operator removed."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable

from concert_agent.core.keys import NaturalKey
from concert_agent.core.schema import EventCandidate

logger = logging.getLogger(__name__)


def exclude_deleted(
    candidates: Iterable[EventCandidate],
    deletion_keys: Collection[NaturalKey],
) -> list[EventCandidate]:
    """
    Drop candidates whose natural key is in the deletion set.

    Must run after deduplication and before persistence. Keys are compared
    with the same normalization the deduplicator uses.
    """
    kept = []
    for candidate in candidates:
        if candidate.key in deletion_keys:
            logger.info(f"Skipping deleted event: {candidate.artist} @ {candidate.venue} ({candidate.key.date})")
            continue
        kept.append(candidate)
    return kept
