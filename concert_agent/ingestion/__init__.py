"""
Concert Agent Ingestion Engine
==============================

This package runs the numbered scrape batches that keep the concert and
comedy listings current.

Pipeline Stages:
1. Plan - The registry expands sources into numbered batches of tasks
2. Extract - Each page is turned into event candidates (retry, quota breaker)
3. Filter - Venue aliases, city check, ticket URL validation
4. Dedup - Candidates sharing a natural key are merged
5. Guard - Operator-deleted events are never re-added
6. Enrich - Concerts without artwork get one from public metadata services
7. Persist - Upsert on (artist, venue, date), then chain the next batch

The scheduler, runner and job modules are imported directly by their
entry points.
"""

from concert_agent.ingestion.context import RunContext, RunCounters
from concert_agent.ingestion.dedup import completeness_score, deduplicate, merge_candidates
from concert_agent.ingestion.guard import exclude_deleted
from concert_agent.ingestion.normalizer import QualityFilter
from concert_agent.ingestion.registry import (
    BatchDescriptor,
    GlobalConfig,
    ScrapeTask,
    SourceConfig,
    SourceRegistry,
    get_default_registry,
)
from concert_agent.ingestion.rules import QualityRules, VenueAliasTable, get_default_rules
from concert_agent.ingestion.throttle import TokenBucket

__all__ = [
    # Registry
    "BatchDescriptor",
    "GlobalConfig",
    "ScrapeTask",
    "SourceConfig",
    "SourceRegistry",
    "get_default_registry",
    # Rules
    "QualityRules",
    "VenueAliasTable",
    "get_default_rules",
    # Run state
    "RunContext",
    "RunCounters",
    # Stages
    "QualityFilter",
    "completeness_score",
    "deduplicate",
    "merge_candidates",
    "exclude_deleted",
    "TokenBucket",
]
