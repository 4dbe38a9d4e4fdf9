"""
Runner Module
=============

Wires a BatchScheduler from configuration and environment for the three
entry points (web trigger, CLI, arq worker).
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from concert_agent.core.enums import ChainTriggerKind
from concert_agent.ingestion.chaining import (
    ArqChainTrigger,
    ChainDispatcher,
    ChainTrigger,
    WebhookChainTrigger,
)
from concert_agent.ingestion.enricher import ImageEnricher
from concert_agent.ingestion.extractor import PageExtractor
from concert_agent.ingestion.normalizer import QualityFilter
from concert_agent.ingestion.persistence import PersistenceGateway, SqlPersistenceGateway
from concert_agent.ingestion.registry import SourceRegistry, get_default_registry
from concert_agent.ingestion.rules import QualityRules, get_default_rules
from concert_agent.ingestion.scheduler import BatchScheduler
from concert_agent.services.extraction import ExtractionBackend, get_extraction_backend

logger = logging.getLogger(__name__)


def build_chain_trigger(registry: SourceRegistry) -> ChainTrigger | None:
    """Chain trigger selected by the chaining config, or None if unusable."""
    config = registry.chain_config
    if config.trigger == ChainTriggerKind.ARQ:
        return ArqChainTrigger()
    if not config.webhook_url:
        logger.warning("Webhook chaining selected but SCRAPE_TRIGGER_URL is not set")
        return None
    return WebhookChainTrigger(config.webhook_url, token=os.environ.get("SCRAPE_TRIGGER_TOKEN"))


def build_chain_dispatcher(registry: SourceRegistry | None = None) -> ChainDispatcher | None:
    """ChainDispatcher for the configured trigger, or None if chaining is off."""
    registry = registry or get_default_registry()
    config = registry.chain_config
    if not config.enabled:
        return None
    trigger = build_chain_trigger(registry)
    if trigger is None:
        return None
    return ChainDispatcher(
        trigger,
        max_attempts=config.max_attempts,
        backoff_seconds=config.backoff_seconds,
    )


@asynccontextmanager
async def open_scheduler(
    registry: SourceRegistry | None = None,
    rules: QualityRules | None = None,
    gateway: PersistenceGateway | None = None,
    backend: ExtractionBackend | None = None,
    dispatcher: ChainDispatcher | None = None,
    enrich_images: bool = True,
) -> AsyncIterator[BatchScheduler]:
    """
    Build a BatchScheduler and close its network clients afterwards.

    Raises:
        MissingCredentialsError: If no backend is given and the configured
            one has no API key.
    """
    registry = registry or get_default_registry()
    rules = rules or get_default_rules()
    config = registry.global_config
    owns_backend = backend is None
    backend = backend or get_extraction_backend(
        user_agent=config.user_agent, timeout=config.request_timeout
    )

    async with httpx.AsyncClient(timeout=15.0) as artwork_client:
        enricher = None
        if enrich_images:
            enricher = ImageEnricher.with_default_chain(
                artwork_client,
                config.user_agent,
                interval_seconds=config.image_lookup_interval_seconds,
            )
        scheduler = BatchScheduler(
            registry=registry,
            extractor=PageExtractor(backend, config),
            quality_filter=QualityFilter(rules, registry.city_specific_sources()),
            gateway=gateway or SqlPersistenceGateway(),
            enricher=enricher,
            dispatcher=dispatcher,
        )
        try:
            yield scheduler
        finally:
            if owns_backend:
                await backend.aclose()
