"""Scrape trigger routes."""

import json
import logging
import os
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from concert_agent import __version__
from concert_agent.core.enums import BatchState
from concert_agent.core.schema import ScrapeTriggerRequest, ScrapeTriggerResponse
from concert_agent.ingestion.registry import get_default_registry
from concert_agent.ingestion.runner import open_scheduler
from concert_agent.ingestion.scheduler import BatchScheduler
from concert_agent.services.extraction import MissingCredentialsError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["scrape"])

SchedulerOpener = Callable[..., AbstractAsyncContextManager[BatchScheduler]]


def get_scheduler_opener() -> SchedulerOpener:
    """Dependency returning the scheduler factory (overridden in tests)."""
    return open_scheduler


def _failure(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


async def _parse_trigger(request: Request) -> ScrapeTriggerRequest:
    """
    Parse the trigger body.

    An empty body means "start from batch 1 and chain".

    Raises:
        ValueError: If the body is not a JSON object.
        ValidationError: If the fields are invalid.
    """
    body = await request.body()
    if not body.strip():
        return ScrapeTriggerRequest(batch=1, page=1, chain=True)
    payload = json.loads(body)
    if not isinstance(payload, dict):
        raise ValueError("trigger payload must be a JSON object")
    return ScrapeTriggerRequest.model_validate(payload)


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness check."""
    return {"status": "ok", "version": __version__}


@router.get("/batches")
async def list_batches() -> dict[str, Any]:
    """The numbered batch plan and the tasks each batch runs."""
    registry = get_default_registry()
    return {
        "totalBatches": registry.total_batches,
        "batches": [
            {
                "batch": descriptor.number,
                "tasks": [{"name": t.name, "url": t.url, "discover": t.discover} for t in descriptor.tasks],
            }
            for descriptor in registry.plan()
        ],
    }


@router.post("/scrape")
async def trigger_scrape(
    request: Request,
    opener: Annotated[SchedulerOpener, Depends(get_scheduler_opener)],
) -> JSONResponse:
    """
    Run one batch and return its summary.

    Body: ``{"batch"?: int, "page"?: int, "chain"?: bool}``. Partial scraping
    shortfalls still return 200; only run-level failures do not.
    """
    expected_token = os.environ.get("SCRAPE_TRIGGER_TOKEN")
    if expected_token and request.headers.get("authorization") != f"Bearer {expected_token}":
        return _failure(401, "invalid trigger token")

    try:
        trigger = await _parse_trigger(request)
    except ValidationError as e:
        return _failure(422, "invalid trigger payload", errors=json.loads(e.json()))
    except ValueError as e:
        return _failure(400, f"malformed trigger payload: {e}")

    registry = get_default_registry()
    batch = trigger.batch or 1
    page = trigger.page or 1
    chain = bool(trigger.chain)
    if batch > registry.total_batches:
        return _failure(
            422,
            f"batch {batch} out of range 1..{registry.total_batches}",
            totalBatches=registry.total_batches,
        )

    dispatcher = getattr(request.app.state, "chain_dispatcher", None)
    try:
        async with opener(registry=registry, dispatcher=dispatcher) as scheduler:
            report = await scheduler.run(batch, page=page, chain=chain)
    except MissingCredentialsError as e:
        logger.error(str(e))
        return _failure(500, str(e))

    response = ScrapeTriggerResponse(
        success=report.success,
        message=report.message,
        batch=report.batch,
        total_batches=report.total_batches,
        chain=chain,
        found=report.found,
        persisted=report.persisted,
        elapsed=round(report.elapsed, 2),
        stop_reason=report.stop_reason,
    )
    status_code = 502 if report.state == BatchState.FAILED else 200
    return JSONResponse(status_code=status_code, content=response.model_dump(by_alias=True))
