"""
Inverter listing and cached settings endpoints.

- ``GET /api/inverters``: every known inverter, in discovery order.
- ``POST /api/settings``: the cached settings of one inverter.  Returns
  404 for an unknown serial number, and 503 until a poll has populated
  at least one settings field.

Settings reads take the inverter lock and therefore run in the thread pool;
a read issued during a poll of the same inverter returns once that poll has
committed its values.

CHANGELOG:
- 2026-03-07: Initial creation (STORY-010)

TODO:
- None
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, ValidationError
from starlette.concurrency import run_in_threadpool

from gateway.src import settings_cache
from gateway.src.commands import find_inverter
from gateway.src.exceptions import InverterNotFoundError
from gateway.src.models import InverterSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["inverters"])


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class InverterInfo(BaseModel):
    """One inverter in the listing."""

    serialno: str


class InvertersResponse(BaseModel):
    """Response of the inverter listing."""

    inverters: list[InverterInfo]
    count: int


class SettingsRequest(BaseModel):
    """Body of a settings request."""

    model_config = ConfigDict(extra="ignore")

    serialno: str


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/inverters", response_model=InvertersResponse)
async def list_inverters(request: Request) -> InvertersResponse:
    """List all known inverters in stable discovery order."""
    inverters = [InverterInfo(serialno=inv.serial_no) for inv in request.app.state.inverters]
    return InvertersResponse(inverters=inverters, count=len(inverters))


@router.post("/settings")
async def get_current_settings(request: Request) -> dict:
    """Return the cached settings snapshot for one inverter.

    Raises:
        HTTPException: 400 for a malformed body, 404 for an unknown serial
            number, 503 if no settings have been collected yet.
    """
    body = await request.body()
    try:
        payload = SettingsRequest.model_validate_json(body)
    except ValidationError:
        logger.error("Failed to decode settings request body")
        raise HTTPException(status_code=400, detail="Invalid JSON body") from None

    logger.info("Retrieving current settings for inverter with serialno '%s'", payload.serialno)

    try:
        inv = find_inverter(request.app.state.inverters, payload.serialno)
    except InverterNotFoundError as exc:
        logger.error("%s", exc)
        raise HTTPException(status_code=404, detail=str(exc)) from None

    settings: InverterSettings | None = await run_in_threadpool(settings_cache.read, inv)
    if settings is None:
        logger.error(
            "Current settings not available for %s (may not have been collected yet)",
            inv.serial_no,
        )
        raise HTTPException(
            status_code=503,
            detail="Current settings not available - please wait for next metrics "
            "collection cycle",
        )

    return {
        "serialno": inv.serial_no,
        "settings": settings.model_dump(mode="json", by_alias=True),
    }
