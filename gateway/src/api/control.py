"""
POST /api/command/{command} endpoint for inverter control.

Checks run in this order:

1. The control API must be enabled (403 otherwise, whatever the command
   or body).
2. The body must be a JSON object with ``value`` and ``serialno``
   (400 otherwise).
3. The command is dispatched in the thread pool.  It blocks on the target
   inverter's lock while a poll of that inverter is in progress.

Dispatch outcomes map to status codes as follows:

=========================  ======
outcome                    status
=========================  ======
success                    200
unknown command            400
unknown serial number      404
rejected value             422
device I/O failure         500
=========================  ======

Every dispatch outcome answers with
``{command, value, status: "success"|"error", message}``.

CHANGELOG:
- 2026-03-10: Map validation failures to 422 and device failures to 500 (STORY-014)
- 2026-03-07: Initial creation (STORY-013)

TODO:
- None
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError
from starlette.concurrency import run_in_threadpool

from gateway.src import exceptions
from gateway.src.models import Command

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["control"])


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class CommandRequest(BaseModel):
    """Body of a control command."""

    model_config = ConfigDict(extra="ignore")

    value: str
    serialno: str


class CommandResponse(BaseModel):
    """Outcome of a control command."""

    command: str
    value: str
    status: str
    message: str


_ERROR_STATUS: tuple[tuple[type[exceptions.GatewayError], int], ...] = (
    (exceptions.UnknownCommandError, 400),
    (exceptions.InverterNotFoundError, 404),
    (exceptions.ValidationError, 422),
    (exceptions.DeviceIOError, 500),
)


def status_for(exc: exceptions.GatewayError) -> int:
    """Return the HTTP status for a dispatch error."""
    for exc_type, status_code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------


@router.post("/command/{command}", response_model=CommandResponse)
async def handle_command(command: str, request: Request) -> JSONResponse:
    """Validate and execute a control command against one inverter.

    Raises:
        HTTPException: 403 if the control API is disabled, 400 for a
            malformed body.
    """
    if not request.app.state.settings.control_enabled:
        raise HTTPException(status_code=403, detail="Control API is disabled")

    body = await request.body()
    try:
        payload = CommandRequest.model_validate_json(body)
    except ValidationError:
        logger.error("Failed to decode command request body")
        raise HTTPException(status_code=400, detail="Invalid JSON body") from None

    logger.info(
        "Received command: %s with value: %s for serialno: %s",
        command,
        payload.value,
        payload.serialno,
    )

    cmd = Command(name=command, serial_no=payload.serialno, value=payload.value)
    try:
        await run_in_threadpool(request.app.state.dispatcher.dispatch, cmd)
    except exceptions.GatewayError as exc:
        status_code = status_for(exc)
        logger.error("Command execution failed (%d): %s", status_code, exc)
        response = CommandResponse(
            command=command,
            value=payload.value,
            status="error",
            message=str(exc),
        )
        return JSONResponse(status_code=status_code, content=response.model_dump())

    response = CommandResponse(
        command=command,
        value=payload.value,
        status="success",
        message="Command executed successfully",
    )
    return JSONResponse(status_code=200, content=response.model_dump())
