"""Global exception handlers — map SDK exceptions to HTTP status codes.

Routes stay on the happy path; these handlers pick the status code:

    InvalidTransition         409, message passed through
    IncompleteSessionError    409
    FunnelConfigError         500 (a broken funnel is a server fault)
    ValueError                404 / 409 / 400 by message
    KeyError                  404
    anything else             500

Session ids stay in the server log; ``ValueError`` responses carry a
generic message.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from lead_funnel.errors import FunnelConfigError, IncompleteSessionError, InvalidTransition

logger = logging.getLogger(__name__)

# Checked in order; first match wins
_VALUE_ERROR_PATTERNS: list[tuple[str, int]] = [
    ("already exists", 409),
    ("not found", 404),
]

_SAFE_MESSAGES: dict[int, str] = {
    404: "Resource not found",
    409: "Resource already exists",
    400: "Invalid request",
}


async def invalid_transition_handler(request: Request, exc: InvalidTransition) -> JSONResponse:
    logger.info("InvalidTransition at %s: %s", request.url.path, exc)
    content = {"detail": str(exc)}
    if exc.step_id is not None:
        content["step_id"] = exc.step_id
    return JSONResponse(status_code=409, content=content)


async def incomplete_session_handler(
    request: Request, exc: IncompleteSessionError,
) -> JSONResponse:
    logger.info("IncompleteSessionError at %s: %s", request.url.path, exc)
    return JSONResponse(status_code=409, content={"detail": "Session is still in progress"})


async def funnel_config_error_handler(request: Request, exc: FunnelConfigError) -> JSONResponse:
    logger.error("Funnel configuration error at %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Pick 404/409/400 from the exception message."""
    msg = str(exc)
    status = 400
    for pattern, code in _VALUE_ERROR_PATTERNS:
        if pattern in msg.lower():
            status = code
            break

    logger.warning("ValueError [%d] at %s: %s", status, request.url.path, msg)
    return JSONResponse(status_code=status, content={"detail": _SAFE_MESSAGES[status]})


async def key_error_handler(request: Request, exc: KeyError) -> JSONResponse:
    """Unknown funnel id and similar lookups."""
    logger.warning("KeyError at %s: %s", request.url.path, exc)
    return JSONResponse(status_code=404, content={"detail": "Resource not found"})


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception at %s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
