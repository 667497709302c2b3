"""Global exception handlers — map SDK exceptions to HTTP status codes.

The SDK raises ``ValueError`` for caller errors (session not found,
duplicate session, wrong state), ``KeyError`` for unknown programs and
``SubmissionError`` when outcome evaluation fails.  Rather than catching
these in every route, global handlers inspect the exception and pick the
HTTP status code.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from screening_flow.engine import SubmissionError

logger = logging.getLogger(__name__)

# --- Keyword patterns in ValueError messages and their HTTP status codes ---
# Checked in order; first match wins.
_VALUE_ERROR_PATTERNS: list[tuple[str, int]] = [
    ("already exists", 409),
    ("already completed", 409),
    ("already in progress", 409),
    ("not found", 404),
    ("not configured", 404),
]


# --- Client-safe messages keyed by HTTP status code ---
# Internal details (user_id, session_id, question ids) stay in the server
# log; the client receives only a generic description.
_SAFE_MESSAGES: dict[int, str] = {
    404: "Resource not found",
    409: "Conflict with the current session state",
    400: "Invalid request",
}


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Map SDK ``ValueError`` to 404 / 409 / 400 by message.

    The raw message is logged server-side but never sent to the client.
    """
    msg = str(exc)
    status = 400
    for pattern, code in _VALUE_ERROR_PATTERNS:
        if pattern in msg.lower():
            status = code
            break

    logger.warning("ValueError [%d] at %s: %s", status, request.url, msg)
    return JSONResponse(status_code=status, content={"detail": _SAFE_MESSAGES[status]})


async def key_error_handler(request: Request, exc: KeyError) -> JSONResponse:
    """Map ``KeyError`` (unknown program) to 404."""
    logger.warning("KeyError at %s: %s", request.url, exc)
    return JSONResponse(status_code=404, content={"detail": "Resource not found"})


async def submission_error_handler(request: Request, exc: SubmissionError) -> JSONResponse:
    """Outcome evaluation failed; the answers are kept and the client may retry."""
    logger.error("SubmissionError at %s: %s", request.url, exc)
    return JSONResponse(
        status_code=502,
        content={"detail": "Your answers were saved but could not be evaluated. Please try again."},
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
