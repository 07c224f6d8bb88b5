from __future__ import annotations
"""
Advisor — Error Taxonomy
=========================
Only ValidationFailed and AuthError ever reach the client as HTTP statuses,
and only before the first stream frame. The rest are contained by the
component that raises them.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class AdvisorError(Exception):
    """Base class for all advisor errors."""

    status_code: int = 500


class ValidationFailed(AdvisorError):
    """Missing or malformed request input (pre-stream)."""

    status_code = 400


class AuthError(AdvisorError):
    """No principal, or the bearer token did not resolve to one."""

    status_code = 401


class GenerationError(AdvisorError):
    """The upstream model failed mid-stream."""


class BackendUnavailable(AdvisorError):
    """A retrieval or persistence backend failed or timed out."""


class ParseError(AdvisorError):
    """Generated text did not contain a decodable result object."""


def register_error_handlers(app: FastAPI) -> None:
    """Answer pre-stream AdvisorErrors with {"detail": ...}, like HTTPException."""
    async def _advisor_error(request: Request, exc: AdvisorError):
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    app.add_exception_handler(AdvisorError, _advisor_error)
