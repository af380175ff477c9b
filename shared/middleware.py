"""Request ID middleware and RFC 9457 exception handlers.

Every error leaving the HTTP surface is rendered as application/problem+json.
"""

from collections.abc import Callable
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

import structlog
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from shared.exceptions import PROBLEM_BASE_URI, ProblemDetailError

logger = structlog.get_logger()

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with an X-Request-ID (caller-supplied or UUID v4).

    The ID is echoed on the response and bound into structlog contextvars
    for every log line emitted while the request is handled.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Callable[..., Response]]
    ):
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request_id_var.set(rid)
        structlog.contextvars.bind_contextvars(request_id=rid, path=request.url.path)

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = rid
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "path")


def _problem_response(request: Request, body: dict[str, Any]) -> JSONResponse:
    body["instance"] = str(request.url.path)
    logger.info(
        "problem_returned",
        status=body["status"],
        type=body["type"],
        detail=body["detail"],
    )
    return JSONResponse(
        status_code=body["status"],
        content=body,
        media_type="application/problem+json",
    )


async def problem_detail_handler(request: Request, exc: ProblemDetailError) -> JSONResponse:
    return _problem_response(request, exc.to_problem())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request-shape errors (bad JSON, wrong types, bad query params) with violations."""
    violations = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = ".".join(str(part) for part in loc if part not in ("body", "query", "path"))
        violations.append(
            {
                "field": field or "(root)",
                "message": err.get("msg", "Validation error"),
                "constraint": err.get("type", "validation"),
            }
        )

    return _problem_response(
        request,
        {
            "type": f"{PROBLEM_BASE_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": f"Request contains {len(violations)} validation error(s)",
            "violations": violations,
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _problem_response(
        request,
        {
            "type": "about:blank",
            "title": detail,
            "status": exc.status_code,
            "detail": detail,
        },
    )
