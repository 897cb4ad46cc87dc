"""Exception handlers rendering engine errors as JSON."""

import logging
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel

from crossfire.debate_engine.exceptions import DebateError

from .rate_limit import RateLimitedError, passed_rate_limit_headers

logger = logging.getLogger(__name__)


def error_body(status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "error": HTTPStatus(status_code).phrase,
        "code": code,
        "message": message,
        "details": {to_camel(key): value for key, value in (details or {}).items()},
    }


async def debate_error_handler(request: Request, exc: DebateError) -> JSONResponse:
    headers = passed_rate_limit_headers(request)
    if isinstance(exc, RateLimitedError):
        headers.update(exc.result.headers())

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}")

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.code, exc.message, exc.details),
        headers=headers or None,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=error_body(500, "internal_error", "An unexpected error occurred"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DebateError, debate_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
