from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services.enrollment_errors import EnrollmentSubmissionError

logger = logging.getLogger(__name__)


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        422: "unprocessable_entity",
        429: "rate_limited",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def build_error_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    payload = {
        "success": False,
        "error": message,
        "code": code,
        "details": details if details is not None else {},
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def _parse_http_exception_detail(detail: Any, status_code: int) -> tuple[str, str, Any]:
    code = _default_code(status_code)
    message = _default_message(status_code)

    if isinstance(detail, dict):
        code = detail.get("code") or code
        message = detail.get("message") or detail.get("detail") or detail.get("error") or message
        if "details" in detail:
            return code, message, detail.get("details")
        remainder = {
            k: v for k, v in detail.items() if k not in {"code", "message", "detail", "error"}
        }
        return code, message, remainder or {"detail": message}

    if isinstance(detail, list):
        return code, message, {"errors": detail}

    if isinstance(detail, str):
        return code, detail, {"detail": detail}

    return code, message, {"detail": str(detail)}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _parse_http_exception_detail(exc.detail, exc.status_code)
    response = build_error_response(exc.status_code, code, message, details)
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Validation failed"
    if errors:
        first = errors[0] or {}
        loc = first.get("loc") or []
        msg = first.get("msg") or "Validation failed"
        # Drop the request section (body/query/path) from the location
        loc_parts = [str(part) for part in loc if part not in {"body", "query", "path"}]
        if loc_parts:
            message = f"{'.'.join(loc_parts)}: {msg}"
        else:
            message = str(msg)
    return build_error_response(
        status_code=422,
        code="validation_error",
        message=message,
        details={"errors": errors},
    )


async def enrollment_error_handler(
    request: Request, exc: EnrollmentSubmissionError
) -> JSONResponse:
    return build_error_response(exc.status_code, exc.code, exc.message, exc.details)


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = build_error_response(
        status_code=429,
        code="rate_limited",
        message=_default_message(429),
        details={"detail": getattr(exc, "detail", None)},
    )
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return build_error_response(
        status_code=500,
        code="internal_server_error",
        message="Internal server error",
        details={},
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(EnrollmentSubmissionError, enrollment_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
