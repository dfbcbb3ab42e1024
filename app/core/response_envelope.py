from __future__ import annotations

import json
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response


def _build_success_envelope(result: Any) -> dict[str, Any]:
    return {"success": True, "result": result}


def _is_enveloped(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    if "success" not in payload:
        return False
    return "result" in payload or "error" in payload


def _copy_headers(source: Response, target: Response) -> Response:
    for key, value in source.headers.items():
        if key.lower() in {"content-length", "content-type"}:
            continue
        target.headers[key] = value
    return target


class ResponseEnvelopeMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next) -> Response:
        response = await call_next(request)

        if response.status_code < 200 or response.status_code >= 300:
            return response

        if response.status_code == 204:
            return _copy_headers(
                response, JSONResponse(status_code=200, content=_build_success_envelope(None))
            )

        content_type = response.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            return response

        body = b""
        async for chunk in response.body_iterator:
            body += chunk if isinstance(chunk, bytes) else chunk.encode("utf-8")

        try:
            raw_body = body.decode("utf-8")
            payload = json.loads(raw_body) if raw_body else None
        except (UnicodeDecodeError, ValueError):
            return _copy_headers(
                response,
                Response(content=body, status_code=response.status_code, media_type=content_type),
            )

        if _is_enveloped(payload):
            content = payload
        else:
            content = _build_success_envelope(payload)
        return _copy_headers(
            response, JSONResponse(status_code=response.status_code, content=content)
        )


def register_response_envelope(app) -> None:
    app.add_middleware(ResponseEnvelopeMiddleware)
