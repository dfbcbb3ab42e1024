from starlette.types import ASGIApp, Receive, Scope, Send, Message

from app.core.settings import settings

_BASE_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"referrer-policy", b"no-referrer"),
    (b"cross-origin-opener-policy", b"same-origin"),
    (b"cross-origin-resource-policy", b"same-origin"),
    # Submission responses echo carrier data about the applicant; never cache them.
    (b"cache-control", b"no-store"),
    (b"pragma", b"no-cache"),
)


def _security_headers(enable_hsts: bool) -> list[tuple[bytes, bytes]]:
    headers = list(_BASE_HEADERS)
    if enable_hsts:
        headers.append((b"strict-transport-security", b"max-age=63072000; includeSubDomains"))
    if settings.content_security_policy:
        header_name = (
            b"content-security-policy-report-only"
            if settings.content_security_policy_report_only
            else b"content-security-policy"
        )
        headers.append((header_name, settings.content_security_policy.encode()))
    return headers


class SecurityHeadersMiddleware:
    """Add security and no-cache headers to every HTTP response that lacks them."""

    def __init__(self, app: ASGIApp, enable_hsts: bool = True) -> None:
        self.app = app
        self.headers = _security_headers(enable_hsts)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                current = list(message.get("headers", []))
                present = {key.lower() for key, _ in current}
                current.extend(
                    (key, value) for key, value in self.headers if key not in present
                )
                message["headers"] = current
            await send(message)

        await self.app(scope, receive, send_with_headers)
