from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.core.settings import settings

_BASE_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"DENY"),
    (b"referrer-policy", b"no-referrer"),
    (b"cross-origin-opener-policy", b"same-origin"),
    (b"cross-origin-resource-policy", b"same-origin"),
    # Ledger responses carry balances; never let intermediaries keep them.
    (b"cache-control", b"no-store"),
)

_HSTS = (b"strict-transport-security", b"max-age=63072000; includeSubDomains")


def build_security_headers(enable_hsts: bool) -> list[tuple[bytes, bytes]]:
    headers = list(_BASE_HEADERS)
    if enable_hsts:
        headers.append(_HSTS)
    if settings.content_security_policy:
        name = (
            b"content-security-policy-report-only"
            if settings.content_security_policy_report_only
            else b"content-security-policy"
        )
        headers.append((name, settings.content_security_policy.encode()))
    return headers


class SecurityHeadersMiddleware:
    def __init__(self, app: ASGIApp, enable_hsts: bool = True) -> None:
        self.app = app
        self.defaults = build_security_headers(enable_hsts)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                current = list(message.get("headers", []))
                present = {key.lower() for key, _ in current}
                current.extend((key, value) for key, value in self.defaults if key not in present)
                message["headers"] = current
            await send(message)

        await self.app(scope, receive, send_with_headers)
