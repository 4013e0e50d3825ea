"""Rate limiting middleware.

Applies a per-client fixed-window limit chosen by path prefix. The
limiters are created once per application and passed in, so tests and
operators can inspect their state through ``app.state.rate_limiters``.
"""

import json
import math

from litestar.datastructures import MutableScopeHeaders
from litestar.types import ASGIApp, Message, Receive, Scope, Send

from arvault.lib.client_ip import get_client_ip
from arvault.lib.exceptions import RateLimitedError, error_body
from arvault.lib.rate_limit import FixedWindowLimiter, RateLimitResult


def _limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "x-ratelimit-limit": str(result.limit),
        "x-ratelimit-remaining": str(result.remaining),
        "x-ratelimit-reset": str(math.ceil(result.reset_at)),
    }


class RateLimitMiddleware:
    """ASGI middleware that enforces per-IP request rate limits.

    Args:
        app: The ASGI application to wrap.
        default: Limiter for paths without a more specific group.
        groups: Path prefix -> limiter; the longest matching prefix wins.
    """

    def __init__(
        self,
        app: ASGIApp,
        default: FixedWindowLimiter,
        groups: dict[str, FixedWindowLimiter] | None = None,
    ) -> None:
        self.app = app
        self.default = default
        self.groups = groups or {}

    def _get_limiter(self, path: str) -> tuple[str, FixedWindowLimiter]:
        best_match = ""
        for prefix in self.groups:
            if path.startswith(prefix) and len(prefix) > len(best_match):
                best_match = prefix

        if best_match:
            return best_match, self.groups[best_match]
        return "", self.default

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "/")
        _, limiter = self._get_limiter(path)
        result = limiter.check(get_client_ip(scope))
        headers = _limit_headers(result)

        if not result.allowed:
            request_id = scope.get("state", {}).get("request_id", "")
            body = json.dumps(
                error_body(
                    RateLimitedError.message,
                    RateLimitedError.code,
                    {"retryAfter": result.retry_after},
                    request_id,
                )
            ).encode()
            await send({
                "type": "http.response.start",
                "status": 429,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"retry-after", str(result.retry_after).encode()),
                    *((k.encode(), v.encode()) for k, v in headers.items()),
                ],
            })
            await send({"type": "http.response.body", "body": body})
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableScopeHeaders.from_message(message)
                for name, value in headers.items():
                    response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_headers)
