"""Route guards for bearer-authenticated API routes.

``bearer_guard`` verifies the access token and stores the resulting
:class:`Principal` in the connection state; handlers receive it through
the ``principal`` dependency. ``admin_guard`` additionally requires the
admin claim and must be listed after ``bearer_guard``.
"""

from __future__ import annotations

from litestar import Request
from litestar.connection import ASGIConnection
from litestar.handlers.base import BaseRouteHandler

from arvault.auth.access import extract_bearer_token
from arvault.auth.tokens import Principal, TokenStatus, TokenVerifier, principal_from_payload
from arvault.lib.exceptions import (
    AdminRequiredError,
    AuthenticationError,
    TokenExpiredError,
    TokenInvalidError,
)

PRINCIPAL_STATE_KEY = "principal"


def authenticate(verifier: TokenVerifier, authorization: str | None) -> Principal:
    """Resolve an Authorization header to a principal or raise."""
    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Missing bearer token")

    result = verifier.verify(token)
    if result.status is TokenStatus.EXPIRED:
        raise TokenExpiredError()
    if not result.ok:
        raise TokenInvalidError()

    principal = principal_from_payload(result.payload)
    if principal is None:
        raise TokenInvalidError("Token does not identify a user")
    return principal


async def bearer_guard(connection: ASGIConnection, _: BaseRouteHandler) -> None:
    verifier: TokenVerifier = connection.app.state.token_verifier
    principal = authenticate(verifier, connection.headers.get("authorization"))
    connection.scope.setdefault("state", {})[PRINCIPAL_STATE_KEY] = principal


async def admin_guard(connection: ASGIConnection, _: BaseRouteHandler) -> None:
    principal = connection.scope.get("state", {}).get(PRINCIPAL_STATE_KEY)
    if principal is None or not principal.is_admin:
        raise AdminRequiredError()


async def provide_principal(request: Request) -> Principal:
    """Dependency returning the principal set by ``bearer_guard``."""
    principal = request.scope.get("state", {}).get(PRINCIPAL_STATE_KEY)
    if principal is None:
        raise AuthenticationError()
    return principal
