"""Client IP extraction from ASGI scope."""

from litestar.types import Scope


def get_client_ip(scope: Scope) -> str:
    """Extract the client IP.

    Proxy headers are trusted in order: ``cf-connecting-ip`` (set by the
    edge), then the first ``x-forwarded-for`` hop, then the socket peer.
    """
    headers = dict(scope.get("headers", []))
    edge = headers.get(b"cf-connecting-ip")
    if edge:
        return edge.decode().strip()
    forwarded = headers.get(b"x-forwarded-for")
    if forwarded:
        return forwarded.decode().split(",")[0].strip()
    client = scope.get("client")
    if client:
        return client[0]
    return "unknown"
