"""Read authorization for stored assets.

Three independent trust paths are tried in a fixed order and the first
that grants wins:

1. bearer credential: admin, owner, or admin content shared publicly;
2. share referral: the request came from an un-expired share page whose
   owner owns the asset (or the asset is admin-public);
3. URL token: a short-lived signed token scoped to exactly this key.

The order runs from strongest to narrowest evidence and must not be
changed. Every strategy is a pure read.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from urllib.parse import urlsplit
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from arvault.auth.tokens import TokenVerifier, asset_token_grants, principal_from_payload
from arvault.db.models.asset import Asset
from arvault.db.services.share_service import get_active_share


class AccessStrategy(str, enum.Enum):
    BEARER = "bearer"
    SHARE_REFERRAL = "share_referral"
    URL_TOKEN = "url_token"


@dataclass(frozen=True)
class AccessRequest:
    """The authorization inputs of one asset read."""

    key: str
    authorization: str | None = None
    referer: str | None = None
    url_token: str | None = None


@dataclass(frozen=True)
class AccessDecision:
    granted: bool
    strategy: AccessStrategy | None = None


DENIED = AccessDecision(granted=False)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer`` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def extract_share_id(referer: str | None, path_prefixes: list[str]) -> UUID | None:
    """Pull the share id out of a share page URL such as ``/share/<id>``."""
    if not referer:
        return None
    path = urlsplit(referer).path
    for prefix in path_prefixes:
        if prefix not in path:
            continue
        segment = path.split(prefix, 1)[1].split("/", 1)[0]
        try:
            return UUID(segment)
        except ValueError:
            return None
    return None


class AccessResolver:
    def __init__(
        self,
        verifier: TokenVerifier,
        share_path_prefixes: list[str],
        asset_token_max_ttl: int,
    ) -> None:
        self.verifier = verifier
        self.share_path_prefixes = share_path_prefixes
        self.asset_token_max_ttl = asset_token_max_ttl

    async def resolve(
        self, db_session: AsyncSession, asset: Asset, request: AccessRequest
    ) -> AccessDecision:
        if self._bearer_grants(asset, request):
            return AccessDecision(True, AccessStrategy.BEARER)
        if await self._share_referral_grants(db_session, asset, request):
            return AccessDecision(True, AccessStrategy.SHARE_REFERRAL)
        if self._url_token_grants(asset, request):
            return AccessDecision(True, AccessStrategy.URL_TOKEN)
        return DENIED

    def _bearer_grants(self, asset: Asset, request: AccessRequest) -> bool:
        token = extract_bearer_token(request.authorization)
        if token is None:
            return False
        result = self.verifier.verify(token)
        if not result.ok:
            return False
        principal = principal_from_payload(result.payload)
        if principal is None:
            return False
        return (
            principal.is_admin
            or principal.user_id == asset.owner_id
            or asset.is_admin_public
        )

    async def _share_referral_grants(
        self, db_session: AsyncSession, asset: Asset, request: AccessRequest
    ) -> bool:
        share_id = extract_share_id(request.referer, self.share_path_prefixes)
        if share_id is None:
            return False
        share = await get_active_share(db_session, share_id)
        if share is None:
            return False
        return share.owner_id == asset.owner_id or asset.is_admin_public

    def _url_token_grants(self, asset: Asset, request: AccessRequest) -> bool:
        if not request.url_token:
            return False
        result = self.verifier.verify(request.url_token)
        if not result.ok:
            return False
        return asset_token_grants(result.payload, asset.key, self.asset_token_max_ttl)
