"""Tests for the asset access resolver and the bearer guard helpers."""

import base64
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from arvault.auth.access import (
    DENIED,
    AccessRequest,
    AccessResolver,
    AccessStrategy,
    extract_bearer_token,
    extract_share_id,
)
from arvault.auth.guards import authenticate
from arvault.auth.tokens import TokenVerifier, create_access_token, create_asset_token, create_signed_token
from arvault.db.models import Share
from arvault.lib.exceptions import AuthenticationError, TokenExpiredError, TokenInvalidError

SECRET = "test-secret"

PREFIXES = ["/share/", "/s/"]


@pytest.fixture
def resolver():
    return AccessResolver(TokenVerifier([SECRET]), share_path_prefixes=PREFIXES, asset_token_max_ttl=900)


def bearer(user_id, is_admin=False, secret=SECRET):
    return f"Bearer {create_access_token(user_id, secret, 3600, is_admin=is_admin)}"


def _sign_raw(payload, secret=SECRET):
    """Sign *payload* as-is, without the claims the token helpers add."""
    payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
    sig = hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).digest()
    return f"{payload_b64}.{base64.urlsafe_b64encode(sig).decode()}"


@pytest.fixture
def make_share(db_session):
    async def _make(owner, expires_at=None):
        share = Share(owner_id=owner.id, content_snapshot="", expires_at=expires_at)
        db_session.add(share)
        await db_session.commit()
        await db_session.refresh(share)
        return share

    return _make


class TestExtractors:
    def test_bearer_token(self):
        assert extract_bearer_token("Bearer abc") == "abc"
        assert extract_bearer_token("bearer  abc ") == "abc"
        assert extract_bearer_token("Basic abc") is None
        assert extract_bearer_token("Bearer ") is None
        assert extract_bearer_token(None) is None

    def test_share_id(self):
        share_id = uuid4()
        assert extract_share_id(f"https://app.example/share/{share_id}", PREFIXES) == share_id
        assert extract_share_id(f"https://app.example/s/{share_id}/view?x=1", PREFIXES) == share_id
        assert extract_share_id("https://app.example/share/not-a-uuid", PREFIXES) is None
        assert extract_share_id("https://app.example/dashboard", PREFIXES) is None
        assert extract_share_id(None, PREFIXES) is None


class TestBearerStrategy:
    async def test_owner_granted(self, resolver, db_session, make_user, make_asset):
        owner = await make_user()
        asset = await make_asset(owner)

        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, authorization=bearer(owner.id))
        )

        assert decision.granted
        assert decision.strategy is AccessStrategy.BEARER

    async def test_admin_granted(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user())
        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, authorization=bearer(uuid4(), is_admin=True))
        )
        assert decision.strategy is AccessStrategy.BEARER

    async def test_other_user_denied(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user())
        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, authorization=bearer(uuid4()))
        )
        assert decision == DENIED

    async def test_admin_public_visible_to_any_user(self, resolver, db_session, make_user, make_asset):
        admin = await make_user("root", is_admin=True)
        asset = await make_asset(admin, is_admin_upload=True, is_public=True)
        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, authorization=bearer(uuid4()))
        )
        assert decision.granted

    async def test_public_user_upload_still_private(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user(), is_public=True)
        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, authorization=bearer(uuid4()))
        )
        assert not decision.granted

    async def test_rotated_secret_still_accepted(self, db_session, make_user, make_asset):
        resolver = AccessResolver(TokenVerifier(["new", "old"]), PREFIXES, 900)
        owner = await make_user()
        asset = await make_asset(owner)
        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, authorization=bearer(owner.id, secret="old"))
        )
        assert decision.granted

    async def test_asset_token_is_not_a_bearer(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user())
        token = create_asset_token(asset.key, SECRET, 300)
        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, authorization=f"Bearer {token}")
        )
        assert not decision.granted


class TestShareReferralStrategy:
    async def test_owner_share_grants(self, resolver, db_session, make_user, make_asset, make_share):
        owner = await make_user()
        asset = await make_asset(owner)
        share = await make_share(owner)

        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, referer=f"https://app.example/share/{share.id}")
        )

        assert decision.strategy is AccessStrategy.SHARE_REFERRAL

    async def test_expired_share_denied(self, resolver, db_session, make_user, make_asset, make_share):
        owner = await make_user()
        asset = await make_asset(owner)
        share = await make_share(owner, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))

        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, referer=f"https://app.example/share/{share.id}")
        )

        assert not decision.granted

    async def test_other_owners_share_denied(self, resolver, db_session, make_user, make_asset, make_share):
        asset = await make_asset(await make_user("alice"))
        share = await make_share(await make_user("bob"))

        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, referer=f"https://app.example/s/{share.id}")
        )

        assert not decision.granted

    async def test_admin_public_via_any_share(self, resolver, db_session, make_user, make_asset, make_share):
        asset = await make_asset(await make_user("root", is_admin=True), is_admin_upload=True, is_public=True)
        share = await make_share(await make_user("bob"))

        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, referer=f"https://app.example/share/{share.id}")
        )

        assert decision.granted

    async def test_unknown_share_denied(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user())
        decision = await resolver.resolve(
            db_session, asset, AccessRequest(asset.key, referer=f"https://app.example/share/{uuid4()}")
        )
        assert not decision.granted


class TestUrlTokenStrategy:
    async def test_scoped_token_grants(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user())
        token = create_asset_token(asset.key, SECRET, 300)

        decision = await resolver.resolve(db_session, asset, AccessRequest(asset.key, url_token=token))

        assert decision.strategy is AccessStrategy.URL_TOKEN

    async def test_token_for_other_key_denied(self, resolver, db_session, make_user, make_asset):
        owner = await make_user()
        asset = await make_asset(owner)
        other = await make_asset(owner)
        token = create_asset_token(other.key, SECRET, 300)

        decision = await resolver.resolve(db_session, asset, AccessRequest(asset.key, url_token=token))

        assert not decision.granted

    async def test_garbage_token_denied(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user())
        decision = await resolver.resolve(db_session, asset, AccessRequest(asset.key, url_token="junk"))
        assert not decision.granted

    async def test_token_without_issued_at_denied(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user())
        token = _sign_raw({"type": "asset", "key": asset.key, "exp": int(time.time()) + 86400 * 365})

        decision = await resolver.resolve(db_session, asset, AccessRequest(asset.key, url_token=token))

        assert not decision.granted


class TestPriority:
    async def test_bearer_checked_before_share_and_token(
        self, resolver, db_session, make_user, make_asset, make_share
    ):
        owner = await make_user()
        asset = await make_asset(owner)
        share = await make_share(owner)
        request = AccessRequest(
            asset.key,
            authorization=bearer(owner.id),
            referer=f"https://app.example/share/{share.id}",
            url_token=create_asset_token(asset.key, SECRET, 300),
        )

        decision = await resolver.resolve(db_session, asset, request)

        assert decision.strategy is AccessStrategy.BEARER

    async def test_failed_bearer_falls_through_to_share(
        self, resolver, db_session, make_user, make_asset, make_share
    ):
        owner = await make_user()
        asset = await make_asset(owner)
        share = await make_share(owner)
        request = AccessRequest(
            asset.key,
            authorization=bearer(uuid4()),
            referer=f"https://app.example/share/{share.id}",
            url_token=create_asset_token(asset.key, SECRET, 300),
        )

        decision = await resolver.resolve(db_session, asset, request)

        assert decision.strategy is AccessStrategy.SHARE_REFERRAL

    async def test_no_credentials_denied(self, resolver, db_session, make_user, make_asset):
        asset = await make_asset(await make_user())
        assert await resolver.resolve(db_session, asset, AccessRequest(asset.key)) == DENIED


class TestAuthenticate:
    def test_valid_token(self):
        user_id = uuid4()
        principal = authenticate(TokenVerifier([SECRET]), bearer(user_id, is_admin=True))
        assert principal.user_id == user_id
        assert principal.is_admin

    def test_missing_header(self):
        with pytest.raises(AuthenticationError):
            authenticate(TokenVerifier([SECRET]), None)

    def test_bad_signature(self):
        with pytest.raises(TokenInvalidError):
            authenticate(TokenVerifier([SECRET]), bearer(uuid4(), secret="other"))

    def test_expired(self):
        token = create_signed_token({"sub": str(uuid4()), "type": "access"}, SECRET, -10)
        with pytest.raises(TokenExpiredError):
            authenticate(TokenVerifier([SECRET]), f"Bearer {token}")

    def test_asset_token_rejected(self):
        token = create_asset_token("model/1_a.glb", SECRET, 300)
        with pytest.raises(TokenInvalidError):
            authenticate(TokenVerifier([SECRET]), f"Bearer {token}")
