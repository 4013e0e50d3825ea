"""Signed tokens for bearer credentials and scoped asset URLs.

Tokens are ``base64url(json_payload).base64url(hmac_sha256)`` and always
carry ``iat`` and ``exp`` claims. Two kinds are issued:

* access tokens (``type: "access"``) identify a user via ``sub``;
* asset tokens (``type: "asset"``) grant a read of exactly one ``key``
  for a few minutes and are embedded in URLs as ``?t=``.

Verification never raises. Each check returns a :class:`Verification`
so callers can walk a list of candidate secrets with plain iteration.
"""

from __future__ import annotations

import base64
import binascii
import enum
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any
from uuid import UUID

ACCESS_TOKEN = "access"
ASSET_TOKEN = "asset"


class TokenStatus(str, enum.Enum):
    VALID = "valid"
    MALFORMED = "malformed"
    BAD_SIGNATURE = "bad_signature"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Verification:
    """Result of verifying a token against one or more secrets."""

    status: TokenStatus
    payload: dict[str, Any] | None = None
    secret_index: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is TokenStatus.VALID


@dataclass(frozen=True)
class Principal:
    """The authenticated caller behind an access token."""

    user_id: UUID
    is_admin: bool = False


def create_signed_token(payload: dict, secret: str, expires_in: int) -> str:
    """Create a base64url-encoded, HMAC-signed JSON payload with expiration.

    Args:
        payload: Dictionary to encode in the token.
        secret: HMAC signing secret.
        expires_in: Token lifetime in seconds.
    """
    now = int(time.time())
    payload = {**payload, "iat": now, "exp": now + expires_in}
    payload_bytes = json.dumps(payload, separators=(",", ":")).encode()
    payload_b64 = base64.urlsafe_b64encode(payload_bytes).decode()

    sig = hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).digest()
    sig_b64 = base64.urlsafe_b64encode(sig).decode()

    return f"{payload_b64}.{sig_b64}"


def check_signed_token(token: str, secret: str) -> Verification:
    """Verify *token* against a single secret."""
    parts = token.split(".")
    if len(parts) != 2 or not all(parts):
        return Verification(TokenStatus.MALFORMED)

    payload_b64, sig_b64 = parts

    try:
        actual_sig = base64.urlsafe_b64decode(sig_b64)
    except (binascii.Error, ValueError):
        return Verification(TokenStatus.MALFORMED)

    expected_sig = hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).digest()
    if not hmac.compare_digest(expected_sig, actual_sig):
        return Verification(TokenStatus.BAD_SIGNATURE)

    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64))
    except (binascii.Error, ValueError):
        return Verification(TokenStatus.MALFORMED)

    if not isinstance(payload, dict):
        return Verification(TokenStatus.MALFORMED)

    exp = payload.get("exp")
    if not isinstance(exp, (int, float)):
        return Verification(TokenStatus.MALFORMED)
    if time.time() > exp:
        return Verification(TokenStatus.EXPIRED, payload=payload)

    return Verification(TokenStatus.VALID, payload=payload)


def verify_signed_token(token: str, secret: str) -> dict | None:
    """Return the payload of a valid token, or ``None``."""
    result = check_signed_token(token, secret)
    return result.payload if result.ok else None


class TokenVerifier:
    """Verifies tokens against an ordered list of candidate secrets.

    The first secret that validates wins. A signature match on an expired
    token ends the search, since no other secret can produce the same
    signature.
    """

    def __init__(self, secrets: list[str]) -> None:
        self.secrets = list(secrets)

    def verify(self, token: str) -> Verification:
        if not self.secrets:
            return Verification(TokenStatus.BAD_SIGNATURE)

        for index, secret in enumerate(self.secrets):
            result = check_signed_token(token, secret)
            if result.ok:
                return Verification(TokenStatus.VALID, result.payload, index)
            if result.status is not TokenStatus.BAD_SIGNATURE:
                return result

        return Verification(TokenStatus.BAD_SIGNATURE)


def create_access_token(user_id: UUID, secret: str, expires_in: int, is_admin: bool = False) -> str:
    return create_signed_token(
        {"sub": str(user_id), "type": ACCESS_TOKEN, "is_admin": is_admin},
        secret,
        expires_in,
    )


def create_asset_token(key: str, secret: str, expires_in: int) -> str:
    return create_signed_token({"key": key, "type": ASSET_TOKEN}, secret, expires_in)


def principal_from_payload(payload: dict[str, Any]) -> Principal | None:
    """Resolve an access-token payload to a principal.

    Accepts ``sub`` or the legacy ``id`` claim. Asset tokens never
    resolve, so a leaked asset URL cannot act as a session.
    """
    if payload.get("type", ACCESS_TOKEN) != ACCESS_TOKEN:
        return None
    raw_id = payload.get("sub") or payload.get("id")
    if raw_id is None:
        return None
    try:
        user_id = UUID(str(raw_id))
    except ValueError:
        return None
    return Principal(user_id=user_id, is_admin=payload.get("is_admin") is True)


def asset_token_grants(payload: dict[str, Any], key: str, max_ttl: int) -> bool:
    """Whether an asset-token payload grants a read of *key*."""
    if payload.get("type") != ASSET_TOKEN:
        return False
    if payload.get("key") != key:
        return False
    iat = payload.get("iat")
    if not isinstance(iat, (int, float)):
        return False
    return payload["exp"] - iat <= max_ttl


class UploadSessionSigner:
    """Binds multipart upload ids to the user who opened them.

    Clients receive ``<store upload id>.<mac>``, where the mac covers the
    object key, the store's upload id and the creator's user id. Only the
    creator can then upload parts to, complete or abort the session.
    """

    def __init__(self, signing_secret: str, secrets: list[str] | None = None) -> None:
        self.signing_secret = signing_secret
        self.secrets = list(secrets) if secrets else [signing_secret]

    @staticmethod
    def _mac(secret: str, key: str, upload_id: str, user_id: UUID) -> str:
        message = f"{key}\n{upload_id}\n{user_id}".encode()
        return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()[:32]

    def sign(self, key: str, upload_id: str, user_id: UUID) -> str:
        return f"{upload_id}.{self._mac(self.signing_secret, key, upload_id, user_id)}"

    def open(self, public_id: str, key: str, user_id: UUID) -> str | None:
        """Return the store's upload id if *public_id* was issued to *user_id*."""
        upload_id, _, mac = public_id.rpartition(".")
        if not upload_id or not mac:
            return None
        for secret in self.secrets:
            if hmac.compare_digest(mac, self._mac(secret, key, upload_id, user_id)):
                return upload_id
        return None
