"""Tests for signed tokens and the multi-secret verifier."""

import time
from unittest.mock import patch
from uuid import uuid4

from arvault.auth.tokens import (
    Principal,
    TokenStatus,
    TokenVerifier,
    UploadSessionSigner,
    asset_token_grants,
    check_signed_token,
    create_access_token,
    create_asset_token,
    create_signed_token,
    principal_from_payload,
    verify_signed_token,
)


class TestCreateSignedToken:
    def test_token_has_two_parts(self):
        token = create_signed_token({"foo": "bar"}, "secret", 300)
        assert len(token.split(".")) == 2

    def test_payload_carries_iat_and_exp(self):
        token = create_signed_token({"foo": "bar"}, "secret", 300)
        payload = verify_signed_token(token, "secret")
        assert payload["exp"] - payload["iat"] == 300


class TestCheckSignedToken:
    def test_valid_token(self):
        token = create_signed_token({"sub": "123"}, "secret", 300)
        result = check_signed_token(token, "secret")
        assert result.ok
        assert result.payload["sub"] == "123"

    def test_wrong_secret(self):
        token = create_signed_token({"sub": "123"}, "secret", 300)
        assert check_signed_token(token, "other").status is TokenStatus.BAD_SIGNATURE

    def test_expired_token(self):
        token = create_signed_token({"sub": "123"}, "secret", 1)
        with patch("arvault.auth.tokens.time") as mock_time:
            mock_time.time.return_value = time.time() + 10
            result = check_signed_token(token, "secret")
        assert result.status is TokenStatus.EXPIRED
        assert not result.ok

    def test_tampered_payload(self):
        token = create_signed_token({"sub": "123"}, "secret", 300)
        payload_b64, sig = token.split(".")
        tampered = ("A" if payload_b64[0] != "A" else "B") + payload_b64[1:]
        assert check_signed_token(f"{tampered}.{sig}", "secret").status is TokenStatus.BAD_SIGNATURE

    def test_malformed_tokens(self):
        for token in ("", "not-a-token", "a.b.c", ".sig", "payload."):
            assert check_signed_token(token, "secret").status is TokenStatus.MALFORMED
        assert verify_signed_token("not-a-token", "secret") is None


class TestTokenVerifier:
    """Rotation: every configured secret is tried in order."""

    def test_old_and_new_secret_both_verify_during_rotation(self):
        verifier = TokenVerifier(["new-secret", "old-secret"])
        new_token = create_signed_token({"sub": "1"}, "new-secret", 300)
        old_token = create_signed_token({"sub": "1"}, "old-secret", 300)

        new_result = verifier.verify(new_token)
        old_result = verifier.verify(old_token)

        assert new_result.ok and new_result.secret_index == 0
        assert old_result.ok and old_result.secret_index == 1

    def test_old_secret_rejected_after_removal(self):
        verifier = TokenVerifier(["new-secret"])
        old_token = create_signed_token({"sub": "1"}, "old-secret", 300)
        new_token = create_signed_token({"sub": "1"}, "new-secret", 300)

        assert verifier.verify(old_token).status is TokenStatus.BAD_SIGNATURE
        assert verifier.verify(new_token).ok

    def test_expired_token_reports_expired(self):
        verifier = TokenVerifier(["a", "b"])
        token = create_signed_token({"sub": "1"}, "b", 1)
        with patch("arvault.auth.tokens.time") as mock_time:
            mock_time.time.return_value = time.time() + 10
            assert verifier.verify(token).status is TokenStatus.EXPIRED

    def test_no_secrets_never_verifies(self):
        token = create_signed_token({"sub": "1"}, "secret", 300)
        assert not TokenVerifier([]).verify(token).ok


class TestPrincipalFromPayload:
    def test_access_token_resolves(self):
        user_id = uuid4()
        payload = verify_signed_token(create_access_token(user_id, "s", 60, is_admin=True), "s")
        assert principal_from_payload(payload) == Principal(user_id=user_id, is_admin=True)

    def test_legacy_id_claim(self):
        user_id = uuid4()
        assert principal_from_payload({"id": str(user_id)}).user_id == user_id

    def test_asset_token_is_not_a_session(self):
        payload = verify_signed_token(create_asset_token("model/1_a.glb", "s", 60), "s")
        assert principal_from_payload(payload) is None

    def test_missing_or_invalid_user_id(self):
        assert principal_from_payload({"type": "access"}) is None
        assert principal_from_payload({"sub": "not-a-uuid"}) is None

    def test_admin_claim_must_be_true(self):
        principal = principal_from_payload({"sub": str(uuid4()), "is_admin": "yes"})
        assert principal.is_admin is False


class TestAssetTokenGrants:
    def test_grants_exact_key(self):
        payload = verify_signed_token(create_asset_token("model/1_a.glb", "s", 300), "s")
        assert asset_token_grants(payload, "model/1_a.glb", max_ttl=900)

    def test_rejects_other_key(self):
        payload = verify_signed_token(create_asset_token("model/1_a.glb", "s", 300), "s")
        assert not asset_token_grants(payload, "model/2_b.glb", max_ttl=900)

    def test_rejects_long_lived_token(self):
        payload = verify_signed_token(create_asset_token("model/1_a.glb", "s", 86400), "s")
        assert not asset_token_grants(payload, "model/1_a.glb", max_ttl=900)

    def test_rejects_access_token(self):
        payload = verify_signed_token(create_access_token(uuid4(), "s", 300), "s")
        assert not asset_token_grants(payload, "model/1_a.glb", max_ttl=900)

    def test_requires_issued_at(self):
        payload = verify_signed_token(create_asset_token("model/1_a.glb", "s", 300), "s")
        del payload["iat"]
        payload["exp"] = time.time() + 86400 * 365
        assert not asset_token_grants(payload, "model/1_a.glb", max_ttl=900)


class TestUploadSessionSigner:
    def test_round_trip_for_creator(self):
        signer = UploadSessionSigner("s")
        user_id = uuid4()
        public_id = signer.sign("model/1_a.glb", "store-id", user_id)
        assert public_id.startswith("store-id.")
        assert signer.open(public_id, "model/1_a.glb", user_id) == "store-id"

    def test_other_user_or_key_rejected(self):
        signer = UploadSessionSigner("s")
        public_id = signer.sign("model/1_a.glb", "store-id", uuid4())
        assert signer.open(public_id, "model/1_a.glb", uuid4()) is None
        assert signer.open(public_id, "model/2_b.glb", uuid4()) is None

    def test_unsigned_ids_rejected(self):
        signer = UploadSessionSigner("s")
        assert signer.open("store-id", "model/1_a.glb", uuid4()) is None
        assert signer.open(".abc", "model/1_a.glb", uuid4()) is None

    def test_store_ids_containing_dots(self):
        signer = UploadSessionSigner("s")
        user_id = uuid4()
        public_id = signer.sign("model/1_a.glb", "2~abc.def", user_id)
        assert signer.open(public_id, "model/1_a.glb", user_id) == "2~abc.def"

    def test_sessions_survive_rotation(self):
        user_id = uuid4()
        public_id = UploadSessionSigner("old").sign("model/1_a.glb", "store-id", user_id)
        rotated = UploadSessionSigner("new", ["new", "old"])
        assert rotated.open(public_id, "model/1_a.glb", user_id) == "store-id"
