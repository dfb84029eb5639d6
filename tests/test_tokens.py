"""Tests for session token issuance, validation and revocation."""

from datetime import timedelta

import jwt
import pytest

from core.errors import (
    AccountDisabledError,
    CredentialError,
    InvalidCredentialsError,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
    TokenSignatureError,
)
from core.timestamps import now as utcnow
from pman.tokens import SessionAuthority, hash_token
from pman.types import Role

SECRET = "test-token-secret-for-pytest-32chars!"
ALICE = "alice@example.com"
ALICE_PASSWORD = "Passw0rdAlice"


def _stored_rows(db):
    with db.connect() as conn:
        return conn.execute("SELECT token_hash, user_email, revoked FROM revoked_tokens").fetchall()


class TestHashToken:
    def test_sha256_hex(self):
        digest = hash_token("abc")
        assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"

    def test_only_hash_persisted(self, authority, db, user):
        result = authority.login(ALICE, ALICE_PASSWORD)
        rows = _stored_rows(db)
        assert [r["token_hash"] for r in rows] == [hash_token(result.token)]
        assert all(result.token not in r["token_hash"] for r in rows)


class TestIssueToken:
    def test_claims(self, authority):
        token, expires_at = authority.issue_token(ALICE, "user")
        payload = jwt.decode(token, SECRET, algorithms=["HS256"], issuer="pman.test")
        assert payload["email"] == ALICE
        assert payload["role"] == "user"
        assert payload["iss"] == "pman.test"
        assert payload["exp"] == int(expires_at.timestamp())
        assert payload["jti"]

    def test_default_ttl_is_24_days(self, authority):
        issued = utcnow()
        _, expires_at = authority.issue_token(ALICE, Role.USER, now=issued)
        assert expires_at - issued.replace(microsecond=0) == timedelta(days=24)

    @pytest.mark.parametrize("ttl", [None, 0, -5])
    def test_non_positive_ttl_uses_default(self, authority, ttl):
        issued = utcnow()
        _, expires_at = authority.issue_token(ALICE, "user", ttl_days=ttl, now=issued)
        assert expires_at - issued.replace(microsecond=0) == timedelta(days=24)

    def test_explicit_ttl(self, authority):
        issued = utcnow()
        _, expires_at = authority.issue_token(ALICE, "user", ttl_days=3, now=issued)
        assert expires_at - issued.replace(microsecond=0) == timedelta(days=3)

    def test_tokens_are_unique(self, authority):
        now = utcnow()
        first, _ = authority.issue_token(ALICE, "user", now=now)
        second, _ = authority.issue_token(ALICE, "user", now=now)
        assert first != second

    def test_configured_default_ttl(self, db):
        authority = SessionAuthority(db, secret=SECRET, default_ttl_days=7)
        issued = utcnow()
        _, expires_at = authority.issue_token(ALICE, "user", now=issued)
        assert expires_at - issued.replace(microsecond=0) == timedelta(days=7)

    def test_empty_secret_rejected(self, db):
        with pytest.raises(ValueError):
            SessionAuthority(db, secret="")


class TestValidate:
    def test_valid_token(self, authority, user):
        result = authority.login(ALICE, ALICE_PASSWORD)
        claims = authority.validate(result.token)
        assert claims.email == ALICE
        assert claims.role is Role.USER
        assert claims.expires_at == result.expires_at

    def test_expired(self, authority, user):
        token, expires_at = authority.issue_token(ALICE, "user", ttl_days=1, now=utcnow() - timedelta(days=30))
        authority.record_issued_token(token, ALICE, expires_at)
        with pytest.raises(TokenExpiredError):
            authority.validate(token)

    def test_expiry_checked_before_revocation(self, authority, user):
        token, expires_at = authority.issue_token(ALICE, "user", ttl_days=1, now=utcnow() - timedelta(days=30))
        authority.record_issued_token(token, ALICE, expires_at)
        authority.revoke_token(token)
        with pytest.raises(TokenExpiredError):
            authority.validate(token)

    def test_wrong_secret(self, authority, db, user):
        forger = SessionAuthority(db, secret="some-other-secret-of-32-characters!", issuer="pman.test")
        token, _ = forger.issue_token(ALICE, "admin")
        with pytest.raises(TokenSignatureError):
            authority.validate(token)

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    def test_malformed(self, authority, token):
        with pytest.raises(TokenMalformedError):
            authority.validate(token)

    def test_wrong_issuer(self, authority, db, user):
        other = SessionAuthority(db, secret=SECRET, issuer="elsewhere.example")
        token, _ = other.issue_token(ALICE, "user")
        with pytest.raises(TokenMalformedError):
            authority.validate(token)

    def test_missing_claims(self, authority):
        token = jwt.encode(
            {"email": ALICE, "exp": utcnow() + timedelta(days=1)}, SECRET, algorithm="HS256"
        )
        with pytest.raises(TokenMalformedError):
            authority.validate(token)

    def test_unknown_role_claim(self, authority, user):
        issued = utcnow().replace(microsecond=0)
        token = jwt.encode(
            {
                "email": ALICE,
                "role": "root",
                "iat": issued,
                "exp": issued + timedelta(days=1),
                "iss": "pman.test",
                "jti": "x",
            },
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenMalformedError):
            authority.validate(token)

    def test_revoked_before_expiry(self, authority, user):
        result = authority.login(ALICE, ALICE_PASSWORD)
        authority.revoke_token(result.token)
        with pytest.raises(TokenRevokedError):
            authority.validate(result.token)

    def test_deleted_identity(self, authority, identities, user):
        result = authority.login(ALICE, ALICE_PASSWORD)
        identities.delete(ALICE)
        with pytest.raises(TokenRevokedError):
            authority.validate(result.token)

    def test_disabled_identity_without_tracking_row(self, authority, identities, user):
        token, _ = authority.issue_token(ALICE, "user")
        identities.disable(ALICE)
        with pytest.raises(TokenRevokedError):
            authority.validate(token)

    def test_all_failures_are_credential_errors(self, authority):
        with pytest.raises(CredentialError):
            authority.validate("garbage")


class TestUntrackedTokens:
    def test_untracked_accepted_by_default(self, authority, user):
        token, _ = authority.issue_token(ALICE, "user")
        assert authority.is_revoked(token) is False
        assert authority.validate(token).email == ALICE

    def test_untracked_rejected_when_required(self, db, identities, user):
        strict = SessionAuthority(
            db, secret=SECRET, identities=identities, issuer="pman.test", require_tracked_tokens=True
        )
        token, _ = strict.issue_token(ALICE, "user")
        with pytest.raises(TokenRevokedError):
            strict.validate(token)

        tracked, expires_at = strict.issue_token(ALICE, "user")
        strict.record_issued_token(tracked, ALICE, expires_at)
        assert strict.validate(tracked).email == ALICE


class TestLogin:
    def test_login(self, authority, user):
        result = authority.login(ALICE, ALICE_PASSWORD)
        assert result.identity.email == ALICE
        assert result.token not in repr(result)
        assert authority.is_revoked(result.token) is False

    def test_bootstrap_admin_login(self, authority):
        result = authority.login("admin@pman.system", "DefaultPassword")
        assert authority.validate(result.token).role is Role.ADMIN

    def test_unknown_email_and_wrong_password_identical(self, authority, user):
        with pytest.raises(InvalidCredentialsError) as unknown:
            authority.login("ghost@example.com", ALICE_PASSWORD)
        with pytest.raises(InvalidCredentialsError) as wrong:
            authority.login(ALICE, "wrong-password")
        assert str(unknown.value) == str(wrong.value)
        assert unknown.value.status_code == wrong.value.status_code == 401

    def test_disabled_account(self, authority, identities, user):
        identities.disable(ALICE)
        with pytest.raises(AccountDisabledError):
            authority.login(ALICE, ALICE_PASSWORD)

    def test_disabled_account_wrong_password(self, authority, identities, user):
        identities.disable(ALICE)
        with pytest.raises(InvalidCredentialsError):
            authority.login(ALICE, "wrong-password")

    def test_login_ttl(self, authority, user):
        result = authority.login(ALICE, ALICE_PASSWORD, ttl_days=1)
        remaining = result.expires_at - utcnow()
        assert timedelta(hours=23) < remaining <= timedelta(days=1)

    def test_login_requires_identity_store(self, db):
        with pytest.raises(RuntimeError):
            SessionAuthority(db, secret=SECRET).login(ALICE, ALICE_PASSWORD)


class TestRevocation:
    def test_revoke_token(self, authority, user):
        result = authority.login(ALICE, ALICE_PASSWORD)
        assert authority.revoke_token(result.token) is True
        assert authority.is_revoked(result.token) is True

    def test_revoke_untracked_token(self, authority, user):
        token, _ = authority.issue_token(ALICE, "user")
        assert authority.revoke_token(token) is True
        with pytest.raises(TokenRevokedError):
            authority.validate(token)

    def test_revoke_garbage(self, authority):
        assert authority.revoke_token("garbage") is False

    def test_revoke_all_for_user(self, authority, user):
        tokens = [authority.login(ALICE, ALICE_PASSWORD).token for _ in range(3)]
        admin = authority.login("admin@pman.system", "DefaultPassword")

        assert authority.revoke_all_for_user(ALICE) == 3
        assert authority.revoke_all_for_user(ALICE) == 0
        assert all(authority.is_revoked(t) for t in tokens)
        assert authority.is_revoked(admin.token) is False

    def test_revoke_all_skips_expired(self, authority, user):
        token, expires_at = authority.issue_token(ALICE, "user", ttl_days=1, now=utcnow() - timedelta(days=5))
        authority.record_issued_token(token, ALICE, expires_at)
        assert authority.revoke_all_for_user(ALICE) == 0


class TestCleanup:
    def test_removes_only_expired(self, authority, db, user):
        live = authority.login(ALICE, ALICE_PASSWORD)
        old, expires_at = authority.issue_token(ALICE, "user", ttl_days=1, now=utcnow() - timedelta(days=5))
        authority.record_issued_token(old, ALICE, expires_at)

        assert authority.cleanup_expired() == 1
        assert [r["token_hash"] for r in _stored_rows(db)] == [hash_token(live.token)]

    def test_idempotent(self, authority, user):
        old, expires_at = authority.issue_token(ALICE, "user", ttl_days=1, now=utcnow() - timedelta(days=5))
        authority.record_issued_token(old, ALICE, expires_at)
        assert authority.cleanup_expired() == 1
        assert authority.cleanup_expired() == 0

    def test_explicit_now(self, authority, user):
        authority.login(ALICE, ALICE_PASSWORD)
        assert authority.cleanup_expired(now=utcnow() + timedelta(days=100)) == 1
