"""
Session tokens: JWT issuance and validation with server-side revocation.

Handles:
- Login (credential check, token issue, token tracking)
- Token creation and decoding (HS256, PyJWT)
- Token revocation (single token, or every live token of a user)
- Periodic sweep of expired tracking rows

Only the SHA-256 digest of a bearer token is stored. Tokens issued before
tracking existed have no row; they are accepted unless
``require_tracked_tokens`` is set.

Security Note:
    Never log bearer tokens. Emails and counts are fine.
"""
import hashlib
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta

import jwt

from core.db import DatabaseManager
from core.errors import (
    AccountDisabledError,
    ConflictError,
    InvalidCredentialsError,
    TokenExpiredError,
    TokenMalformedError,
    TokenRevokedError,
    TokenSignatureError,
    ValidationError,
)
from core.timestamps import from_epoch, isonow, now as utcnow, to_iso
from .types import LoginResult, Role, TokenClaims

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 24
REQUIRED_CLAIMS = ["email", "role", "iat", "exp", "iss", "jti"]

_REVOKE_USER_TOKENS = """
UPDATE revoked_tokens SET revoked = 1
WHERE user_email = ? AND revoked = 0 AND expires_at > ?
"""


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a bearer token (the only form ever persisted)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionAuthority:
    """Issues, validates and revokes session tokens.

    Args:
        db: Database manager holding the ``revoked_tokens`` table
        secret: HMAC signing secret
        identities: Identity store for login and the disabled-account check
        issuer: Value of the ``iss`` claim (the configured domain name)
        default_ttl_days: Lifetime used when a caller gives none
        algorithm: JWT signing algorithm
        require_tracked_tokens: Treat tokens with no tracking row as revoked
    """

    def __init__(
        self,
        db: DatabaseManager,
        secret: str,
        identities=None,
        issuer: str = "pman.local",
        default_ttl_days: int = DEFAULT_TTL_DAYS,
        algorithm: str = "HS256",
        require_tracked_tokens: bool = False,
    ):
        if not secret:
            raise ValueError("Token signing secret must not be empty")
        self._db = db
        self._secret = secret
        self._identities = identities
        self._issuer = issuer
        self._default_ttl_days = default_ttl_days if default_ttl_days > 0 else DEFAULT_TTL_DAYS
        self._algorithm = algorithm
        self._require_tracked = require_tracked_tokens

    def __repr__(self) -> str:
        return f"<SessionAuthority issuer={self._issuer!r} algorithm={self._algorithm}>"

    # =========================================================================
    # Login
    # =========================================================================

    def login(self, email: str, password: str, ttl_days: int | None = None) -> LoginResult:
        """Check credentials and issue a tracked token.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password (same message)
            AccountDisabledError: Password is right but the account is disabled
        """
        if self._identities is None:
            raise RuntimeError("SessionAuthority.login requires an identity store")

        identity = self._identities.verify_credentials(email, password)
        if identity is None:
            logger.info("Failed login for %s", email)
            raise InvalidCredentialsError()

        if not identity.enabled:
            logger.info("Login refused for disabled user %s", email)
            raise AccountDisabledError()

        token, expires_at = self.issue_token(identity.email, identity.role, ttl_days)
        self.record_issued_token(token, identity.email, expires_at)

        logger.info("User logged in: %s (expires %s)", identity.email, to_iso(expires_at))
        return LoginResult(token=token, expires_at=expires_at, identity=identity)

    # =========================================================================
    # Token Creation
    # =========================================================================

    def issue_token(
        self,
        email: str,
        role: "str | Role",
        ttl_days: int | None = None,
        now: datetime | None = None,
    ) -> tuple[str, datetime]:
        """Create a signed token.

        Args:
            email: Subject email
            role: Subject role
            ttl_days: Lifetime in days; missing or non-positive uses the default
            now: Issue time (defaults to the current time)

        Returns:
            (token, expires_at) tuple
        """
        role = Role.parse(role)
        if not ttl_days or ttl_days <= 0:
            ttl_days = self._default_ttl_days

        issued_at = (now or utcnow()).replace(microsecond=0)
        expires_at = issued_at + timedelta(days=ttl_days)
        payload = {
            "email": email,
            "role": role.value,
            "iat": issued_at,
            "exp": expires_at,
            "iss": self._issuer,
            "jti": str(uuid.uuid4()),
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return token, expires_at

    def record_issued_token(self, token: str, email: str, expires_at: datetime) -> None:
        """Start tracking a token so it can be revoked later."""
        with self._db.connect() as conn:
            try:
                conn.execute(
                    """INSERT INTO revoked_tokens (token_hash, user_email, expires_at, revoked, created_at)
                       VALUES (?, ?, ?, 0, ?)""",
                    (hash_token(token), email, to_iso(expires_at), isonow()),
                )
            except sqlite3.IntegrityError:
                raise ConflictError("Token is already tracked") from None

    # =========================================================================
    # Token Decoding/Validation
    # =========================================================================

    def _decode(self, token: str, verify_exp: bool = True) -> dict:
        if not token or not isinstance(token, str):
            raise TokenMalformedError("Token is missing")
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                options={"require": REQUIRED_CLAIMS, "verify_exp": verify_exp},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired") from None
        except jwt.InvalidSignatureError:
            raise TokenSignatureError("Token signature is invalid") from None
        except jwt.PyJWTError as e:
            raise TokenMalformedError(f"Token is invalid: {e}") from None

    def validate(self, token: str) -> TokenClaims:
        """Verify a token and return its claims.

        Signature and expiry are checked before the revocation store is
        consulted, so garbage tokens never cost a lookup.

        Raises:
            TokenMalformedError: Not a well-formed token for this issuer
            TokenSignatureError: Signed with another secret
            TokenExpiredError: Past ``exp``
            TokenRevokedError: Revoked, or the identity is gone or disabled
        """
        payload = self._decode(token)

        try:
            role = Role.parse(payload["role"])
        except ValidationError:
            raise TokenMalformedError("Token carries an unknown role") from None

        claims = TokenClaims(
            email=payload["email"],
            role=role,
            issued_at=from_epoch(payload["iat"]),
            expires_at=from_epoch(payload["exp"]),
            jti=payload["jti"],
        )

        if self.is_revoked(token):
            raise TokenRevokedError("Token has been revoked")

        if self._identities is not None:
            identity = self._identities.find(claims.email)
            if identity is None or not identity.enabled:
                raise TokenRevokedError("Token owner no longer has access")

        return claims

    # =========================================================================
    # Revocation
    # =========================================================================

    def is_revoked(self, token: str) -> bool:
        """Whether a live tracking row marks this token revoked.

        An untracked token counts as revoked only with ``require_tracked_tokens``.
        """
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT revoked FROM revoked_tokens WHERE token_hash = ? AND expires_at > ?",
                (hash_token(token), isonow()),
            ).fetchone()

        if row is None:
            return self._require_tracked
        return bool(row["revoked"])

    def revoke_token(self, token: str) -> bool:
        """Revoke one token (logout).

        A structurally valid token with no tracking row gets a revoked row.

        Returns:
            True if the token is now revoked, False if it was not a token of ours
        """
        try:
            payload = self._decode(token, verify_exp=False)
        except (TokenMalformedError, TokenSignatureError):
            return False

        expires_at = from_epoch(payload["exp"])
        with self._db.connect() as conn:
            conn.execute(
                """INSERT INTO revoked_tokens (token_hash, user_email, expires_at, revoked, created_at)
                   VALUES (?, ?, ?, 1, ?)
                   ON CONFLICT (token_hash) DO UPDATE SET revoked = 1""",
                (hash_token(token), payload["email"], to_iso(expires_at), isonow()),
            )

        logger.info("Token revoked for %s", payload["email"])
        return True

    def revoke_all_for_user(self, email: str, conn=None) -> int:
        """Revoke every live, not yet revoked token of a user.

        Args:
            email: Token owner
            conn: Open connection of a caller's transaction; the revocation
                then commits or rolls back with that transaction

        Returns:
            Number of tokens revoked
        """
        params = (email, isonow())
        if conn is not None:
            count = conn.execute(_REVOKE_USER_TOKENS, params).rowcount
        else:
            with self._db.connect() as conn:
                count = conn.execute(_REVOKE_USER_TOKENS, params).rowcount

        logger.info("Revoked %d tokens for %s", count, email)
        return count

    def cleanup_expired(self, now: datetime | None = None) -> int:
        """Delete tracking rows past their expiry. Safe to run at any time.

        Returns:
            Number of rows removed
        """
        cutoff = to_iso(now) if now else isonow()
        with self._db.connect() as conn:
            count = conn.execute(
                "DELETE FROM revoked_tokens WHERE expires_at <= ?", (cutoff,)
            ).rowcount

        if count:
            logger.info("Removed %d expired token records", count)
        return count
