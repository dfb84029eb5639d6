"""
Service wiring: build the repositories and the session authority from settings.

Usage:
    from pman.service import build_services

    services = build_services()
    result = services.authority.login("admin@pman.system", "DefaultPassword")
    caller = services.resolve_caller(result.token)
    services.secrets.read("db/password", "team1", caller.group_grants)
"""
import logging
from dataclasses import dataclass

from config.settings import AppSettings, get_settings
from core.db import DatabaseManager
from core.logging_config import configure_logging
from .cipher import SecretCipher
from .config import BootstrapAdmin, PasswordPolicy
from .identity import IdentityStore
from .schema import initialize
from .secret_store import SecretStore
from .tokens import SessionAuthority
from .types import Caller

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request layer needs, sharing one database."""
    db: DatabaseManager
    cipher: SecretCipher
    identities: IdentityStore
    authority: SessionAuthority
    secrets: SecretStore

    def resolve_caller(self, token: str) -> Caller:
        """Validate a bearer token and return the caller's current grants.

        Grants are read from the identity row on every call, so a grant
        change applies to tokens issued before it.
        """
        claims = self.authority.validate(token)
        identity = self.identities.get(claims.email)
        return Caller(email=identity.email, role=identity.role, group_grants=identity.group_grants)


def build_services(
    settings: AppSettings | None = None,
    db: DatabaseManager | None = None,
    setup_logging: bool = False,
) -> Services:
    """Construct and initialize the service graph.

    Args:
        settings: Application settings (``get_settings()`` when omitted)
        db: Database manager (the shared ``DatabaseManager.get_instance()`` over
            ``settings.database.db_path`` when omitted)
        setup_logging: Attach the configured handlers to the ``pman`` logger
    """
    settings = settings or get_settings()
    if setup_logging:
        configure_logging(settings.log_level, settings.log_format, settings.log_file)
    auth = settings.auth

    if db is None:
        db = DatabaseManager.get_instance(
            db_path=settings.database.db_path,
            pool_size=settings.database.db_pool_size,
        )

    bootstrap = BootstrapAdmin.from_settings(settings.bootstrap)
    initialize(db, bootstrap)

    cipher = SecretCipher(auth.encryption_key.get_secret_value())
    identities = IdentityStore(
        db,
        policy=PasswordPolicy.from_settings(auth),
        admin_email=bootstrap.email,
    )
    authority = SessionAuthority(
        db,
        secret=auth.signing_secret,
        identities=identities,
        issuer=auth.domain_name,
        default_ttl_days=auth.default_expire_days,
        algorithm=auth.token_algorithm,
        require_tracked_tokens=auth.require_tracked_tokens,
    )
    identities.authority = authority

    logger.info("Services ready (db=%s, issuer=%s)", db.db_path, auth.domain_name)
    return Services(
        db=db,
        cipher=cipher,
        identities=identities,
        authority=authority,
        secrets=SecretStore(db, cipher),
    )
