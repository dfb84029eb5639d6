"""
pman: hierarchical encrypted secret store with group-scoped access control.

Public API:
- Wiring: build_services, Services
- Secrets: SecretStore, SecretCipher, build_tree, render_tree
- Identities: IdentityStore
- Sessions: SessionAuthority, hash_token
- Permissions: parse_grants, authorize, format_grants

Internal modules should import from submodules directly.
External callers should use this facade.
"""

# =============================================================================
# Types
# =============================================================================
from .types import (
    Caller,
    GroupGrant,
    Identity,
    LoginResult,
    Permission,
    Role,
    SecretInfo,
    TokenClaims,
)

# =============================================================================
# Permissions
# =============================================================================
from .permissions import (
    authorize,
    format_grants,
    group_names,
    normalize_grants,
    parse_grants,
)

# =============================================================================
# Secrets
# =============================================================================
from .cipher import SecretCipher, generate_key
from .secret_store import SecretStore
from .tree import TreeNode, build_tree, render_tree

# =============================================================================
# Identities & Sessions
# =============================================================================
from .identity import IdentityStore
from .tokens import SessionAuthority, hash_token

# =============================================================================
# Wiring
# =============================================================================
from .service import Services, build_services

__all__ = [
    "Caller",
    "GroupGrant",
    "Identity",
    "LoginResult",
    "Permission",
    "Role",
    "SecretInfo",
    "TokenClaims",
    "authorize",
    "format_grants",
    "group_names",
    "normalize_grants",
    "parse_grants",
    "SecretCipher",
    "generate_key",
    "SecretStore",
    "TreeNode",
    "build_tree",
    "render_tree",
    "IdentityStore",
    "SessionAuthority",
    "hash_token",
    "Services",
    "build_services",
]
