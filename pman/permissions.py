"""
Authorization: group grant parsing and read/write checks.

A grant string lives denormalized on the identity, e.g.::

    "team1:read_write,team2:read"

It is reparsed on every check instead of being cached, so a grant change
takes effect on the very next request. Parsing is all-or-nothing: a single
bad entry invalidates the whole string, and ``authorize`` treats an
unparsable string as "no access" rather than raising.
"""
import logging

from core.errors import GrantFormatError
from .types import GroupGrant, Permission

logger = logging.getLogger(__name__)

ENTRY_SEPARATOR = ","
FIELD_SEPARATOR = ":"


# =============================================================================
# Parsing
# =============================================================================

def parse_grants(grant_string: str) -> tuple[GroupGrant, ...]:
    """Parse a grant string into an ordered tuple of unique grants.

    Args:
        grant_string: Comma-separated ``group:permission`` entries

    Returns:
        Grants in the order given (empty tuple for an empty string)

    Raises:
        GrantFormatError: If any entry is malformed or a group repeats
    """
    if grant_string is None or not grant_string.strip():
        return ()

    grants: list[GroupGrant] = []
    seen: set[str] = set()

    for raw_entry in grant_string.split(ENTRY_SEPARATOR):
        entry = raw_entry.strip()
        if not entry:
            raise GrantFormatError(f"Empty entry in group list: '{grant_string}'")

        fields = [f.strip() for f in entry.split(FIELD_SEPARATOR)]
        if len(fields) != 2 or not fields[0] or not fields[1]:
            raise GrantFormatError(
                f"Invalid group format: '{entry}' (expected format: groupname:permission)"
            )

        group_name, permission = fields
        try:
            level = Permission(permission)
        except ValueError:
            raise GrantFormatError(
                f"Invalid permission '{permission}' for group '{group_name}' "
                f"(must be 'read' or 'read_write')"
            ) from None

        if group_name in seen:
            raise GrantFormatError(f"Group '{group_name}' listed more than once")
        seen.add(group_name)
        grants.append(GroupGrant(group_name=group_name, permission=level))

    return tuple(grants)


def format_grants(grants) -> str:
    """Serialize grants back to the canonical ``name:perm,name:perm`` form."""
    return ENTRY_SEPARATOR.join(str(grant) for grant in grants)


def normalize_grants(grant_string: str) -> str:
    """Validate a grant string and return its canonical form.

    Raises:
        GrantFormatError: If the string does not parse
    """
    return format_grants(parse_grants(grant_string))


# =============================================================================
# Authorization
# =============================================================================

def authorize(grant_string: str, target_group: str, require_write: bool) -> bool:
    """Check whether a grant string allows access to a group.

    Read access is satisfied by either permission level; write access needs
    ``read_write``. A malformed grant string denies everything.

    Args:
        grant_string: The caller's grants
        target_group: Group that owns the secret
        require_write: True for mutating operations

    Returns:
        True if access is allowed
    """
    try:
        grants = parse_grants(grant_string)
    except GrantFormatError as e:
        logger.warning("Denying access to group %s: unparsable grants (%s)", target_group, e)
        return False

    for grant in grants:
        if grant.group_name == target_group:
            if require_write:
                return grant.allows_write
            return True

    return False


def group_names(grant_string: str) -> list[str]:
    """Names of the groups in a grant string (empty if it does not parse)."""
    try:
        return [grant.group_name for grant in parse_grants(grant_string)]
    except GrantFormatError:
        return []
