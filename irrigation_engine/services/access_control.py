"""Role-based capability checks for operator commands."""
from typing import Optional
import enum


class Role(enum.Enum):
    """Dashboard user roles."""
    ADMIN = "admin"
    GARDENER = "gardener"
    USER = "user"


# Roles allowed to change irrigation settings or operate the valve
MUTATING_ROLES = {Role.ADMIN, Role.GARDENER}


def parse_role(value: Optional[str]) -> Role:
    """Parse a role name; anything unknown or missing is a plain user."""
    if not value:
        return Role.USER
    try:
        return Role(value.strip().lower())
    except ValueError:
        return Role.USER


def can_mutate(role) -> bool:
    """Check whether a role may issue irrigation commands."""
    if not isinstance(role, Role):
        role = parse_role(role)
    return role in MUTATING_ROLES
