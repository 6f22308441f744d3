"""Generic three-group access control model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Group(Enum):
    OWNER = "owner"
    AUTHENTICATED_USERS = "authenticated_users"
    EVERYONE = "everyone"


class Permission(Enum):
    READ = "read"
    WRITE = "write"


FULL_CONTROL: frozenset[Permission] = frozenset(Permission)


@dataclass
class AclModel:
    """Access rules for one node.

    Attributes:
        owner: Backend owner identity (opaque to this model).
        grants: Permissions per group. A group with no permissions has no
            entry at all; empty sets are never stored.
    """

    owner: Any = None
    grants: dict[Group, frozenset[Permission]] = field(default_factory=dict)

    def allow(self, group: Group, *permissions: Permission) -> None:
        """Add permissions to a group."""
        merged = self.grants.get(group, frozenset()) | frozenset(permissions)
        if merged:
            self.grants[group] = merged

    def deny(self, group: Group, *permissions: Permission) -> None:
        """Remove permissions from a group, dropping the group when none remain."""
        remaining = self.grants.get(group, frozenset()) - frozenset(permissions)
        if remaining:
            self.grants[group] = remaining
        else:
            self.grants.pop(group, None)

    def is_allowed(self, group: Group, permission: Permission) -> bool:
        return permission in self.grants.get(group, frozenset())

    def permissions(self, group: Group) -> frozenset[Permission]:
        return self.grants.get(group, frozenset())
