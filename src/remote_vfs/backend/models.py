"""Data models exchanged across the Backend Client Facade."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class NotFound:
    """Probe result for a key with no object behind it."""

    key: str


@dataclass(frozen=True)
class ObjectMetadata:
    """Immutable metadata snapshot for one backend object.

    Attributes:
        content_length: Size in bytes.
        last_modified: Last modification time, timezone-aware when known.
        content_type: MIME type, or None when the backend reports none.
        etag: Entity tag as reported by the backend (may be quoted).
    """

    content_length: int = 0
    last_modified: datetime | None = None
    content_type: str | None = None
    etag: str | None = None


@dataclass(frozen=True)
class ObjectSummary:
    """One object entry of a listing page."""

    key: str
    size: int
    last_modified: datetime | None = None
    etag: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class ListPage:
    """One page of a prefix/delimiter listing.

    Attributes:
        common_prefixes: Grouped key prefixes, each ending with the delimiter.
        summaries: Object entries in backend order.
        next_token: Continuation token, or None when the listing is exhausted.
    """

    common_prefixes: list[str] = field(default_factory=list)
    summaries: list[ObjectSummary] = field(default_factory=list)
    next_token: str | None = None


class NativePermission(Enum):
    """Permission levels of the native grant model."""

    FULL_CONTROL = "FULL_CONTROL"
    READ = "READ"
    WRITE = "WRITE"
    READ_ACP = "READ_ACP"
    WRITE_ACP = "WRITE_ACP"


class GroupGrantee(Enum):
    """Predefined native grantee groups."""

    ALL_USERS = "http://acs.amazonaws.com/groups/global/AllUsers"
    AUTHENTICATED_USERS = "http://acs.amazonaws.com/groups/global/AuthenticatedUsers"
    LOG_DELIVERY = "http://acs.amazonaws.com/groups/s3/LogDelivery"


@dataclass(frozen=True)
class CanonicalGrantee:
    """A native grantee identified by an account or user id."""

    id: str
    display_name: str | None = None


@dataclass(frozen=True)
class NativeOwner:
    """Owner identity of a native ACL."""

    id: str
    display_name: str | None = None


@dataclass(frozen=True)
class NativeGrant:
    grantee: GroupGrantee | CanonicalGrantee
    permission: NativePermission


@dataclass
class NativeAcl:
    """Backend-native access control list: an owner plus a list of grants."""

    owner: NativeOwner
    grants: list[NativeGrant] = field(default_factory=list)

    def grant(self, grantee: GroupGrantee | CanonicalGrantee, permission: NativePermission) -> None:
        self.grants.append(NativeGrant(grantee=grantee, permission=permission))
