"""Bidirectional translation between AclModel and the native grant model."""

from __future__ import annotations

import logging

from remote_vfs.acl.models import FULL_CONTROL, AclModel, Group, Permission
from remote_vfs.backend.models import (
    CanonicalGrantee,
    GroupGrantee,
    NativeAcl,
    NativeOwner,
    NativePermission,
)

logger = logging.getLogger(__name__)

_NATIVE_RIGHTS: dict[NativePermission, frozenset[Permission]] = {
    NativePermission.FULL_CONTROL: FULL_CONTROL,
    NativePermission.READ: frozenset({Permission.READ}),
    NativePermission.WRITE: frozenset({Permission.WRITE}),
}


def read_acl(native: NativeAcl) -> AclModel:
    """Project a native ACL onto the three-group model.

    All-users grants map to EVERYONE, authenticated-users grants to
    AUTHENTICATED_USERS, and canonical grants to the owner's own id map to
    OWNER. Grants to any other identity have no group to land in and are
    dropped. Unrecognized permissions and grantees are skipped with a
    warning.

    Args:
        native: Backend-native ACL.

    Returns:
        The equivalent AclModel.
    """
    model = AclModel(owner=native.owner)
    for grant in native.grants:
        rights = _NATIVE_RIGHTS.get(grant.permission)
        if rights is None:
            logger.warning(
                "[read_acl] skipping unknown permission; permission:%s", grant.permission.value
            )
            continue

        grantee = grant.grantee
        if grantee == GroupGrantee.ALL_USERS:
            model.allow(Group.EVERYONE, *rights)
        elif grantee == GroupGrantee.AUTHENTICATED_USERS:
            model.allow(Group.AUTHENTICATED_USERS, *rights)
        elif isinstance(grantee, CanonicalGrantee) and grantee.id == native.owner.id:
            model.allow(Group.OWNER, *rights)
        else:
            logger.warning("[read_acl] skipping grantee outside model groups; grantee:%s", grantee)
    return model


def write_acl(model: AclModel, owner: NativeOwner) -> NativeAcl:
    """Build a native ACL from the three-group model.

    Each group with permissions gets exactly one native grant: FULL_CONTROL
    when it holds both READ and WRITE, otherwise READ when READ is present,
    otherwise WRITE.

    Args:
        model: Generic ACL to translate.
        owner: Native owner to stamp on the result.

    Returns:
        The native ACL.
    """
    native = NativeAcl(owner=owner)
    for group, rights in model.grants.items():
        if not rights:
            continue

        if rights == FULL_CONTROL:
            permission = NativePermission.FULL_CONTROL
        elif Permission.READ in rights:
            permission = NativePermission.READ
        elif Permission.WRITE in rights:
            permission = NativePermission.WRITE
        else:
            logger.warning("[write_acl] skipping unknown set of rights; rights:%s", rights)
            continue

        grantee: GroupGrantee | CanonicalGrantee
        if group is Group.EVERYONE:
            grantee = GroupGrantee.ALL_USERS
        elif group is Group.AUTHENTICATED_USERS:
            grantee = GroupGrantee.AUTHENTICATED_USERS
        else:
            grantee = CanonicalGrantee(owner.id)
        native.grant(grantee, permission)
    return native
