"""OneDrive backend: the Backend Client Facade over Microsoft Graph drive items."""

from __future__ import annotations

import io
import logging
import mimetypes
from datetime import UTC, datetime, timedelta
from typing import IO, TYPE_CHECKING, Any
from urllib.parse import quote

from remote_vfs.backend.models import (
    CanonicalGrantee,
    GroupGrantee,
    ListPage,
    NativeAcl,
    NativeOwner,
    NativePermission,
    NotFound,
    ObjectMetadata,
    ObjectSummary,
)
from remote_vfs.errors import BackendUnavailableError, NotFoundError, UnsupportedOperationError
from remote_vfs.graph.client import (
    GRAPH_BASE_URL,
    GraphApiError,
    GraphAuthError,
    GraphClient,
    graph_client_from_config,
)
from remote_vfs.graph.models import (
    FIELD_CONFLICT_BEHAVIOR,
    FIELD_CREATED_BY,
    FIELD_DISPLAY_NAME,
    FIELD_ETAG,
    FIELD_EXPIRATION,
    FIELD_FILE,
    FIELD_FOLDER,
    FIELD_GRANTED_TO,
    FIELD_ID,
    FIELD_LAST_MODIFIED,
    FIELD_LINK,
    FIELD_MIME_TYPE,
    FIELD_NAME,
    FIELD_ROLES,
    FIELD_SCOPE,
    FIELD_SIZE,
    FIELD_TYPE,
    FIELD_USER,
    FIELD_WEB_URL,
    LINK_TYPE_VIEW,
    ODATA_NEXT_LINK,
    ODATA_VALUE,
    ROLE_OWNER,
    ROLE_READ,
    ROLE_WRITE,
    SCOPE_ANONYMOUS,
    SCOPE_ORGANIZATION,
)

if TYPE_CHECKING:
    from remote_vfs.config import VfsConfig

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_RANGE_NOT_SATISFIABLE = 416
SEPARATOR = "/"


class GraphDriveBackend:
    """Backend Client Facade for one user's OneDrive.

    OneDrive is hierarchical, so folders exist as real drive items rather
    than as zero-length marker objects. ``stat_object`` only reports file
    items and ``stat_folder_marker`` only reports folder items, which keeps
    the node attach probes unambiguous. Listings map child folders to
    common prefixes and child files to summaries, following
    ``@odata.nextLink`` as the continuation token.
    """

    def __init__(self, graph_client: GraphClient, drive_user: str) -> None:
        """Initialise the backend.

        Args:
            graph_client: Authenticated GraphClient instance.
            drive_user: UPN or object ID of the OneDrive user.
        """
        self._graph = graph_client
        self._drive_user = drive_user

    # ------------------------------------------------------------------
    # BackendFacade
    # ------------------------------------------------------------------

    def stat_object(self, key: str) -> ObjectMetadata | NotFound:
        item = self._get_item("stat_object", key)
        if item is None or FIELD_FILE not in item:
            return NotFound(key)
        return self._item_metadata(item)

    def stat_folder_marker(self, key: str) -> ObjectMetadata | NotFound:
        item = self._get_item("stat_folder_marker", key.rstrip(SEPARATOR))
        if item is None or FIELD_FOLDER not in item:
            return NotFound(key)
        return self._item_metadata(item)

    def open_read(self, key: str, offset: int = 0) -> IO[bytes]:
        path = f"{self._item_path(key)}/content"
        try:
            return self._graph.open_content(path, offset)
        except GraphApiError as exc:
            if exc.status_code == HTTP_NOT_FOUND:
                raise NotFoundError("open_read", key) from exc
            if exc.status_code == HTTP_RANGE_NOT_SATISFIABLE:
                # Offset at or past the end of the file.
                return io.BytesIO(b"")
            raise BackendUnavailableError("open_read", key, exc.message) from exc
        except GraphAuthError as exc:
            raise BackendUnavailableError("open_read", key, str(exc)) from exc

    def open_write(self, key: str) -> _GraphUploadSink:
        return _GraphUploadSink(self, key)

    def delete_object(self, key: str) -> NotFound | None:
        try:
            self._graph.delete(self._item_path(key.rstrip(SEPARATOR)))
        except GraphApiError as exc:
            if exc.status_code == HTTP_NOT_FOUND:
                return NotFound(key)
            raise BackendUnavailableError("delete_object", key, exc.message) from exc
        except GraphAuthError as exc:
            raise BackendUnavailableError("delete_object", key, str(exc)) from exc
        logger.info("[delete_object] deleted drive item; key:%s", key)
        return None

    def list_page(
        self,
        prefix: str,
        delimiter: str,
        continuation_token: str | None = None,
        page_size: int | None = None,
    ) -> ListPage:
        if delimiter != SEPARATOR:
            raise UnsupportedOperationError(f"OneDrive listings only support {SEPARATOR!r}")

        if continuation_token is not None:
            path = self._relative_path(continuation_token)
        else:
            path = f"{self._item_path(prefix.rstrip(SEPARATOR))}/children"
            if page_size:
                path = f"{path}?$top={page_size}"

        try:
            response = self._graph.get(path)
        except GraphApiError as exc:
            if exc.status_code == HTTP_NOT_FOUND:
                return ListPage()
            raise BackendUnavailableError("list_page", prefix, exc.message) from exc
        except GraphAuthError as exc:
            raise BackendUnavailableError("list_page", prefix, str(exc)) from exc

        page = ListPage(next_token=response.get(ODATA_NEXT_LINK))
        for child in response.get(ODATA_VALUE, []):
            name = child.get(FIELD_NAME, "")
            if not name:
                continue
            if FIELD_FOLDER in child:
                page.common_prefixes.append(f"{prefix}{name}{SEPARATOR}")
                continue
            meta = self._item_metadata(child)
            page.summaries.append(
                ObjectSummary(
                    key=f"{prefix}{name}",
                    size=meta.content_length,
                    last_modified=meta.last_modified,
                    etag=meta.etag,
                    content_type=meta.content_type,
                )
            )
        return page

    def get_acl(self, key: str) -> NativeAcl:
        """Map drive item permissions onto the native grant vocabulary.

        The item creator is the owner. Anonymous sharing links grant to all
        users, organization links to authenticated users, and direct user
        grants to canonical grantees.
        """
        item = self._get_item("get_acl", key)
        if item is None:
            raise NotFoundError("get_acl", key)
        creator = item.get(FIELD_CREATED_BY, {}).get(FIELD_USER, {})
        acl = NativeAcl(
            owner=NativeOwner(
                id=creator.get(FIELD_ID, ""),
                display_name=creator.get(FIELD_DISPLAY_NAME),
            )
        )

        try:
            response = self._graph.get(f"{self._item_path(key)}/permissions")
        except GraphApiError as exc:
            raise BackendUnavailableError("get_acl", key, exc.message) from exc
        except GraphAuthError as exc:
            raise BackendUnavailableError("get_acl", key, str(exc)) from exc

        for raw in response.get(ODATA_VALUE, []):
            permission = self._roles_permission(raw.get(FIELD_ROLES, []))
            if permission is None:
                continue
            grantee = self._permission_grantee(raw)
            if grantee is not None:
                acl.grant(grantee, permission)
        return acl

    def set_acl(self, key: str, acl: NativeAcl) -> None:
        raise UnsupportedOperationError("OneDrive permissions cannot be replaced wholesale")

    def create_folder_marker(self, key: str) -> None:
        folder_key = key.rstrip(SEPARATOR)
        parent, _, name = folder_key.rpartition(SEPARATOR)
        body = {FIELD_NAME: name, FIELD_FOLDER: {}, FIELD_CONFLICT_BEHAVIOR: "replace"}
        try:
            self._graph.post(f"{self._item_path(parent)}/children", body)
        except GraphApiError as exc:
            raise BackendUnavailableError("create_folder_marker", key, exc.message) from exc
        except GraphAuthError as exc:
            raise BackendUnavailableError("create_folder_marker", key, str(exc)) from exc
        logger.info("[create_folder_marker] created folder; key:%s", key)

    def object_url(self, key: str) -> str:
        item = self._get_item("object_url", key.rstrip(SEPARATOR))
        if item is None:
            raise NotFoundError("object_url", key)
        return str(item.get(FIELD_WEB_URL, ""))

    def signed_url(self, key: str, expires_in: int) -> str:
        """Create an anonymous view-only sharing link expiring after ``expires_in`` seconds."""
        expiry = datetime.now(tz=UTC) + timedelta(seconds=expires_in)
        body = {
            FIELD_TYPE: LINK_TYPE_VIEW,
            FIELD_SCOPE: SCOPE_ANONYMOUS,
            FIELD_EXPIRATION: expiry.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        try:
            path = f"{self._item_path(key.rstrip(SEPARATOR))}/createLink"
            response = self._graph.post(path, body)
        except GraphApiError as exc:
            if exc.status_code == HTTP_NOT_FOUND:
                raise NotFoundError("signed_url", key) from exc
            raise BackendUnavailableError("signed_url", key, exc.message) from exc
        except GraphAuthError as exc:
            raise BackendUnavailableError("signed_url", key, str(exc)) from exc
        logger.info("[signed_url] created sharing link; key:%s;expires_in:%d", key, expires_in)
        return str(response.get(FIELD_LINK, {}).get(FIELD_WEB_URL, ""))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _upload(self, key: str, content: bytes) -> None:
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        try:
            self._graph.put_content(f"{self._item_path(key)}/content", content, content_type)
        except GraphApiError as exc:
            raise BackendUnavailableError("open_write", key, exc.message) from exc
        except GraphAuthError as exc:
            raise BackendUnavailableError("open_write", key, str(exc)) from exc

    def _item_path(self, key: str) -> str:
        """Graph path addressing the drive item for ``key``.

        Path-addressed items use ``root:/{path}:``; the root itself is ``root``.
        """
        base = f"/users/{self._drive_user}/drive/root"
        if not key:
            return base
        return f"{base}:/{quote(key)}:"

    def _get_item(self, operation: str, key: str) -> dict[str, Any] | None:
        try:
            return self._graph.get(self._item_path(key))
        except GraphApiError as exc:
            if exc.status_code == HTTP_NOT_FOUND:
                return None
            raise BackendUnavailableError(operation, key, exc.message) from exc
        except GraphAuthError as exc:
            raise BackendUnavailableError(operation, key, str(exc)) from exc

    @staticmethod
    def _item_metadata(item: dict[str, Any]) -> ObjectMetadata:
        """Map a raw Graph drive item dict to an ObjectMetadata snapshot."""
        modified = item.get(FIELD_LAST_MODIFIED)
        return ObjectMetadata(
            content_length=int(item.get(FIELD_SIZE, 0)),
            last_modified=datetime.fromisoformat(modified.replace("Z", "+00:00"))
            if modified
            else None,
            content_type=item.get(FIELD_FILE, {}).get(FIELD_MIME_TYPE),
            etag=item.get(FIELD_ETAG),
        )

    @staticmethod
    def _roles_permission(roles: list[str]) -> NativePermission | None:
        if ROLE_OWNER in roles or (ROLE_READ in roles and ROLE_WRITE in roles):
            return NativePermission.FULL_CONTROL
        if ROLE_WRITE in roles:
            return NativePermission.WRITE
        if ROLE_READ in roles:
            return NativePermission.READ
        logger.warning("[get_acl] skipping permission with unknown roles; roles:%s", roles)
        return None

    @staticmethod
    def _permission_grantee(raw: dict[str, Any]) -> GroupGrantee | CanonicalGrantee | None:
        scope = raw.get(FIELD_LINK, {}).get(FIELD_SCOPE)
        if scope == SCOPE_ANONYMOUS:
            return GroupGrantee.ALL_USERS
        if scope == SCOPE_ORGANIZATION:
            return GroupGrantee.AUTHENTICATED_USERS
        user = raw.get(FIELD_GRANTED_TO, {}).get(FIELD_USER, {})
        if FIELD_ID in user:
            return CanonicalGrantee(id=user[FIELD_ID], display_name=user.get(FIELD_DISPLAY_NAME))
        return None

    @staticmethod
    def _relative_path(full_url: str) -> str:
        """Convert a full Graph API URL to a relative path for GraphClient.get()."""
        prefix = GRAPH_BASE_URL
        if full_url.startswith(prefix):
            return full_url[len(prefix) :]
        return full_url


class _GraphUploadSink(io.BytesIO):
    """Buffer that uploads its content to OneDrive when closed."""

    def __init__(self, backend: GraphDriveBackend, key: str) -> None:
        super().__init__()
        self._backend = backend
        self._key = key

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._backend._upload(self._key, self.getvalue())
        finally:
            super().close()


def graph_drive_backend_from_config(
    config: VfsConfig, graph_client: GraphClient | None = None
) -> GraphDriveBackend:
    """Construct a GraphDriveBackend from file system configuration.

    Args:
        config: File system configuration instance.
        graph_client: Optional pre-built client; built from ``config`` when omitted.

    Returns:
        Configured GraphDriveBackend instance.

    Raises:
        ValueError: If no drive user is configured.
    """
    if not config.drive_user:
        raise ValueError("OneDrive backend requires drive_user")
    return GraphDriveBackend(
        graph_client=graph_client or graph_client_from_config(config),
        drive_user=config.drive_user,
    )
