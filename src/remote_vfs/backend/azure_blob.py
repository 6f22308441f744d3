"""Azure Blob Storage backend: the Backend Client Facade over one blob container."""

from __future__ import annotations

import functools
import io
import logging
import mimetypes
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, TypeVar

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.storage.blob import (
    BlobPrefix,
    BlobSasPermissions,
    ContainerClient,
    ContainerSasPermissions,
    ContentSettings,
    PublicAccess,
    generate_blob_sas,
    generate_container_sas,
)

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

if TYPE_CHECKING:
    from remote_vfs.config import VfsConfig

logger = logging.getLogger(__name__)

HTTP_RANGE_NOT_SATISFIABLE = 416
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_T = TypeVar("_T")


def wrap_azure_errors(operation: str) -> Callable[[Callable[..., _T]], Callable[..., _T]]:
    """Translate Azure SDK errors raised by a facade method.

    Methods catch ``ResourceNotFoundError`` themselves where absence is an
    expected result; one that escapes becomes ``NotFoundError``. Every
    other ``AzureError`` becomes ``BackendUnavailableError`` carrying the
    operation and key.
    """

    def decorator(cb: Callable[..., _T]) -> Callable[..., _T]:
        @functools.wraps(cb)
        def _inner(self: AzureBlobBackend, key: str, *args: Any, **kwargs: Any) -> _T:
            try:
                return cb(self, key, *args, **kwargs)
            except ResourceNotFoundError as exc:
                raise NotFoundError(operation, key) from exc
            except AzureError as exc:
                logger.error(
                    "[%s] azure request failed; key:%s;error:%s",
                    operation,
                    key,
                    exc.__class__.__name__,
                )
                raise BackendUnavailableError(
                    operation, key, f"{exc.__class__.__name__}: {exc}"
                ) from exc

        return _inner

    return decorator


class AzureBlobBackend:
    """Backend Client Facade for a single Azure blob container.

    Blob names are the backend keys. Folder markers are zero-length blobs
    whose name ends with the delimiter. Access control exists only at the
    container level, where the public access setting maps onto the native
    grant vocabulary: the storage account owns everything and public read
    access is a READ grant to all users.
    """

    def __init__(
        self,
        container_client: ContainerClient,
        encryption_scope: str | None = None,
    ) -> None:
        """Initialise the backend.

        Args:
            container_client: Client for the container holding all keys.
            encryption_scope: Optional encryption scope applied on upload.
        """
        self._container = container_client
        self._encryption_scope = encryption_scope

    # ------------------------------------------------------------------
    # BackendFacade
    # ------------------------------------------------------------------

    @wrap_azure_errors("stat_object")
    def stat_object(self, key: str) -> ObjectMetadata | NotFound:
        if key == "":
            # The container root is not a blob.
            return NotFound(key)
        try:
            props = self._container.get_blob_client(key).get_blob_properties()
        except ResourceNotFoundError:
            return NotFound(key)
        return ObjectMetadata(
            content_length=props.size,
            last_modified=props.last_modified,
            content_type=props.content_settings.content_type,
            etag=props.etag,
        )

    def stat_folder_marker(self, key: str) -> ObjectMetadata | NotFound:
        return self.stat_object(key)

    @wrap_azure_errors("open_read")
    def open_read(self, key: str, offset: int = 0) -> io.BufferedReader:
        try:
            downloader = self._container.get_blob_client(key).download_blob(
                offset=offset or None
            )
        except ResourceNotFoundError as exc:
            raise NotFoundError("open_read", key) from exc
        except HttpResponseError as exc:
            if exc.status_code == HTTP_RANGE_NOT_SATISFIABLE:
                # Offset at or past the end of the blob.
                return io.BufferedReader(_DownloadReader(None))
            raise
        return io.BufferedReader(_DownloadReader(downloader))

    def open_write(self, key: str) -> _BlobUploadSink:
        return _BlobUploadSink(self, key)

    @wrap_azure_errors("delete_object")
    def delete_object(self, key: str) -> NotFound | None:
        try:
            self._container.delete_blob(key)
        except ResourceNotFoundError:
            return NotFound(key)
        logger.info("[delete_object] deleted blob; key:%s", key)
        return None

    @wrap_azure_errors("list_page")
    def list_page(
        self,
        prefix: str,
        delimiter: str,
        continuation_token: str | None = None,
        page_size: int | None = None,
    ) -> ListPage:
        pages = self._container.walk_blobs(
            name_starts_with=prefix or None,
            delimiter=delimiter,
            results_per_page=page_size,
        ).by_page(continuation_token=continuation_token)

        common_prefixes: list[str] = []
        summaries: list[ObjectSummary] = []
        for item in next(pages, []):
            if isinstance(item, BlobPrefix):
                common_prefixes.append(item.name)
                continue
            summaries.append(
                ObjectSummary(
                    key=item.name,
                    size=item.size,
                    last_modified=item.last_modified,
                    etag=item.etag,
                    content_type=item.content_settings.content_type
                    if item.content_settings
                    else None,
                )
            )
        return ListPage(common_prefixes, summaries, pages.continuation_token or None)

    @wrap_azure_errors("get_acl")
    def get_acl(self, key: str) -> NativeAcl:
        if key != "":
            raise UnsupportedOperationError("Azure blobs have no per-object ACL")
        policy = self._container.get_container_access_policy()
        owner = self._owner()
        acl = NativeAcl(owner=owner)
        acl.grant(CanonicalGrantee(owner.id), NativePermission.FULL_CONTROL)
        if policy.get("public_access"):
            acl.grant(GroupGrantee.ALL_USERS, NativePermission.READ)
        return acl

    @wrap_azure_errors("set_acl")
    def set_acl(self, key: str, acl: NativeAcl) -> None:
        if key != "":
            raise UnsupportedOperationError("Azure blobs have no per-object ACL")
        public_read = False
        for grant in acl.grants:
            if grant.grantee == GroupGrantee.ALL_USERS and grant.permission in (
                NativePermission.READ,
                NativePermission.FULL_CONTROL,
            ):
                public_read = True
            elif isinstance(grant.grantee, CanonicalGrantee) and grant.grantee.id == acl.owner.id:
                continue
            else:
                logger.warning(
                    "[set_acl] grant not expressible as container access; grantee:%s;permission:%s",
                    grant.grantee,
                    grant.permission.value,
                )
        # Stored access policies are replaced wholesale on write; carry them over.
        current = self._container.get_container_access_policy()
        stored_policies = {
            identifier.id: identifier.access_policy
            for identifier in current.get("signed_identifiers") or []
        }
        self._container.set_container_access_policy(
            signed_identifiers=stored_policies,
            public_access=PublicAccess.CONTAINER if public_read else None,
        )
        logger.info("[set_acl] updated container access; public_read:%s", public_read)

    @wrap_azure_errors("create_folder_marker")
    def create_folder_marker(self, key: str) -> None:
        self._upload(key, b"")

    def object_url(self, key: str) -> str:
        if key == "":
            return str(self._container.url)
        return str(self._container.get_blob_client(key).url)

    def signed_url(self, key: str, expires_in: int) -> str:
        """Shared access signature URL granting read access until expiry.

        The root key signs the container with read and list permissions.
        Signing needs the account key, so the container client must have
        been built from a connection string or a shared key credential.
        """
        account_key = getattr(self._container.credential, "account_key", None)
        if not account_key:
            raise UnsupportedOperationError("Signed URLs need a shared key credential")
        expiry = datetime.now(tz=UTC) + timedelta(seconds=expires_in)
        if key == "":
            token = generate_container_sas(
                account_name=self._container.account_name,
                container_name=self._container.container_name,
                account_key=account_key,
                permission=ContainerSasPermissions(read=True, list=True),
                expiry=expiry,
            )
        else:
            token = generate_blob_sas(
                account_name=self._container.account_name,
                container_name=self._container.container_name,
                blob_name=key,
                account_key=account_key,
                permission=BlobSasPermissions(read=True),
                expiry=expiry,
            )
        logger.info("[signed_url] signed url; key:%s;expires_in:%d", key, expires_in)
        return f"{self.object_url(key)}?{token}"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _owner(self) -> NativeOwner:
        account = self._container.account_name or ""
        return NativeOwner(id=account, display_name=account)

    def _upload(self, key: str, content: bytes) -> None:
        content_type = mimetypes.guess_type(key)[0] or DEFAULT_CONTENT_TYPE
        kwargs: dict[str, Any] = {
            "overwrite": True,
            "content_settings": ContentSettings(content_type=content_type),
        }
        if self._encryption_scope:
            kwargs["encryption_scope"] = self._encryption_scope
        self._container.upload_blob(key, content, **kwargs)
        logger.info("[upload] uploaded blob; key:%s;size:%d", key, len(content))


class _DownloadReader(io.RawIOBase):
    """Raw stream over a StorageStreamDownloader; ``None`` is an empty stream."""

    def __init__(self, downloader: Any) -> None:
        super().__init__()
        self._downloader = downloader

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        if self._downloader is None:
            return 0
        data = self._downloader.read(len(buffer))
        n = len(data)
        buffer[:n] = data
        return n


class _BlobUploadSink(io.BytesIO):
    """Buffer that uploads its content as a blob when closed."""

    def __init__(self, backend: AzureBlobBackend, key: str) -> None:
        super().__init__()
        self._backend = backend
        self._key = key

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._backend._upload(self._key, self.getvalue())
        except AzureError as exc:
            raise BackendUnavailableError("open_write", self._key, str(exc)) from exc
        finally:
            super().close()


def azure_blob_backend_from_config(
    config: VfsConfig, container: str | None = None
) -> AzureBlobBackend:
    """Construct an AzureBlobBackend from file system configuration.

    Args:
        config: File system configuration instance.
        container: Container name; defaults to ``config.container``.

    Returns:
        Configured AzureBlobBackend instance.

    Raises:
        ValueError: If the connection string or container is missing.
    """
    container_name = container or config.container
    if not config.storage_connection_string or not container_name:
        raise ValueError("Azure blob backend requires a connection string and a container")
    client = ContainerClient.from_connection_string(
        conn_str=config.storage_connection_string,
        container_name=container_name,
    )
    return AzureBlobBackend(client, encryption_scope=config.encryption_scope)
