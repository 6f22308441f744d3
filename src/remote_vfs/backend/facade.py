"""Backend Client Facade: the capability interface each backend implements.

Nodes, the listing reconciler and the ACL translator only ever talk to this
protocol, never to a backend SDK. A new backend implements these methods and
nothing else.

Contract notes:
    - Keys are backend-native strings without a leading separator; the root
      is "". Folder markers live at ``key + delimiter``.
    - ``stat_object``, ``stat_folder_marker`` and ``delete_object`` report a
      missing key by returning ``NotFound``. Every other failure raises
      ``BackendUnavailableError``.
    - ``open_read`` raises ``NotFoundError`` for a missing key.
    - Streams returned by ``open_read`` read forward from the given offset;
      sinks returned by ``open_write`` persist their content on ``close()``.
"""

from __future__ import annotations

from typing import BinaryIO, Protocol

from remote_vfs.backend.models import ListPage, NativeAcl, NotFound, ObjectMetadata


class BackendFacade(Protocol):
    """Narrow, backend-specific capability interface."""

    def stat_object(self, key: str) -> ObjectMetadata | NotFound:
        """Fetch metadata for the object stored at ``key``."""
        ...

    def stat_folder_marker(self, key: str) -> ObjectMetadata | NotFound:
        """Fetch metadata for the folder marker ``key`` (ends with the delimiter)."""
        ...

    def open_read(self, key: str, offset: int = 0) -> BinaryIO:
        """Open a forward-only stream over the object content starting at ``offset``."""
        ...

    def open_write(self, key: str) -> BinaryIO:
        """Open a sink that replaces the object content when closed."""
        ...

    def delete_object(self, key: str) -> NotFound | None:
        """Delete the object at ``key``."""
        ...

    def list_page(
        self,
        prefix: str,
        delimiter: str,
        continuation_token: str | None = None,
        page_size: int | None = None,
    ) -> ListPage:
        """List one page of common prefixes and object summaries under ``prefix``."""
        ...

    def get_acl(self, key: str) -> NativeAcl:
        """Read the native ACL of ``key`` ("" addresses the container/bucket)."""
        ...

    def set_acl(self, key: str, acl: NativeAcl) -> None:
        """Replace the native ACL of ``key``."""
        ...

    def create_folder_marker(self, key: str) -> None:
        """Write a zero-length folder marker object at ``key``."""
        ...

    def object_url(self, key: str) -> str:
        """Return a direct URL for ``key``."""
        ...

    def signed_url(self, key: str, expires_in: int) -> str:
        """Return a read-only URL for ``key`` that stops working after ``expires_in`` seconds."""
        ...
