"""Node: one remote object or folder with a lazy attach/detach lifecycle."""

from __future__ import annotations

import io
import logging
import shutil
from dataclasses import replace
from datetime import UTC, datetime
from enum import Enum
from typing import IO, TYPE_CHECKING, Any

from remote_vfs.acl.translator import read_acl, write_acl
from remote_vfs.backend.models import NativeOwner, NotFound, ObjectMetadata
from remote_vfs.content.random_access import RandomAccessContent
from remote_vfs.errors import NotFoundError, VfsError
from remote_vfs.names.models import FileType, Name, to_backend_key
from remote_vfs.tree.listing import ChildEntry, ChildKind, is_folder_placeholder, reconcile_children

if TYPE_CHECKING:
    from remote_vfs.acl.models import AclModel
    from remote_vfs.backend.facade import BackendFacade
    from remote_vfs.config import VfsConfig
    from remote_vfs.tree.filesystem import RemoteFileSystem

logger = logging.getLogger(__name__)


class NodeState(Enum):
    DETACHED = "detached"
    FILE = "file"
    FOLDER = "folder"
    IMAGINARY = "imaginary"


class Node:
    """Handle on one remote object or folder.

    A node starts detached. The first operation that needs metadata
    attaches it by probing the backend:

        1. the exact key as a file object;
        2. ``key + delimiter`` as a folder marker;
        3. neither found: a synthesized, not-yet-persisted object.

    A node flagged as a folder (root, inferred from a listing, or just
    created) skips both probes. ``NotFound`` probe results drive the
    branching; any other backend failure propagates and the node stays
    detached.

    Nodes are not synchronized; one caller at a time per instance.
    """

    def __init__(self, name: Name, filesystem: RemoteFileSystem) -> None:
        self._name = name
        self._fs = filesystem
        self._state = NodeState.DETACHED
        self._metadata: ObjectMetadata | None = None
        self._object_key = to_backend_key(name)
        self._is_folder: bool | None = None
        self._owner: NativeOwner | None = None

    def __repr__(self) -> str:
        return f"Node(name='{self._name}', state={self._state.value})"

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def name(self) -> Name:
        return self._name

    @property
    def filesystem(self) -> RemoteFileSystem:
        return self._fs

    @property
    def key(self) -> str:
        """Backend key derived from the name (no trailing delimiter)."""
        return to_backend_key(self._name)

    @property
    def object_key(self) -> str:
        """Key of the bound backend object; folder markers end with the delimiter."""
        return self._object_key

    @property
    def backend(self) -> BackendFacade:
        return self._fs.backend

    @property
    def config(self) -> VfsConfig:
        return self._fs.config

    @property
    def state(self) -> NodeState:
        return self._state

    @property
    def is_attached(self) -> bool:
        return self._state is not NodeState.DETACHED

    @property
    def metadata(self) -> ObjectMetadata | None:
        return self._metadata

    # ------------------------------------------------------------------
    # Attach / detach
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Bind this node to backend metadata, probing only when needed."""
        if self.is_attached:
            return

        key = self.key
        delimiter = self.config.delimiter

        if self._is_folder:
            self._set_attached(NodeState.FOLDER, self._synthesized_metadata(), key)
            logger.info("[attach] attached flagged folder; key:%s", key)
            return

        result = self.backend.stat_object(key)
        if not isinstance(result, NotFound):
            self._is_folder = False
            self._set_attached(NodeState.FILE, result, key)
            logger.info("[attach] attached file; key:%s", key)
            return

        marker_key = key + delimiter
        result = self.backend.stat_folder_marker(marker_key)
        if not isinstance(result, NotFound):
            self._is_folder = True
            self._set_attached(NodeState.FOLDER, result, marker_key)
            logger.info("[attach] attached folder; key:%s", marker_key)
            return

        self._set_attached(NodeState.IMAGINARY, self._synthesized_metadata(), key)
        logger.info("[attach] attached new object; key:%s", key)

    def detach(self) -> None:
        """Drop cached metadata; the next access re-attaches. Never fails."""
        if not self.is_attached:
            return
        logger.info("[detach] detached; key:%s", self._object_key)
        self._metadata = None
        self._state = NodeState.DETACHED
        self._object_key = self.key
        if not self._is_folder:
            self._is_folder = None

    def refresh(self) -> None:
        self.detach()
        self.attach()

    def _set_attached(self, state: NodeState, metadata: ObjectMetadata, object_key: str) -> None:
        self._state = state
        self._metadata = metadata
        self._object_key = object_key

    def _flag_as_folder(self) -> None:
        self._is_folder = True
        if self.is_attached:
            self._state = NodeState.FOLDER

    def _hydrate(self, metadata: ObjectMetadata, object_key: str) -> None:
        """Attach from listing-derived metadata without a round trip."""
        self._is_folder = False
        self._set_attached(NodeState.FILE, metadata, object_key)

    @staticmethod
    def _synthesized_metadata() -> ObjectMetadata:
        return ObjectMetadata(content_length=0, last_modified=datetime.now(tz=UTC))

    # ------------------------------------------------------------------
    # Type
    # ------------------------------------------------------------------

    def get_type(self) -> FileType:
        """Resolve the node type, attaching first.

        FOLDER when flagged as a folder; IMAGINARY when the backend reports
        no content type; FOLDER for the root key or a placeholder object;
        FILE otherwise.
        """
        metadata = self._attached_metadata()
        if self._is_folder:
            return FileType.FOLDER

        if metadata.content_type is None:
            return FileType.IMAGINARY

        if self._object_key == "" or is_folder_placeholder(
            self._object_key,
            metadata.content_length,
            metadata.etag,
            metadata.content_type,
            self.config.delimiter,
        ):
            return FileType.FOLDER
        return FileType.FILE

    def exists(self) -> bool:
        return self.get_type() is not FileType.IMAGINARY

    def is_file(self) -> bool:
        return self.get_type() is FileType.FILE

    def is_folder(self) -> bool:
        return self.get_type() is FileType.FOLDER

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def _attached_metadata(self) -> ObjectMetadata:
        self.attach()
        if self._metadata is None:
            raise VfsError(f"Node has no metadata after attach: {self._name}")
        return self._metadata

    def get_content_size(self) -> int:
        return self._attached_metadata().content_length

    def get_last_modified_time(self) -> datetime | None:
        return self._attached_metadata().last_modified

    def set_last_modified_time(self, modified: datetime) -> bool:
        """Replace the cached last-modified time.

        Returns:
            True if the value changed.
        """
        metadata = self._attached_metadata()
        if metadata.last_modified == modified:
            return False
        self._metadata = replace(metadata, last_modified=modified)
        return True

    def get_content_type(self) -> str | None:
        return self._attached_metadata().content_type

    def get_etag(self) -> str | None:
        return self._attached_metadata().etag

    def get_md5_hash(self) -> str | None:
        """Backend etag without quotes; for single-part uploads this is the content MD5."""
        etag = self.get_etag()
        return etag.strip('"') if etag is not None else None

    def get_http_url(self) -> str:
        return self.backend.object_url(self.key)

    def get_signed_url(self, expires_in: int) -> str:
        """Time-limited, read-only URL for this file's content.

        Args:
            expires_in: Lifetime of the URL in seconds.

        Raises:
            ValueError: If ``expires_in`` is not positive.
            NotFoundError: If the file does not exist.
            VfsError: If the node is a folder.
        """
        if expires_in <= 0:
            raise ValueError(f"expires_in must be positive, got {expires_in}")
        file_type = self.get_type()
        if file_type is FileType.IMAGINARY:
            raise NotFoundError("get_signed_url", self.key)
        if file_type is FileType.FOLDER:
            raise VfsError(f"Cannot sign a URL for folder {self._name}")
        return self.backend.signed_url(self._object_key, expires_in)

    # ------------------------------------------------------------------
    # Tree navigation
    # ------------------------------------------------------------------

    @property
    def parent(self) -> Node | None:
        parent_name = self._name.parent
        if parent_name is None:
            return None
        return self._fs.resolve_file(parent_name)

    def get_child(self, name: str) -> Node:
        return self._fs.resolve_file(self._name.child(name))

    def list_child_entries(self) -> list[ChildEntry]:
        """Reconcile a fresh listing of this folder's immediate children."""
        if not self.is_folder():
            raise VfsError(f"Not a folder: {self._name}")
        return reconcile_children(
            self.backend,
            self.key,
            self.config.delimiter,
            self.config.list_page_size,
        )

    def list_children(self) -> list[str]:
        return [entry.relative_name for entry in self.list_child_entries()]

    def list_children_resolved(self) -> list[Node]:
        """List children as nodes, hydrated from the listing page.

        Inferred folders are flagged as folders and never probe on attach;
        object entries attach directly from their summary metadata.
        """
        children: list[Node] = []
        for entry in self.list_child_entries():
            child = self.get_child(entry.relative_name)
            if entry.kind is ChildKind.INFERRED_FOLDER:
                child._flag_as_folder()
            elif entry.metadata is not None:
                child._hydrate(entry.metadata, entry.key)
            children.append(child)
        return children

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def open_input_stream(self, offset: int = 0) -> IO[bytes]:
        """Open a forward-only stream over the content starting at ``offset``."""
        file_type = self.get_type()
        if file_type is FileType.IMAGINARY:
            raise NotFoundError("open_input_stream", self.key)
        if file_type is FileType.FOLDER:
            raise VfsError(f"Cannot read content of folder {self._name}")
        logger.info("[open_input_stream] downloading; key:%s;offset:%d", self._object_key, offset)
        return self.backend.open_read(self._object_key, offset)

    def read_bytes(self) -> bytes:
        with self.open_input_stream() as stream:
            return stream.read()

    def open_output_stream(self) -> _NodeOutputStream:
        """Open a sink replacing this node's content; closing it detaches the node."""
        if self.is_folder():
            raise VfsError(f"Cannot write content to folder {self._name}")
        return _NodeOutputStream(self.backend.open_write(self.key), self)

    def write_bytes(self, data: bytes) -> None:
        with self.open_output_stream() as stream:
            stream.write(data)

    def open_random_access(self) -> RandomAccessContent:
        return RandomAccessContent(self)

    # ------------------------------------------------------------------
    # Create / delete / copy / rename
    # ------------------------------------------------------------------

    def create_folder(self) -> None:
        """Persist a folder marker for this node and flag it as a folder."""
        file_type = self.get_type()
        if file_type is FileType.FOLDER:
            return
        if file_type is FileType.FILE:
            raise VfsError(f"Cannot create folder {self._name}: a file exists")

        marker_key = self.key + self.config.delimiter
        logger.debug("[create_folder] creating folder marker; key:%s", marker_key)
        self.backend.create_folder_marker(marker_key)
        self._is_folder = True
        self._set_attached(NodeState.FOLDER, self._synthesized_metadata(), marker_key)

    def delete(self) -> bool:
        """Delete this file or empty folder.

        Returns:
            True if a backend object was removed.
        """
        file_type = self.get_type()
        if file_type is FileType.IMAGINARY:
            return False
        target = self._object_key
        if file_type is FileType.FOLDER:
            if self.list_child_entries():
                raise VfsError(f"Cannot delete non-empty folder {self._name}")
            if self._state is NodeState.FOLDER and target == self.key:
                # Flagged folder: the marker, if any, was never probed.
                target = self.key + self.config.delimiter

        result = self.backend.delete_object(target)
        if not self._name.is_root:
            self._is_folder = None
        self.detach()
        return not isinstance(result, NotFound)

    def delete_all(self) -> int:
        """Delete this node and, for folders, everything beneath it.

        Returns:
            Number of backend objects removed.
        """
        deleted = 0
        if self.get_type() is FileType.FOLDER:
            for child in self.list_children_resolved():
                deleted += child.delete_all()
        if self.delete():
            deleted += 1
        return deleted

    def copy_from(self, source: Node) -> None:
        """Copy ``source`` onto this node; folders are copied recursively."""
        if source.get_type() is FileType.FOLDER:
            self.create_folder()
            for child in source.list_children_resolved():
                self.get_child(child.name.base_name).copy_from(child)
            return

        with source.open_input_stream() as src, self.open_output_stream() as dst:
            shutil.copyfileobj(src, dst)

    def can_rename_to(self, target: Node) -> bool:
        return True

    def rename_to(self, target: Node) -> None:
        """Move this node to ``target`` by copying everything, then deleting the source.

        The move is not atomic: if deletion fails after the copy, both the
        target and (part of) the source remain.
        """
        logger.info("[rename_to] renaming; source:%s;target:%s", self.key, target.key)
        target.copy_from(self)
        self.delete_all()

    # ------------------------------------------------------------------
    # Access control
    # ------------------------------------------------------------------

    def _acl_key(self) -> str:
        if self.key == "":
            return ""
        self.attach()
        return self._object_key

    def get_owner(self) -> NativeOwner:
        """Backend owner of this node, loaded once and cached."""
        if self._owner is None:
            self._owner = self.backend.get_acl(self._acl_key()).owner
        return self._owner

    def get_acl(self) -> AclModel:
        native = self.backend.get_acl(self._acl_key())
        self._owner = native.owner
        return read_acl(native)

    def set_acl(self, acl: AclModel) -> None:
        native = write_acl(acl, self.get_owner())
        self.backend.set_acl(self._acl_key(), native)


class _NodeOutputStream(io.RawIOBase):
    """Write-through wrapper around a backend sink that detaches its node on close."""

    def __init__(self, sink: IO[bytes], node: Node) -> None:
        super().__init__()
        self._sink = sink
        self._node = node

    def writable(self) -> bool:
        return True

    def write(self, data: Any) -> int:
        self._sink.write(data)
        return len(data)

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._sink.close()
        finally:
            self._node.detach()
            super().close()
