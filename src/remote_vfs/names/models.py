"""Name value type and backend key derivation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from urllib.parse import quote

SEPARATOR = "/"
ROOT_PATH = "/"
DOT_SEGMENTS = frozenset({".", ".."})


class FileType(Enum):
    """Type hint carried by a Name, and the resolved type of a Node."""

    FOLDER = "folder"
    FILE = "file"
    IMAGINARY = "imaginary"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Name:
    """Immutable, normalized address of a remote node.

    Attributes:
        scheme: URI scheme selecting the backend provider (e.g. "azblob").
        host: Authority host; for object stores this is the container or bucket.
        path: Normalized absolute path; the root is "/".
        username: Optional user from the authority.
        password: Optional password from the authority.
        port: Optional explicit port.
        type: Folder/file hint derived from a trailing separator.
    """

    scheme: str
    host: str
    path: str = ROOT_PATH
    username: str | None = None
    password: str | None = None
    port: int | None = None
    type: FileType = FileType.UNKNOWN

    @property
    def is_root(self) -> bool:
        return self.path == ROOT_PATH

    @property
    def base_name(self) -> str:
        """Last path segment, or "" for the root."""
        return self.path.rsplit(SEPARATOR, 1)[-1]

    @property
    def parent(self) -> Name | None:
        """Name of the containing folder, or None for the root."""
        if self.is_root:
            return None
        head = self.path.rsplit(SEPARATOR, 1)[0]
        return replace(self, path=head or ROOT_PATH, type=FileType.FOLDER)

    @property
    def root(self) -> Name:
        """Name of the root folder on the same authority."""
        return replace(self, path=ROOT_PATH, type=FileType.FOLDER)

    def child(self, name: str, file_type: FileType = FileType.UNKNOWN) -> Name:
        """Return the Name of a direct child.

        Args:
            name: Single path segment; surrounding separators are ignored.
            file_type: Type hint for the child.

        Raises:
            ValueError: If ``name`` is empty, contains a separator, or is "." or "..".
        """
        segment = name.strip(SEPARATOR)
        if not segment or SEPARATOR in segment or segment in DOT_SEGMENTS:
            raise ValueError(f"Not a single path segment: {name!r}")
        prefix = "" if self.is_root else self.path
        return replace(self, path=f"{prefix}{SEPARATOR}{segment}", type=file_type)

    def with_path(self, path: str, file_type: FileType = FileType.UNKNOWN) -> Name:
        """Return a Name on the same authority with an already-normalized path."""
        return replace(self, path=path or ROOT_PATH, type=file_type)

    @property
    def root_uri(self) -> str:
        """URI of the authority root, without credentials."""
        port = f":{self.port}" if self.port is not None else ""
        user = f"{quote(self.username, safe='')}@" if self.username else ""
        return f"{self.scheme}://{user}{self.host}{port}"

    @property
    def uri(self) -> str:
        """Full URI of this name, without the password."""
        return f"{self.root_uri}{quote(self.path)}"

    def __str__(self) -> str:
        return self.uri


def to_backend_key(name: Name) -> str:
    """Derive the backend-native key for a Name.

    Returns "" for the root, otherwise the path without its leading slash.
    Folder keys never carry a trailing separator here; callers append one
    when they query folder markers or list children.
    """
    if name.is_root:
        return ""
    return name.path[1:]
