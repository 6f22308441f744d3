"""RemoteFileSystem: one backend root and the nodes resolved beneath it."""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from remote_vfs.config import VfsConfig
from remote_vfs.errors import VfsError
from remote_vfs.names.parser import parse_name
from remote_vfs.tree.node import Node

if TYPE_CHECKING:
    from remote_vfs.backend.facade import BackendFacade
    from remote_vfs.names.models import Name

logger = logging.getLogger(__name__)


class Capability(Enum):
    """Operations a file system advertises."""

    CREATE = "create"
    DELETE = "delete"
    RENAME = "rename"
    GET_TYPE = "get_type"
    LIST_CHILDREN = "list_children"
    READ_CONTENT = "read_content"
    WRITE_CONTENT = "write_content"
    RANDOM_ACCESS_READ = "random_access_read"
    GET_LAST_MODIFIED = "get_last_modified"
    SET_LAST_MODIFIED_FILE = "set_last_modified_file"
    ACL = "acl"
    URI = "uri"
    SIGNED_URL = "signed_url"


ALL_CAPABILITIES: frozenset[Capability] = frozenset(Capability)


class RemoteFileSystem:
    """Node tree rooted at one backend authority.

    Nodes are cached by path, so resolving the same path twice yields the
    same node and its attached metadata. The root node is flagged as a
    folder: a container or bucket root always exists and is never probed.
    """

    def __init__(
        self,
        root_name: Name,
        backend: BackendFacade,
        config: VfsConfig | None = None,
        capabilities: frozenset[Capability] = ALL_CAPABILITIES,
    ) -> None:
        """Initialise the file system.

        Args:
            root_name: Any name on the authority; only its root is kept.
            backend: Backend Client Facade serving every node of this tree.
            config: Explicit configuration for this tree.
            capabilities: Operations the backend supports.
        """
        self._root_name = root_name.root
        self._backend = backend
        self._config = config or VfsConfig()
        self._capabilities = capabilities
        self._nodes: dict[str, Node] = {}

    @property
    def root_name(self) -> Name:
        return self._root_name

    @property
    def backend(self) -> BackendFacade:
        return self._backend

    @property
    def config(self) -> VfsConfig:
        return self._config

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self._capabilities

    def has_capability(self, capability: Capability) -> bool:
        return capability in self._capabilities

    @property
    def root(self) -> Node:
        return self.resolve_file(self._root_name)

    def resolve_file(self, target: str | Name) -> Node:
        """Return the node for a path or Name on this file system.

        Args:
            target: Absolute or root-relative path, a full URI on this
                authority, or a Name.

        Raises:
            MalformedNameError: If ``target`` cannot be parsed.
            VfsError: If ``target`` names a different authority.
        """
        if isinstance(target, str):
            name = parse_name(target, base=self._root_name, default_host=self._config.default_host)
        else:
            name = target

        if name.root_uri != self._root_name.root_uri:
            raise VfsError(f"{name} is not on file system {self._root_name.root_uri}")

        node = self._nodes.get(name.path)
        if node is None:
            node = Node(name, self)
            if name.is_root:
                node._flag_as_folder()
            self._nodes[name.path] = node
            logger.debug("[resolve_file] created node; path:%s", name.path)
        return node

    def clear_cache(self) -> None:
        """Forget every resolved node; later resolutions start detached."""
        self._nodes.clear()
