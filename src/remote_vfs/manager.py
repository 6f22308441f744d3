"""Provider registry resolving URIs to nodes on per-authority file systems."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace

from remote_vfs.backend.azure_blob import azure_blob_backend_from_config
from remote_vfs.backend.facade import BackendFacade
from remote_vfs.backend.graph_drive import graph_drive_backend_from_config
from remote_vfs.backend.memory import MemoryBackend
from remote_vfs.config import VfsConfig
from remote_vfs.errors import VfsError
from remote_vfs.graph.client import GraphClient
from remote_vfs.names.models import Name
from remote_vfs.names.parser import parse_name
from remote_vfs.tree.filesystem import ALL_CAPABILITIES, Capability, RemoteFileSystem
from remote_vfs.tree.node import Node

logger = logging.getLogger(__name__)

BackendFactory = Callable[[Name, VfsConfig], BackendFacade]

OBJECT_STORE_CAPABILITIES: frozenset[Capability] = ALL_CAPABILITIES
DRIVE_CAPABILITIES: frozenset[Capability] = ALL_CAPABILITIES - {Capability.ACL}


@dataclass(frozen=True)
class Provider:
    scheme: str
    factory: BackendFactory
    capabilities: frozenset[Capability]


def memory_provider(name: Name, config: VfsConfig) -> BackendFacade:
    return MemoryBackend(base_url=name.root_uri)


def azure_blob_provider(name: Name, config: VfsConfig) -> BackendFacade:
    """Backend for ``azblob://<container>/<key>``; the host names the container."""
    return azure_blob_backend_from_config(config, container=name.host)


def onedrive_provider(name: Name, config: VfsConfig) -> BackendFacade:
    """Backend for ``onedrive://[client_id:secret@]<drive_user>/<path>``.

    Client credentials come from the configuration first and from the
    name's user info second. An empty host (``onedrive://id:secret@/path``)
    selects the configured drive user.

    Raises:
        VfsError: If no client credentials, tenant or drive user are available.
    """
    client_id = config.client_id or name.username
    client_secret = config.client_secret or name.password
    if not client_id or not client_secret:
        raise VfsError("Empty credentials")
    if not config.tenant_id:
        raise VfsError("Missing tenant_id for OneDrive access")

    drive_user = name.host if name.host != config.default_host else config.drive_user
    if not drive_user:
        raise VfsError("Missing drive user for OneDrive access")

    client = GraphClient(
        client_id=client_id,
        client_secret=client_secret,
        tenant_id=config.tenant_id,
    )
    return graph_drive_backend_from_config(
        replace(config, drive_user=drive_user), graph_client=client
    )


class VfsManager:
    """Resolves URIs to nodes, creating one file system per authority root."""

    def __init__(self, config: VfsConfig | None = None, register_defaults: bool = True) -> None:
        """Initialise the manager.

        Args:
            config: Configuration handed to every provider and file system.
            register_defaults: Register the "mem", "azblob" and "onedrive" schemes.
        """
        self._config = config or VfsConfig()
        self._providers: dict[str, Provider] = {}
        self._filesystems: dict[tuple[str, str | None], RemoteFileSystem] = {}
        if register_defaults:
            self.register_provider("mem", memory_provider, ALL_CAPABILITIES)
            self.register_provider("azblob", azure_blob_provider, OBJECT_STORE_CAPABILITIES)
            self.register_provider("onedrive", onedrive_provider, DRIVE_CAPABILITIES)

    @property
    def config(self) -> VfsConfig:
        return self._config

    @property
    def schemes(self) -> list[str]:
        return sorted(self._providers)

    def register_provider(
        self,
        scheme: str,
        factory: BackendFactory,
        capabilities: frozenset[Capability] = ALL_CAPABILITIES,
    ) -> None:
        self._providers[scheme.lower()] = Provider(scheme.lower(), factory, capabilities)

    def resolve_name(self, uri: str, base: Name | Node | None = None) -> Name:
        base_name = base.name if isinstance(base, Node) else base
        return parse_name(uri, base=base_name, default_host=self._config.default_host)

    def resolve_file(self, uri: str, base: Name | Node | None = None) -> Node:
        """Parse ``uri`` and return its node.

        Args:
            uri: Address to resolve; scheme-less input is resolved against ``base``.
            base: Optional Name or Node for relative addresses.

        Raises:
            MalformedNameError: If ``uri`` cannot be parsed.
            VfsError: If no provider handles the scheme.
        """
        name = self.resolve_name(uri, base)
        return self.get_file_system(name).resolve_file(name)

    def get_file_system(self, name: Name) -> RemoteFileSystem:
        """Return the file system for ``name``'s authority, creating it on first use."""
        cache_key = (name.root_uri, name.password)
        filesystem = self._filesystems.get(cache_key)
        if filesystem is not None:
            return filesystem

        provider = self._providers.get(name.scheme)
        if provider is None:
            raise VfsError(f"No provider registered for scheme {name.scheme!r}")

        backend = provider.factory(name, self._config)
        filesystem = RemoteFileSystem(name, backend, self._config, provider.capabilities)
        self._filesystems[cache_key] = filesystem
        logger.info("[get_file_system] created file system; root:%s", name.root_uri)
        return filesystem

    def close(self) -> None:
        """Drop every cached file system and its nodes."""
        for filesystem in self._filesystems.values():
            filesystem.clear_cache()
        self._filesystems.clear()


def vfs_manager_from_config(config: VfsConfig) -> VfsManager:
    """Construct a VfsManager with the default providers.

    Args:
        config: File system configuration instance.

    Returns:
        Configured VfsManager instance.
    """
    return VfsManager(config=config)
