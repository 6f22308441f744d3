"""Unit tests for tree/filesystem.py: node resolution and caching."""

import pytest

from remote_vfs.backend.memory import MemoryBackend
from remote_vfs.config import VfsConfig
from remote_vfs.errors import MalformedNameError, VfsError
from remote_vfs.names.parser import parse_name
from remote_vfs.tree.filesystem import ALL_CAPABILITIES, Capability, RemoteFileSystem
from remote_vfs.tree.node import NodeState


def _make_fs(**kwargs: object) -> RemoteFileSystem:
    root = parse_name("mem://bucket/some/path")
    return RemoteFileSystem(root, MemoryBackend(), **kwargs)  # type: ignore[arg-type]


class TestResolveFile:
    def test_root_name_is_authority_root(self) -> None:
        fs = _make_fs()
        assert fs.root_name.path == "/"
        assert fs.root.name.is_root

    def test_same_path_yields_same_node(self) -> None:
        fs = _make_fs()
        node = fs.resolve_file("/docs/a.txt")
        assert fs.resolve_file("docs/a.txt") is node
        assert fs.resolve_file("mem://bucket/docs/./a.txt") is node
        assert fs.resolve_file(node.name) is node

    def test_root_is_flagged_folder(self) -> None:
        fs = _make_fs()
        fs.root.attach()
        assert fs.root.state is NodeState.FOLDER

    def test_other_authority_is_rejected(self) -> None:
        fs = _make_fs()
        with pytest.raises(VfsError, match="not on file system"):
            fs.resolve_file("mem://other/docs")

    def test_malformed_path_raises(self) -> None:
        fs = _make_fs()
        with pytest.raises(MalformedNameError):
            fs.resolve_file("/../escape")

    def test_clear_cache_creates_fresh_nodes(self) -> None:
        fs = _make_fs()
        node = fs.resolve_file("/a")
        fs.clear_cache()
        assert fs.resolve_file("/a") is not node

    def test_default_host_comes_from_config(self) -> None:
        fs = RemoteFileSystem(
            parse_name("mem://user@fallback/"), MemoryBackend(), VfsConfig(default_host="fallback")
        )
        node = fs.resolve_file("mem://user@/a")
        assert node.name.host == "fallback"
        assert node.name.path == "/a"


class TestCapabilities:
    def test_all_capabilities_by_default(self) -> None:
        fs = _make_fs()
        assert fs.capabilities == ALL_CAPABILITIES
        assert fs.has_capability(Capability.RANDOM_ACCESS_READ)

    def test_restricted_capabilities(self) -> None:
        fs = _make_fs(capabilities=frozenset({Capability.READ_CONTENT}))
        assert fs.has_capability(Capability.READ_CONTENT)
        assert not fs.has_capability(Capability.ACL)

    def test_exposes_backend_and_config(self) -> None:
        backend = MemoryBackend()
        config = VfsConfig(list_page_size=5)
        fs = RemoteFileSystem(parse_name("mem://bucket"), backend, config)
        assert fs.backend is backend
        assert fs.config is config
        assert _make_fs().config == VfsConfig()
