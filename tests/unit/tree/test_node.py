"""Unit tests for tree/node.py: attach/detach lifecycle and node operations."""

from datetime import UTC, datetime
from unittest.mock import MagicMock, patch

import pytest

from remote_vfs.acl.models import FULL_CONTROL, AclModel, Group, Permission
from remote_vfs.backend.memory import MemoryBackend
from remote_vfs.backend.models import GroupGrantee, NativeOwner, NativePermission, NotFound
from remote_vfs.errors import BackendUnavailableError, NotFoundError, VfsError
from remote_vfs.names.models import FileType
from remote_vfs.names.parser import parse_name
from remote_vfs.tree.filesystem import RemoteFileSystem
from remote_vfs.tree.node import NodeState

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_fs(backend: object | None = None) -> RemoteFileSystem:
    backend = backend or MemoryBackend()
    return RemoteFileSystem(parse_name("mem://bucket"), backend)  # type: ignore[arg-type]


def _docs_fs() -> tuple[RemoteFileSystem, MemoryBackend]:
    backend = MemoryBackend()
    backend.put("docs/", b"")
    backend.put("docs/a.txt", b"0123456789")
    backend.put("docs/sub/b.txt", b"b")
    return _make_fs(backend), backend


# ---------------------------------------------------------------------------
# attach / detach tests
# ---------------------------------------------------------------------------


class TestAttach:
    def test_starts_detached(self) -> None:
        fs, _ = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")
        assert node.state is NodeState.DETACHED
        assert node.metadata is None

    def test_attaches_file_with_one_probe(self) -> None:
        fs, backend = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")

        with patch.object(backend, "stat_folder_marker") as marker_probe:
            node.attach()

        assert node.state is NodeState.FILE
        assert node.get_content_size() == 10
        assert node.object_key == "docs/a.txt"
        marker_probe.assert_not_called()

    def test_attaches_folder_through_marker(self) -> None:
        fs, _ = _docs_fs()
        node = fs.resolve_file("/docs")

        node.attach()

        assert node.state is NodeState.FOLDER
        assert node.object_key == "docs/"
        assert node.get_type() is FileType.FOLDER

    def test_attaches_imaginary_when_both_probes_miss(self) -> None:
        fs, _ = _docs_fs()
        node = fs.resolve_file("/docs/new.txt")

        node.attach()

        assert node.state is NodeState.IMAGINARY
        assert node.get_type() is FileType.IMAGINARY
        assert not node.exists()
        assert node.get_content_size() == 0
        assert node.get_content_type() is None
        assert node.get_last_modified_time() is not None

    def test_flagged_folder_never_probes(self) -> None:
        backend = MagicMock()
        fs = _make_fs(backend)

        root = fs.root

        assert root.get_type() is FileType.FOLDER
        assert root.state is NodeState.FOLDER
        backend.stat_object.assert_not_called()
        backend.stat_folder_marker.assert_not_called()

    def test_attach_is_idempotent(self) -> None:
        backend = MagicMock()
        backend.stat_object.return_value = NotFound("x")
        backend.stat_folder_marker.return_value = NotFound("x/")
        node = _make_fs(backend).resolve_file("/x")

        node.attach()
        node.attach()

        assert backend.stat_object.call_count == 1

    def test_backend_failure_propagates_and_stays_detached(self) -> None:
        backend = MagicMock()
        backend.stat_object.side_effect = BackendUnavailableError("stat_object", "x", "down")
        node = _make_fs(backend).resolve_file("/x")

        with pytest.raises(BackendUnavailableError):
            node.get_type()

        assert node.state is NodeState.DETACHED

    def test_detach_forces_fresh_probe(self) -> None:
        fs, backend = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")
        assert node.get_content_size() == 10

        backend.put("docs/a.txt", b"longer content")
        assert node.get_content_size() == 10
        node.detach()
        node.detach()

        assert node.state is NodeState.DETACHED
        assert node.get_content_size() == 14

    def test_refresh_reattaches(self) -> None:
        fs, backend = _docs_fs()
        node = fs.resolve_file("/docs/new.txt")
        node.attach()
        backend.put("docs/new.txt", b"now")

        node.refresh()

        assert node.state is NodeState.FILE


# ---------------------------------------------------------------------------
# Metadata tests
# ---------------------------------------------------------------------------


class TestMetadata:
    def test_placeholder_object_is_folder(self) -> None:
        backend = MemoryBackend()
        backend.put("old_$folder$", b"")
        node = _make_fs(backend).resolve_file("/old_$folder$")
        assert node.get_type() is FileType.FOLDER

    def test_regular_file_type(self) -> None:
        fs, _ = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")
        assert node.is_file()
        assert not node.is_folder()
        assert node.get_content_type() == "text/plain"

    def test_md5_hash_strips_quotes(self) -> None:
        backend = MemoryBackend()
        backend.put("a.txt", b"hello")
        node = _make_fs(backend).resolve_file("/a.txt")
        assert node.get_etag() == '"5d41402abc4b2a76b9719d911017c592"'
        assert node.get_md5_hash() == "5d41402abc4b2a76b9719d911017c592"

    def test_set_last_modified_time_reports_change(self) -> None:
        fs, _ = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")
        when = datetime(2020, 1, 1, tzinfo=UTC)

        assert node.set_last_modified_time(when) is True
        assert node.set_last_modified_time(when) is False
        assert node.get_last_modified_time() == when

    def test_http_url(self) -> None:
        fs, _ = _docs_fs()
        assert fs.resolve_file("/docs/a.txt").get_http_url() == "memory://store/docs/a.txt"

    def test_missing_metadata_after_attach_raises(self) -> None:
        fs, _ = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")

        with patch.object(node, "attach"), pytest.raises(VfsError, match="no metadata"):
            node.get_content_size()


class TestSignedUrl:
    def test_signed_url_expires_and_verifies(self) -> None:
        fs, backend = _docs_fs()
        before = int(datetime.now(tz=UTC).timestamp())

        url = fs.resolve_file("/docs/a.txt").get_signed_url(300)

        base, _, query = url.partition("?")
        params = dict(part.split("=", 1) for part in query.split("&"))
        expires = int(params["expires"])
        assert base == "memory://store/docs/a.txt"
        assert before + 300 <= expires <= before + 301
        assert params["signature"] == backend.signature("docs/a.txt", expires)

    def test_signed_url_passes_object_key_and_lifetime(self) -> None:
        fs, memory = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")
        node.attach()

        with patch.object(memory, "signed_url", return_value="signed") as mock_sign:
            assert node.get_signed_url(60) == "signed"

        mock_sign.assert_called_once_with("docs/a.txt", 60)

    @pytest.mark.parametrize("expires_in", [0, -5])
    def test_non_positive_lifetime_rejected(self, expires_in: int) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(ValueError):
            fs.resolve_file("/docs/a.txt").get_signed_url(expires_in)

    def test_missing_file_raises_not_found(self) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(NotFoundError):
            fs.resolve_file("/docs/missing.txt").get_signed_url(60)

    def test_folder_cannot_be_signed(self) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(VfsError, match="folder"):
            fs.resolve_file("/docs").get_signed_url(60)


# ---------------------------------------------------------------------------
# Navigation and listing tests
# ---------------------------------------------------------------------------


class TestNavigation:
    def test_parent_and_child_share_cached_nodes(self) -> None:
        fs, _ = _docs_fs()
        docs = fs.resolve_file("/docs")
        child = docs.get_child("a.txt")

        assert child is fs.resolve_file("/docs/a.txt")
        assert child.parent is docs
        assert fs.root.parent is None

    def test_list_children(self) -> None:
        fs, _ = _docs_fs()
        assert fs.resolve_file("/docs").list_children() == ["sub", "a.txt"]

    def test_dot_segment_keys_never_become_children(self) -> None:
        fs, backend = _docs_fs()
        backend.put("docs/..", b"x")

        children = fs.resolve_file("/docs").list_children_resolved()

        assert [child.name.path for child in children] == ["/docs/sub", "/docs/a.txt"]
        with pytest.raises(ValueError):
            fs.resolve_file("/docs").get_child("..")

    def test_list_children_of_file_raises(self) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(VfsError, match="Not a folder"):
            fs.resolve_file("/docs/a.txt").list_children()

    def test_resolved_children_attach_without_probing(self) -> None:
        fs, backend = _docs_fs()
        docs = fs.resolve_file("/docs")
        docs.attach()

        with (
            patch.object(backend, "stat_object") as object_probe,
            patch.object(backend, "stat_folder_marker") as marker_probe,
        ):
            sub, leaf = docs.list_children_resolved()
            assert sub.get_type() is FileType.FOLDER
            assert leaf.get_type() is FileType.FILE
            assert leaf.get_content_size() == 10

        object_probe.assert_not_called()
        marker_probe.assert_not_called()


# ---------------------------------------------------------------------------
# Content tests
# ---------------------------------------------------------------------------


class TestContent:
    def test_read_bytes(self) -> None:
        fs, _ = _docs_fs()
        assert fs.resolve_file("/docs/a.txt").read_bytes() == b"0123456789"

    def test_open_input_stream_at_offset(self) -> None:
        fs, backend = _docs_fs()
        with fs.resolve_file("/docs/a.txt").open_input_stream(7) as stream:
            assert stream.read() == b"789"
        assert backend.open_read_calls == [("docs/a.txt", 7)]

    def test_reading_imaginary_node_raises_not_found(self) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(NotFoundError):
            fs.resolve_file("/docs/missing.txt").open_input_stream()

    def test_reading_folder_raises(self) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(VfsError):
            fs.resolve_file("/docs").read_bytes()

    def test_write_bytes_creates_object_and_detaches(self) -> None:
        fs, backend = _docs_fs()
        node = fs.resolve_file("/docs/new.txt")
        assert not node.exists()

        node.write_bytes(b"fresh")

        assert backend.objects["docs/new.txt"].data == b"fresh"
        assert node.state is NodeState.DETACHED
        assert node.is_file()

    def test_writing_to_folder_raises(self) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(VfsError):
            fs.resolve_file("/docs").write_bytes(b"x")


# ---------------------------------------------------------------------------
# Create / delete / copy / rename tests
# ---------------------------------------------------------------------------


class TestMutations:
    def test_create_folder_writes_marker(self) -> None:
        fs, backend = _docs_fs()
        node = fs.resolve_file("/new")

        node.create_folder()

        assert "new/" in backend.objects
        assert node.is_folder()
        assert node.object_key == "new/"

    def test_create_existing_folder_is_noop(self) -> None:
        backend = MagicMock()
        _make_fs(backend).root.create_folder()
        backend.create_folder_marker.assert_not_called()

    def test_create_folder_over_file_raises(self) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(VfsError, match="a file exists"):
            fs.resolve_file("/docs/a.txt").create_folder()

    def test_delete_file(self) -> None:
        fs, backend = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")

        assert node.delete() is True
        assert "docs/a.txt" not in backend.objects
        assert not node.exists()

    def test_delete_imaginary_returns_false(self) -> None:
        fs, _ = _docs_fs()
        assert fs.resolve_file("/nothing").delete() is False

    def test_delete_non_empty_folder_raises(self) -> None:
        fs, _ = _docs_fs()
        with pytest.raises(VfsError, match="non-empty"):
            fs.resolve_file("/docs").delete()

    def test_delete_empty_flagged_folder_removes_marker(self) -> None:
        fs, backend = _docs_fs()
        node = fs.resolve_file("/empty")
        node.create_folder()
        fs.clear_cache()

        flagged = fs.resolve_file("/empty")
        flagged._flag_as_folder()

        assert flagged.delete() is True
        assert "empty/" not in backend.objects

    def test_delete_all_removes_subtree(self) -> None:
        fs, backend = _docs_fs()
        backend.put("keep.txt", b"k")

        assert fs.resolve_file("/docs").delete_all() == 3
        assert list(backend.objects) == ["keep.txt"]

    def test_copy_from_file(self) -> None:
        fs, backend = _docs_fs()
        fs.resolve_file("/copy.txt").copy_from(fs.resolve_file("/docs/a.txt"))
        assert backend.objects["copy.txt"].data == b"0123456789"

    def test_rename_folder_moves_subtree(self) -> None:
        fs, backend = _docs_fs()
        source = fs.resolve_file("/docs")
        target = fs.resolve_file("/moved")

        assert source.can_rename_to(target)
        source.rename_to(target)

        assert sorted(backend.objects) == ["moved/", "moved/a.txt", "moved/sub/", "moved/sub/b.txt"]
        assert backend.objects["moved/sub/b.txt"].data == b"b"
        assert not source.exists()


# ---------------------------------------------------------------------------
# Access control tests
# ---------------------------------------------------------------------------


class TestAcl:
    def test_default_acl_grants_owner_full_control(self) -> None:
        fs, _ = _docs_fs()
        acl = fs.resolve_file("/docs/a.txt").get_acl()
        assert acl.grants == {Group.OWNER: FULL_CONTROL}

    def test_set_acl_writes_native_grants(self) -> None:
        fs, backend = _docs_fs()
        node = fs.resolve_file("/docs/a.txt")
        acl = AclModel()
        acl.allow(Group.OWNER, Permission.READ, Permission.WRITE)
        acl.allow(Group.EVERYONE, Permission.READ)

        node.set_acl(acl)

        native = backend.objects["docs/a.txt"].acl
        assert native is not None
        assert (GroupGrantee.ALL_USERS, NativePermission.READ) in [
            (g.grantee, g.permission) for g in native.grants
        ]
        assert node.get_acl().grants == acl.grants

    def test_root_acl_addresses_bucket(self) -> None:
        fs, backend = _docs_fs()
        acl = AclModel()
        acl.allow(Group.AUTHENTICATED_USERS, Permission.READ)

        fs.root.set_acl(acl)

        assert backend.bucket_acl is not None
        assert fs.root.get_acl().is_allowed(Group.AUTHENTICATED_USERS, Permission.READ)

    def test_marker_folder_acl_uses_marker_key(self) -> None:
        fs, backend = _docs_fs()
        fs.resolve_file("/docs").set_acl(AclModel())
        assert backend.objects["docs/"].acl is not None

    def test_owner_is_loaded_once(self) -> None:
        backend = MagicMock()
        backend.get_acl.return_value.owner = NativeOwner("o-1")
        root = _make_fs(backend).root

        assert root.get_owner() == NativeOwner("o-1")
        assert root.get_owner() == NativeOwner("o-1")
        assert backend.get_acl.call_count == 1
