"""Unit tests for tree/listing.py: placeholder detection and child reconciliation."""

from unittest.mock import MagicMock

import pytest

from remote_vfs.backend.memory import MemoryBackend
from remote_vfs.backend.models import ListPage, ObjectSummary
from remote_vfs.tree.listing import (
    ChildKind,
    folder_prefix,
    is_folder_placeholder,
    reconcile_children,
    summary_metadata,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _docs_backend() -> MemoryBackend:
    backend = MemoryBackend()
    backend.put("docs/", b"")
    backend.put("docs/a.txt", b"0123456789")
    backend.put("docs/sub/b.txt", b"b")
    backend.put("other/c.txt", b"c")
    return backend


def _paged_backend(*pages: ListPage) -> MagicMock:
    backend = MagicMock()
    backend.list_page.side_effect = list(pages)
    return backend


# ---------------------------------------------------------------------------
# is_folder_placeholder tests
# ---------------------------------------------------------------------------


class TestIsFolderPlaceholder:
    @pytest.mark.parametrize(
        ("key", "size", "etag", "content_type"),
        [
            ("docs/", 0, None, None),
            ("docs", 0, '"d66759af42f282e1ba19144df2d405d0"', None),
            ("docs", 5, "d66759af42f282e1ba19144df2d405d0", "text/plain"),
            ("docs_$folder$", 0, None, None),
            ("docs", 0, None, "application/x-directory"),
        ],
    )
    def test_recognises_placeholder_conventions(
        self, key: str, size: int, etag: str | None, content_type: str | None
    ) -> None:
        assert is_folder_placeholder(key, size, etag, content_type)

    @pytest.mark.parametrize(
        ("key", "size", "etag", "content_type"),
        [
            ("docs/", 3, None, None),
            ("docs_$folder$", 1, None, None),
            ("docs", 4, None, "application/x-directory"),
            ("empty.txt", 0, '"d41d8cd98f00b204e9800998ecf8427e"', "text/plain"),
        ],
    )
    def test_rejects_regular_objects(
        self, key: str, size: int, etag: str | None, content_type: str | None
    ) -> None:
        assert not is_folder_placeholder(key, size, etag, content_type)

    def test_honours_custom_delimiter(self) -> None:
        assert is_folder_placeholder("docs|", 0, delimiter="|")
        assert not is_folder_placeholder("docs/", 1, delimiter="|")


class TestFolderPrefix:
    def test_root_prefix_is_empty(self) -> None:
        assert folder_prefix("") == ""

    def test_appends_single_delimiter(self) -> None:
        assert folder_prefix("docs") == "docs/"
        assert folder_prefix("docs/") == "docs/"


class TestSummaryMetadata:
    def test_prefers_summary_content_type(self) -> None:
        summary = ObjectSummary(key="a.txt", size=1, content_type="application/json")
        assert summary_metadata(summary, "a.txt").content_type == "application/json"

    def test_guesses_from_extension(self) -> None:
        meta = summary_metadata(ObjectSummary(key="docs/a.txt", size=3, etag='"e"'), "a.txt")
        assert meta.content_type == "text/plain"
        assert meta.content_length == 3
        assert meta.etag == '"e"'

    def test_falls_back_to_octet_stream(self) -> None:
        meta = summary_metadata(ObjectSummary(key="blob", size=1), "blob")
        assert meta.content_type == "application/octet-stream"


# ---------------------------------------------------------------------------
# reconcile_children tests
# ---------------------------------------------------------------------------


class TestReconcileChildren:
    def test_inferred_folder_and_leaf(self) -> None:
        entries = reconcile_children(_docs_backend(), "docs")

        assert [(e.relative_name, e.kind, e.key) for e in entries] == [
            ("sub", ChildKind.INFERRED_FOLDER, "docs/sub/"),
            ("a.txt", ChildKind.LEAF, "docs/a.txt"),
        ]
        leaf = entries[1]
        assert leaf.metadata is not None
        assert leaf.metadata.content_length == 10
        assert entries[0].metadata is None
        assert entries[0].is_folder
        assert not leaf.is_folder

    def test_own_marker_is_never_a_child(self) -> None:
        backend = MemoryBackend()
        backend.put("docs/", b"")
        assert reconcile_children(backend, "docs/") == []

    def test_root_listing(self) -> None:
        entries = reconcile_children(_docs_backend(), "")
        assert [e.relative_name for e in entries] == ["docs", "other"]
        assert all(e.kind is ChildKind.INFERRED_FOLDER for e in entries)

    def test_follows_every_page(self) -> None:
        backend = _docs_backend()
        entries = reconcile_children(backend, "docs", page_size=1)
        assert [e.relative_name for e in entries] == ["sub", "a.txt"]
        assert backend.list_calls == 3

    def test_placeholder_summaries_become_folders(self) -> None:
        backend = MemoryBackend()
        backend.put("docs/old_$folder$", b"")
        backend.put("docs/legacy", b"", etag='"d66759af42f282e1ba19144df2d405d0"')
        backend.put("docs/empty.txt", b"")

        kinds = {e.relative_name: e.kind for e in reconcile_children(backend, "docs")}

        assert kinds == {
            "old_$folder$": ChildKind.PLACEHOLDER_FOLDER,
            "legacy": ChildKind.PLACEHOLDER_FOLDER,
            "empty.txt": ChildKind.LEAF,
        }

    def test_directory_content_type_from_listing(self) -> None:
        backend = _paged_backend(
            ListPage(
                summaries=[
                    ObjectSummary(key="docs/d", size=0, content_type="application/x-directory")
                ]
            )
        )
        entries = reconcile_children(backend, "docs")
        assert entries[0].kind is ChildKind.PLACEHOLDER_FOLDER

    def test_prefixes_deduplicated_and_sorted_across_pages(self) -> None:
        backend = _paged_backend(
            ListPage(common_prefixes=["docs/z/", "docs/b/"], next_token="t1"),
            ListPage(common_prefixes=["docs/b/", "docs/a/"], next_token=None),
        )

        entries = reconcile_children(backend, "docs")

        assert [e.relative_name for e in entries] == ["a", "b", "z"]
        assert backend.list_page.call_args_list[1][0] == ("docs/", "/", "t1", None)

    def test_empty_relative_prefix_is_skipped(self) -> None:
        backend = _paged_backend(ListPage(common_prefixes=["docs//", "docs/x/"]))
        assert [e.relative_name for e in reconcile_children(backend, "docs")] == ["x"]

    def test_dot_segment_keys_are_skipped(self) -> None:
        backend = _paged_backend(
            ListPage(
                common_prefixes=["docs/../", "docs/x/"],
                summaries=[
                    ObjectSummary(key="docs/.", size=1),
                    ObjectSummary(key="docs/..", size=1),
                    ObjectSummary(key="docs/a.txt", size=1),
                ],
            )
        )

        entries = reconcile_children(backend, "docs")

        assert [e.relative_name for e in entries] == ["x", "a.txt"]

    def test_every_call_relists(self) -> None:
        backend = _docs_backend()
        reconcile_children(backend, "docs")
        reconcile_children(backend, "docs")
        assert backend.list_calls == 2
