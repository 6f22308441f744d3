"""Reconciles a flat, paginated key listing into the immediate children of a folder."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from remote_vfs.backend.models import ObjectMetadata, ObjectSummary
from remote_vfs.names.models import DOT_SEGMENTS

if TYPE_CHECKING:
    from remote_vfs.backend.facade import BackendFacade

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Placeholder conventions recognised as folder realizations:
# s3sync.rb writes objects with this MD5/ETag,
LEGACY_PLACEHOLDER_ETAG = "d66759af42f282e1ba19144df2d405d0"
# the Google Storage console and S3 Organizer append this suffix,
LEGACY_PLACEHOLDER_SUFFIX = "_$folder$"
# and JetS3t marks zero-length objects with this content type.
DIRECTORY_MIME_TYPE = "application/x-directory"


class ChildKind(Enum):
    INFERRED_FOLDER = "inferred_folder"
    PLACEHOLDER_FOLDER = "placeholder_folder"
    LEAF = "leaf"


@dataclass(frozen=True)
class ChildEntry:
    """One immediate child produced by the reconciler.

    Attributes:
        relative_name: Child name relative to the listed folder.
        kind: How the child was recognised.
        key: Backend key of the child (the common prefix for inferred folders).
        metadata: Metadata derived from the listing page, for leaf-shaped
            children only.
    """

    relative_name: str
    kind: ChildKind
    key: str
    metadata: ObjectMetadata | None = None

    @property
    def is_folder(self) -> bool:
        return self.kind is not ChildKind.LEAF


def is_folder_placeholder(
    key: str,
    size: int,
    etag: str | None = None,
    content_type: str | None = None,
    delimiter: str = "/",
) -> bool:
    """Return True if an object is a zero-length stand-in for a folder.

    Any of the following qualifies:
        - the key ends with the delimiter and the object is empty;
        - the etag equals the s3sync.rb placeholder digest;
        - the key ends with ``_$folder$`` and the object is empty;
        - the object is empty and typed ``application/x-directory``.
    """
    if key.endswith(delimiter) and size == 0:
        return True
    if etag is not None and etag.strip('"') == LEGACY_PLACEHOLDER_ETAG:
        return True
    if key.endswith(LEGACY_PLACEHOLDER_SUFFIX) and size == 0:
        return True
    return size == 0 and content_type == DIRECTORY_MIME_TYPE


def folder_prefix(key: str, delimiter: str = "/") -> str:
    """Listing prefix for a folder key: "" for the root, else ``key`` plus the delimiter."""
    if key == "":
        return ""
    return key.rstrip(delimiter) + delimiter


def summary_metadata(summary: ObjectSummary, relative_name: str) -> ObjectMetadata:
    """Build a child metadata snapshot from a listing summary.

    The summary's own content type wins; otherwise the type is guessed from
    the file extension.
    """
    content_type = summary.content_type
    if content_type is None:
        content_type = mimetypes.guess_type(relative_name)[0] or DEFAULT_CONTENT_TYPE
    return ObjectMetadata(
        content_length=summary.size,
        last_modified=summary.last_modified,
        content_type=content_type,
        etag=summary.etag,
    )


def _unaddressable(relative: str, key: str) -> bool:
    if relative not in DOT_SEGMENTS:
        return False
    logger.warning("[reconcile_children] skipping dot-segment key; key:%s", key)
    return True


def reconcile_children(
    backend: BackendFacade,
    key: str,
    delimiter: str = "/",
    page_size: int | None = None,
) -> list[ChildEntry]:
    """List the immediate children of the folder at ``key``.

    Follows continuation tokens until the backend reports the listing
    exhausted. Common prefixes are deduplicated and sorted; summaries keep
    backend order, minus the folder's own marker object. Inferred folders
    come first, followed by one entry per remaining summary.

    Every call issues a fresh listing.

    Args:
        backend: Backend to list.
        key: Folder key ("" for the root, with or without a trailing delimiter).
        delimiter: Key separator used to group common prefixes.
        page_size: Optional maximum entries per page.

    Returns:
        Ordered list of ChildEntry.
    """
    prefix = folder_prefix(key, delimiter)

    common_prefixes: set[str] = set()
    summaries: list[ObjectSummary] = []
    token: str | None = None
    pages = 0
    while True:
        page = backend.list_page(prefix, delimiter, token, page_size)
        pages += 1
        common_prefixes.update(page.common_prefixes)
        summaries.extend(s for s in page.summaries if s.key != prefix)
        token = page.next_token
        if not token:
            break

    entries: list[ChildEntry] = []
    for common in sorted(common_prefixes):
        relative = common[len(prefix) :].rstrip(delimiter)
        if not relative or _unaddressable(relative, common):
            continue
        entries.append(ChildEntry(relative, ChildKind.INFERRED_FOLDER, common))

    for summary in summaries:
        relative = summary.key[len(prefix) :]
        if _unaddressable(relative, summary.key):
            continue
        metadata = summary_metadata(summary, relative)
        kind = (
            ChildKind.PLACEHOLDER_FOLDER
            if is_folder_placeholder(
                summary.key, summary.size, summary.etag, summary.content_type, delimiter
            )
            else ChildKind.LEAF
        )
        entries.append(ChildEntry(relative, kind, summary.key, metadata))

    logger.debug(
        "[reconcile_children] listed folder; prefix:%s;pages:%d;children:%d",
        prefix,
        pages,
        len(entries),
    )
    return entries
