"""In-memory backend implementing the Backend Client Facade over a flat key space."""

from __future__ import annotations

import hashlib
import hmac
import io
import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from remote_vfs.backend.models import (
    CanonicalGrantee,
    ListPage,
    NativeAcl,
    NativeOwner,
    NativePermission,
    NotFound,
    ObjectMetadata,
    ObjectSummary,
)
from remote_vfs.errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_OWNER = NativeOwner(id="memory-owner", display_name="owner")
DEFAULT_PAGE_SIZE = 1000
DEFAULT_SIGNING_KEY = b"memory-signing-key"


@dataclass
class StoredObject:
    data: bytes
    metadata: ObjectMetadata
    acl: NativeAcl | None = None


@dataclass
class MemoryBackend:
    """Flat key/value object store held in a dict.

    Listings honour prefix, delimiter and page size exactly the way an
    object store does: keys are sorted, keys sharing the next delimited
    segment collapse into one common prefix, and the continuation token is
    the last key (or prefix) returned.

    ``open_read_calls`` records every ``(key, offset)`` passed to
    ``open_read``; ``list_calls`` counts listing requests.
    """

    owner: NativeOwner = DEFAULT_OWNER
    base_url: str = "memory://store"
    signing_key: bytes = DEFAULT_SIGNING_KEY
    objects: dict[str, StoredObject] = field(default_factory=dict)
    bucket_acl: NativeAcl | None = None
    open_read_calls: list[tuple[str, int]] = field(default_factory=list)
    list_calls: int = 0

    # ------------------------------------------------------------------
    # Test/seed helpers
    # ------------------------------------------------------------------

    def put(
        self,
        key: str,
        data: bytes = b"",
        content_type: str | None = None,
        etag: str | None = None,
        last_modified: datetime | None = None,
    ) -> None:
        """Store ``data`` at ``key`` with freshly computed metadata."""
        if content_type is None:
            content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        metadata = ObjectMetadata(
            content_length=len(data),
            last_modified=last_modified or datetime.now(tz=UTC),
            content_type=content_type,
            etag=etag if etag is not None else f'"{hashlib.md5(data).hexdigest()}"',
        )
        self.objects[key] = StoredObject(data=data, metadata=metadata)

    # ------------------------------------------------------------------
    # BackendFacade
    # ------------------------------------------------------------------

    def stat_object(self, key: str) -> ObjectMetadata | NotFound:
        stored = self.objects.get(key)
        if stored is None or key == "":
            return NotFound(key)
        return stored.metadata

    def stat_folder_marker(self, key: str) -> ObjectMetadata | NotFound:
        return self.stat_object(key)

    def open_read(self, key: str, offset: int = 0) -> io.BytesIO:
        self.open_read_calls.append((key, offset))
        stored = self.objects.get(key)
        if stored is None:
            raise NotFoundError("open_read", key)
        return io.BytesIO(stored.data[offset:])

    def open_write(self, key: str) -> _MemorySink:
        return _MemorySink(self, key)

    def delete_object(self, key: str) -> NotFound | None:
        if self.objects.pop(key, None) is None:
            return NotFound(key)
        return None

    def list_page(
        self,
        prefix: str,
        delimiter: str,
        continuation_token: str | None = None,
        page_size: int | None = None,
    ) -> ListPage:
        self.list_calls += 1
        limit = page_size or DEFAULT_PAGE_SIZE

        entries: list[tuple[str, ObjectSummary | None]] = []
        seen_prefixes: set[str] = set()
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix) :]
            cut = rest.find(delimiter) if delimiter else -1
            if cut != -1:
                common = prefix + rest[: cut + len(delimiter)]
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    entries.append((common, None))
                continue
            meta = self.objects[key].metadata
            entries.append(
                (
                    key,
                    ObjectSummary(
                        key=key,
                        size=meta.content_length,
                        last_modified=meta.last_modified,
                        etag=meta.etag,
                    ),
                )
            )

        if continuation_token is not None:
            entries = [e for e in entries if e[0] > continuation_token]

        page = entries[:limit]
        truncated = len(entries) > limit
        return ListPage(
            common_prefixes=[name for name, summary in page if summary is None],
            summaries=[summary for _, summary in page if summary is not None],
            next_token=page[-1][0] if truncated else None,
        )

    def get_acl(self, key: str) -> NativeAcl:
        if key == "":
            return self.bucket_acl or self._owner_only_acl()
        stored = self.objects.get(key)
        if stored is None:
            raise NotFoundError("get_acl", key)
        return stored.acl or self._owner_only_acl()

    def set_acl(self, key: str, acl: NativeAcl) -> None:
        if key == "":
            self.bucket_acl = acl
            return
        stored = self.objects.get(key)
        if stored is None:
            raise NotFoundError("set_acl", key)
        stored.acl = acl

    def create_folder_marker(self, key: str) -> None:
        self.put(key, b"", content_type="application/octet-stream")

    def object_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def signed_url(self, key: str, expires_in: int) -> str:
        """Object URL carrying an expiry timestamp and an HMAC-SHA256 signature."""
        if key != "" and key not in self.objects:
            raise NotFoundError("signed_url", key)
        expires = int((datetime.now(tz=UTC) + timedelta(seconds=expires_in)).timestamp())
        return f"{self.object_url(key)}?expires={expires}&signature={self.signature(key, expires)}"

    def signature(self, key: str, expires: int) -> str:
        message = f"{key}\n{expires}".encode()
        return hmac.new(self.signing_key, message, hashlib.sha256).hexdigest()

    def _owner_only_acl(self) -> NativeAcl:
        acl = NativeAcl(owner=self.owner)
        acl.grant(CanonicalGrantee(self.owner.id), NativePermission.FULL_CONTROL)
        return acl


class _MemorySink(io.BytesIO):
    """Buffer that stores its content in the backend when closed."""

    def __init__(self, backend: MemoryBackend, key: str) -> None:
        super().__init__()
        self._backend = backend
        self._key = key

    def close(self) -> None:
        if not self.closed:
            self._backend.put(self._key, self.getvalue())
            logger.debug("[memory_sink] stored object; key:%s", self._key)
        super().close()
