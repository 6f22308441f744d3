"""Seekable, typed random-access reads over forward-only offset streams."""

from __future__ import annotations

import io
import logging
import struct
from typing import IO, TYPE_CHECKING, Any

from remote_vfs.errors import InvalidPositionError, UnsupportedOperationError

if TYPE_CHECKING:
    from types import TracebackType

    from remote_vfs.tree.node import Node

logger = logging.getLogger(__name__)

SKIP_CHUNK_SIZE = 64 * 1024


class RandomAccessContent:
    """Cursor-based reader that re-opens the backend stream on seek.

    The backend can only open a stream at a byte offset and read forward.
    This adapter keeps a cursor and at most one open stream. Seeking away
    from the cursor closes the stream; the next read opens a new one at
    the cursor. The cursor advances by the bytes actually consumed, so
    short reads never over-count.

    Typed reads are big-endian (network byte order).
    """

    def __init__(self, node: Node) -> None:
        self._node = node
        self._cursor = 0
        self._stream: IO[bytes] | None = None

    def __enter__(self) -> RandomAccessContent:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------

    def get_file_pointer(self) -> int:
        return self._cursor

    def seek(self, pos: int) -> None:
        """Move the cursor; the stream is re-opened lazily on the next read.

        Raises:
            InvalidPositionError: If ``pos`` is negative.
        """
        if pos < 0:
            raise InvalidPositionError(pos)
        if pos == self._cursor:
            return
        self.close()
        self._cursor = pos

    def length(self) -> int:
        """Size reported by the node metadata."""
        return self._node.get_content_size()

    def set_length(self, new_length: int) -> None:
        raise UnsupportedOperationError("Remote content cannot be truncated or extended in place")

    def close(self) -> None:
        """Release the open backend stream, if any."""
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        stream.close()

    # ------------------------------------------------------------------
    # Raw reads
    # ------------------------------------------------------------------

    def _ensure_stream(self) -> IO[bytes]:
        if self._stream is None:
            logger.debug(
                "[random_access] opening stream; key:%s;offset:%d", self._node.key, self._cursor
            )
            self._stream = self._node.open_input_stream(self._cursor)
        return self._stream

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (all remaining when negative) from the cursor."""
        data = self._ensure_stream().read(size)
        self._cursor += len(data)
        return data

    def read_fully(self, size: int) -> bytes:
        """Read exactly ``size`` bytes.

        Raises:
            EOFError: If the content ends first. The cursor still reflects
                the bytes that were consumed.
        """
        chunks: list[bytes] = []
        remaining = size
        while remaining > 0:
            chunk = self.read(remaining)
            if not chunk:
                raise EOFError(f"Expected {size} bytes, got {size - remaining}")
            chunks.append(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def skip_bytes(self, n: int) -> int:
        """Skip up to ``n`` bytes by reading forward; returns the number skipped."""
        skipped = 0
        while skipped < n:
            chunk = self.read(min(n - skipped, SKIP_CHUNK_SIZE))
            if not chunk:
                break
            skipped += len(chunk)
        return skipped

    def get_input_stream(self) -> IO[bytes]:
        """File-like view reading from the cursor; closing it closes this adapter."""
        return _CursorStream(self)

    # ------------------------------------------------------------------
    # Typed reads
    # ------------------------------------------------------------------

    def _unpack(self, fmt: str) -> Any:
        return struct.unpack(fmt, self.read_fully(struct.calcsize(fmt)))[0]

    def read_byte(self) -> int:
        return int(self._unpack(">b"))

    def read_unsigned_byte(self) -> int:
        return int(self._unpack(">B"))

    def read_boolean(self) -> bool:
        return self.read_unsigned_byte() != 0

    def read_short(self) -> int:
        return int(self._unpack(">h"))

    def read_unsigned_short(self) -> int:
        return int(self._unpack(">H"))

    def read_char(self) -> str:
        return chr(self._unpack(">H"))

    def read_int(self) -> int:
        return int(self._unpack(">i"))

    def read_long(self) -> int:
        return int(self._unpack(">q"))

    def read_float(self) -> float:
        return float(self._unpack(">f"))

    def read_double(self) -> float:
        return float(self._unpack(">d"))

    def read_utf(self) -> str:
        """Read a modified UTF-8 string prefixed with its unsigned 16-bit encoded length.

        Modified UTF-8 stores NUL as ``C0 80`` and characters outside the
        BMP as two three-byte surrogates; both decode to the real code points.
        """
        length = self.read_unsigned_short()
        return decode_modified_utf8(self.read_fully(length))


def decode_modified_utf8(data: bytes) -> str:
    """Decode modified UTF-8 into a string.

    Raises:
        UnicodeDecodeError: If ``data`` is not valid modified UTF-8.
    """
    # C0 is never a lead byte in standard UTF-8, so the swap cannot match elsewhere.
    text = data.replace(b"\xc0\x80", b"\x00").decode("utf-8", "surrogatepass")
    # Re-encoding through UTF-16 joins surrogate pairs into single code points.
    return text.encode("utf-16-be", "surrogatepass").decode("utf-16-be")


class _CursorStream(io.RawIOBase):
    def __init__(self, content: RandomAccessContent) -> None:
        super().__init__()
        self._content = content

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        data = self._content.read(len(buffer))
        n = len(data)
        buffer[:n] = data
        return n

    def close(self) -> None:
        if not self.closed:
            self._content.close()
        super().close()
