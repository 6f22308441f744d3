"""Parser turning raw URI strings into normalized Names."""

from __future__ import annotations

import re
from urllib.parse import unquote

from remote_vfs.config import DEFAULT_HOST
from remote_vfs.errors import MalformedNameError
from remote_vfs.names.models import ROOT_PATH, SEPARATOR, FileType, Name

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")

# An authority terminator directly followed by the path separator, i.e. no host.
EMPTY_HOST_MARKER = "@/"


def parse_name(raw: str, base: Name | None = None, default_host: str = DEFAULT_HOST) -> Name:
    """Parse a raw address into a normalized Name.

    Accepted syntax is ``scheme://[user[:password]@]host[:port]/path``. An
    address whose authority ends in ``@`` with no host (``...@/path``) gets
    ``default_host`` substituted before parsing. A raw string without a
    scheme is resolved against ``base``: absolute paths replace the base
    path, relative paths are joined onto it.

    Args:
        raw: Address to parse.
        base: Optional Name supplying scheme and authority for relative input.
        default_host: Host substituted for an empty host.

    Returns:
        The parsed Name.

    Raises:
        MalformedNameError: If the scheme is missing (and no base is given),
            the authority cannot be separated from the path, the port is not
            numeric, or the path escapes the root.
    """
    if raw is None or raw == "":
        raise MalformedNameError(str(raw), "empty address")

    eidx = raw.find(EMPTY_HOST_MARKER)
    if eidx != -1:
        raw = raw[: eidx + 1] + default_host + raw[eidx + 1 :]

    match = _SCHEME_RE.match(raw)
    if match is None:
        if base is None:
            raise MalformedNameError(raw, "missing scheme")
        return _resolve_relative(raw, base)

    scheme = match.group(1).lower()
    rest = raw[match.end() :].replace("\\", SEPARATOR)
    if not rest.startswith("//"):
        raise MalformedNameError(raw, "authority cannot be separated from the path")
    rest = rest[2:]

    slash = rest.find(SEPARATOR)
    authority, raw_path = (rest, "") if slash == -1 else (rest[:slash], rest[slash:])
    username, password, host, port = _split_authority(raw, authority)
    path, file_type = normalize_path(raw, raw_path)
    return Name(
        scheme=scheme,
        host=host,
        path=path,
        username=username,
        password=password,
        port=port,
        type=file_type,
    )


def normalize_path(raw: str, path: str) -> tuple[str, FileType]:
    """Normalize a slash-separated path.

    Removes empty and ``.`` segments and resolves ``..``. A trailing
    separator marks the path as a folder.

    Args:
        raw: Original address, used in error messages.
        path: Path part to normalize.

    Returns:
        Tuple of (normalized path, type hint).

    Raises:
        MalformedNameError: If ``..`` climbs above the root.
    """
    path = unquote(path.replace("\\", SEPARATOR))
    file_type = FileType.FOLDER if path.endswith(SEPARATOR) else FileType.FILE

    segments: list[str] = []
    for segment in path.split(SEPARATOR):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not segments:
                raise MalformedNameError(raw, "path escapes the root")
            segments.pop()
            continue
        segments.append(segment)

    if not segments:
        return ROOT_PATH, FileType.FOLDER
    return SEPARATOR + SEPARATOR.join(segments), file_type


def _split_authority(
    raw: str, authority: str
) -> tuple[str | None, str | None, str, int | None]:
    """Split ``[user[:password]@]host[:port]`` into its parts."""
    username: str | None = None
    password: str | None = None

    at = authority.rfind("@")
    if at != -1:
        userinfo, authority = authority[:at], authority[at + 1 :]
        user, sep, secret = userinfo.partition(":")
        username = unquote(user) or None
        password = unquote(secret) if sep else None

    host, sep, port_text = authority.partition(":")
    if not host:
        raise MalformedNameError(raw, "missing host")

    port: int | None = None
    if sep:
        if not port_text.isdigit():
            raise MalformedNameError(raw, f"invalid port {port_text!r}")
        port = int(port_text)
    return username, password, host.lower(), port


def _resolve_relative(raw: str, base: Name) -> Name:
    """Resolve a scheme-less address against a base Name."""
    path = raw.replace("\\", SEPARATOR)
    if not path.startswith(SEPARATOR):
        prefix = "" if base.is_root else base.path
        path = f"{prefix}{SEPARATOR}{path}"
    normalized, file_type = normalize_path(raw, path)
    return base.with_path(normalized, file_type)
