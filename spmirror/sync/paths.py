"""Mapping of server-relative paths to local filesystem paths."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote

from ..models import RemoteFileDescriptor

logger = logging.getLogger(__name__)

# Stands in for separators and dot-only names inside a single component
REPLACEMENT_CHAR = "_"


def decode_component(value: str) -> str:
    """Percent-decode ``value`` (e.g. ``%3b`` -> ``;``).

    Raises:
        UnicodeDecodeError: If the escapes do not form valid UTF-8
    """
    return unquote(value, errors="strict")


def sanitize_component(name: str) -> str:
    """Make a decoded name safe to use as exactly one path component.

    Separators (``/``, ``os.sep``, ``os.altsep``) become ``_`` and the
    names ``.`` and ``..`` are replaced, so a component can neither nest
    nor climb out of its parent directory.

    Examples:
        >>> sanitize_component("a/b")
        'a_b'
        >>> sanitize_component("..")
        '__'
        >>> sanitize_component("report;v2.txt")
        'report;v2.txt'
    """
    for sep in {"/", os.sep, os.altsep}:
        if sep:
            name = name.replace(sep, REPLACEMENT_CHAR)
    if name in ("", ".", ".."):
        name = REPLACEMENT_CHAR * max(len(name), 1)
    return name


def _decode_or_keep(value: str, what: str) -> str:
    try:
        return decode_component(value)
    except UnicodeDecodeError as e:
        logger.warning(f"Could not decode {what} '{value}', using it as is: {e}")
        return value


@dataclass(frozen=True)
class PathTranslator:
    """Resolves remote items to paths under the local target root.

    Attributes:
        remote_root: Server-relative URL of the library root
            (e.g. ``/sites/Team/Shared Documents``)
        local_root: Local directory that mirrors the library root
    """

    remote_root: str
    local_root: Path

    def relative_parts(self, descriptor: RemoteFileDescriptor) -> list[str]:
        """Path segments of the item relative to the library root.

        The raw server-relative path is split on ``/`` before any segment
        is decoded, so an encoded ``%2F`` stays inside its segment. The
        final segment comes from ``leaf_name``. Every decoded segment is
        passed through ``sanitize_component``.
        """
        raw_segments = [
            segment
            for segment in descriptor.server_relative_path.split("/")
            if segment not in ("", ".")
        ]
        segments = [_decode_or_keep(s, "path segment") for s in raw_segments]

        root = [
            _decode_or_keep(s, "library root").casefold()
            for s in self.remote_root.split("/")
            if s
        ]
        head = [s.casefold() for s in segments[: len(root)]]
        if root and head == root and len(segments) > len(root):
            segments = segments[len(root) :]
        elif root:
            logger.warning(
                f"'{descriptor.server_relative_path}' is outside library root "
                f"'{self.remote_root}', using full path"
            )

        # The last segment is the item itself; it is replaced by the leaf name
        folders = segments[:-1]
        leaf = _decode_or_keep(descriptor.leaf_name, "name")

        parts = [sanitize_component(part) for part in folders + [leaf]]
        if parts != folders + [leaf]:
            logger.warning(
                f"Replaced unsafe characters in '{descriptor.server_relative_path}'"
            )
        return parts

    def translate(self, descriptor: RemoteFileDescriptor) -> Path:
        """Local path where ``descriptor`` is mirrored.

        Raises:
            ValueError: If the resulting path is not below ``local_root``

        Examples:
            >>> from datetime import datetime, timezone
            >>> t = PathTranslator("/sites/T/Docs", Path("/data"))
            >>> d = RemoteFileDescriptor(
            ...     "/sites/T/Docs/a/b%3bc.txt", "b%3bc.txt",
            ...     datetime(2024, 1, 1, tzinfo=timezone.utc))
            >>> t.translate(d).as_posix()
            '/data/a/b;c.txt'
        """
        path = self.local_root.joinpath(*self.relative_parts(descriptor))
        root = os.path.normpath(self.local_root)
        if os.path.commonpath([root, os.path.normpath(path)]) != root:
            raise ValueError(f"{path} is outside the target directory {root}")
        return path
