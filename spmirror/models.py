"""Data models for SharePoint REST API responses."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .exceptions import SharePointInvalidResponseError
from .utils import parse_iso_timestamp

# FSObjType value of file list items (folders are 1)
FS_OBJ_FILE = 0


@dataclass(frozen=True)
class RemoteFileDescriptor:
    """Metadata for one item of a remote document library."""

    server_relative_path: str
    """Server-relative path of the item (FileRef), possibly percent-encoded"""

    leaf_name: str
    """Item name (FileLeafRef), possibly percent-encoded"""

    modified_at: datetime
    """Last modification time, timezone-aware"""

    is_file: bool = True

    @classmethod
    def from_api_item(cls, item: dict[str, Any]) -> "RemoteFileDescriptor":
        """Create a descriptor from a list item returned by the items endpoint.

        Args:
            item: Item dictionary with FileRef, FileLeafRef, Modified and FSObjType

        Raises:
            SharePointInvalidResponseError: If required fields are missing
        """
        file_ref = item.get("FileRef")
        modified = parse_iso_timestamp(item.get("Modified"))
        if not file_ref or modified is None:
            raise SharePointInvalidResponseError(
                f"List item is missing FileRef or Modified: {item!r}"
            )

        leaf_name = item.get("FileLeafRef") or file_ref.rsplit("/", 1)[-1]
        return cls(
            server_relative_path=file_ref,
            leaf_name=leaf_name,
            modified_at=modified,
            is_file=int(item.get("FSObjType", FS_OBJ_FILE)) == FS_OBJ_FILE,
        )


@dataclass(frozen=True)
class LibraryInfo:
    """A resolved document library."""

    title: str
    root_path: str
    """Server-relative URL of the library's root folder"""

    item_count: Optional[int] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "LibraryInfo":
        root_folder = data.get("RootFolder") or {}
        root_path = root_folder.get("ServerRelativeUrl")
        if not root_path:
            raise SharePointInvalidResponseError(
                "Library response does not include RootFolder.ServerRelativeUrl"
            )
        item_count = data.get("ItemCount")
        return cls(
            title=data.get("Title", ""),
            root_path=root_path.rstrip("/"),
            item_count=int(item_count) if item_count is not None else None,
        )


@dataclass
class ItemsPage:
    """One page of list items plus the link to the next page."""

    items: list[RemoteFileDescriptor]
    next_url: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ItemsPage":
        values = data.get("value")
        if values is None:
            # verbose OData shape
            values = (data.get("d") or {}).get("results")
        if values is None:
            raise SharePointInvalidResponseError("Items response has no 'value' list")

        next_url = (
            data.get("odata.nextLink")
            or data.get("@odata.nextLink")
            or (data.get("d") or {}).get("__next")
        )
        return cls(
            items=[RemoteFileDescriptor.from_api_item(item) for item in values],
            next_url=next_url,
        )
