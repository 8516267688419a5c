"""Unit tests for API response models."""

from datetime import datetime, timezone

import pytest

from spmirror.exceptions import SharePointInvalidResponseError
from spmirror.models import ItemsPage, LibraryInfo, RemoteFileDescriptor


class TestRemoteFileDescriptor:
    """Tests for RemoteFileDescriptor.from_api_item."""

    def test_file_item(self):
        """Test parsing a file item."""
        descriptor = RemoteFileDescriptor.from_api_item(
            {
                "FileRef": "/sites/Team/Shared Documents/a/report.docx",
                "FileLeafRef": "report.docx",
                "Modified": "2024-05-01T09:00:00Z",
                "FSObjType": 0,
            }
        )

        assert descriptor.server_relative_path == (
            "/sites/Team/Shared Documents/a/report.docx"
        )
        assert descriptor.leaf_name == "report.docx"
        assert descriptor.modified_at == datetime(2024, 5, 1, 9, tzinfo=timezone.utc)
        assert descriptor.is_file is True

    def test_folder_item(self):
        """Folders are flagged with is_file False."""
        descriptor = RemoteFileDescriptor.from_api_item(
            {
                "FileRef": "/sites/Team/Shared Documents/a",
                "FileLeafRef": "a",
                "Modified": "2024-05-01T09:00:00Z",
                "FSObjType": 1,
            }
        )
        assert descriptor.is_file is False

    def test_leaf_name_defaults_to_last_segment(self):
        """Missing FileLeafRef falls back to the last path segment."""
        descriptor = RemoteFileDescriptor.from_api_item(
            {"FileRef": "/sites/T/Docs/x/y.txt", "Modified": "2024-05-01T09:00:00Z"}
        )
        assert descriptor.leaf_name == "y.txt"

    def test_missing_fields_raise(self):
        """Items without FileRef or Modified are rejected."""
        with pytest.raises(SharePointInvalidResponseError):
            RemoteFileDescriptor.from_api_item({"FileLeafRef": "a.txt"})
        with pytest.raises(SharePointInvalidResponseError):
            RemoteFileDescriptor.from_api_item({"FileRef": "/a.txt", "Modified": "x"})


class TestLibraryInfo:
    """Tests for LibraryInfo.from_api_response."""

    def test_parse(self):
        info = LibraryInfo.from_api_response(
            {
                "Title": "Documents",
                "ItemCount": 12,
                "RootFolder": {"ServerRelativeUrl": "/sites/Team/Shared Documents/"},
            }
        )
        assert info.title == "Documents"
        assert info.root_path == "/sites/Team/Shared Documents"
        assert info.item_count == 12

    def test_missing_root_folder(self):
        with pytest.raises(SharePointInvalidResponseError):
            LibraryInfo.from_api_response({"Title": "Documents"})


class TestItemsPage:
    """Tests for ItemsPage.from_api_response."""

    ITEM = {
        "FileRef": "/sites/T/Docs/a.txt",
        "FileLeafRef": "a.txt",
        "Modified": "2024-05-01T09:00:00Z",
        "FSObjType": 0,
    }

    def test_nometadata_shape(self):
        page = ItemsPage.from_api_response(
            {"value": [self.ITEM], "odata.nextLink": "https://next"}
        )
        assert len(page.items) == 1
        assert page.next_url == "https://next"

    def test_verbose_shape(self):
        page = ItemsPage.from_api_response(
            {"d": {"results": [self.ITEM], "__next": "https://next"}}
        )
        assert len(page.items) == 1
        assert page.next_url == "https://next"

    def test_last_page(self):
        page = ItemsPage.from_api_response({"value": []})
        assert page.items == []
        assert page.next_url is None

    def test_invalid_shape(self):
        with pytest.raises(SharePointInvalidResponseError):
            ItemsPage.from_api_response({"unexpected": True})
