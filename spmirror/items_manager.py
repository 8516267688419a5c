"""Manager for draining a library's item listing with automatic pagination."""

import logging
from collections.abc import Generator
from typing import Callable, Optional

from .api import SharePointClient
from .models import RemoteFileDescriptor
from .utils import DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)


class LibraryItemsManager:
    """Pages through the items of one document library."""

    def __init__(self, client: SharePointClient, library_title: str):
        """Initialize the items manager.

        Args:
            client: SharePoint API client
            library_title: Title of the document library
        """
        self.client = client
        self.library_title = library_title

    def iter_pages(
        self, page_size: int = DEFAULT_PAGE_SIZE
    ) -> Generator[list[RemoteFileDescriptor], None, None]:
        """Yield the library's items one page at a time.

        Folders are included; callers filter on ``is_file``.

        Args:
            page_size: Number of items requested per page

        Yields:
            Lists of RemoteFileDescriptor, one per page
        """
        page = self.client.get_list_items(self.library_title, page_size=page_size)
        page_num = 1
        while True:
            logger.debug(
                f"Fetched page {page_num} of '{self.library_title}' "
                f"({len(page.items)} items)"
            )
            yield page.items
            if not page.next_url:
                break
            page_num += 1
            page = self.client.get_list_items(
                self.library_title, page_size=page_size, next_url=page.next_url
            )

    def get_all_files(
        self,
        page_size: int = DEFAULT_PAGE_SIZE,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> list[RemoteFileDescriptor]:
        """Drain every page and return the file descriptors.

        Errors are not swallowed: a listing that cannot be completed
        raises, since the total number of files must be exact.

        Args:
            page_size: Number of items requested per page
            progress_callback: Optional callback function(page_number, files_so_far)

        Returns:
            All file descriptors of the library, folders excluded
        """
        files: list[RemoteFileDescriptor] = []
        for page_num, items in enumerate(self.iter_pages(page_size), start=1):
            files.extend(item for item in items if item.is_file)
            if progress_callback:
                progress_callback(page_num, len(files))

        logger.info(f"Listed {len(files)} file(s) in '{self.library_title}'")
        return files
