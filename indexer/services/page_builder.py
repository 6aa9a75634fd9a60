"""
Page document construction.

Builds one search document per physical page of a record and stages it in
the write strategy. With more than one worker, pages are built in parallel
and staged in completion order; consumers sort by the page order.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from indexer.models import constants as c
from indexer.models.fields import SearchDocument
from indexer.models.page import PageDocument
from indexer.models.record import PageSource
from indexer.services.identity import IdentityGenerator
from indexer.services.write_strategy import WriteStrategy

logger = logging.getLogger(__name__)

FULLTEXT_FOLDER = "fulltext"


@dataclass
class PageBuildSummary:
    """What the generated pages contain, written to the record document."""

    pages: int = 0
    image_available: bool = False
    full_text_available: bool = False


class PageDocumentBuilder:
    """Builds and stages page documents for one record."""

    def __init__(
        self,
        identity: IdentityGenerator,
        threads: int = 1,
    ):
        """
        Initialize page builder.

        Args:
            identity: Identifier source, shared with the other builders
            threads: Worker pool size; 1 builds pages strictly in order
        """
        self.identity = identity
        self.threads = max(1, threads)

    def read_full_text(self, page: PageSource, data_folders: dict[str, Path]) -> Optional[str]:
        """
        Get the full text of a page from the source or the fulltext folder.

        A missing folder or file means the page has no full text.
        """
        if page.full_text:
            return page.full_text
        folder = data_folders.get(FULLTEXT_FOLDER)
        if folder is None or not page.file_name:
            return None
        if not folder.is_dir():
            logger.warning(f"Full-text folder {folder} not found")
            return None
        text_file = folder / f"{Path(page.file_name).stem}.txt"
        if not text_file.is_file():
            return None
        try:
            return text_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read full text {text_file}: {e}")
            return None

    def build_page(
        self,
        page: PageSource,
        pi: str,
        data_folders: dict[str, Path],
        data_repository: Optional[str] = None,
    ) -> PageDocument:
        iddoc = self.identity.next_id()
        doc = SearchDocument()
        doc.add(c.IDDOC, iddoc)
        doc.add(c.GROUPFIELD, str(iddoc))
        doc.add(c.DOCTYPE, page.doc_type)
        doc.add(c.PI_TOPSTRUCT, pi)
        doc.add(c.ORDER, page.order)
        doc.add(c.PHYSID, page.phys_id)
        if page.order_label:
            doc.add(c.ORDERLABEL, page.order_label)
        if page.file_name:
            doc.add(c.FILENAME, page.file_name)
        if page.mime_type:
            doc.add(c.MIMETYPE, page.mime_type)
        if page.urn:
            doc.add(c.IMAGEURN, page.urn)
        if data_repository:
            doc.add(c.DATAREPOSITORY, data_repository)

        for name, value in page.fields:
            try:
                doc.add(name, value)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping field {name} of page {page.order}: {e}")

        full_text = self.read_full_text(page, data_folders)
        doc.add(c.FULLTEXTAVAILABLE, bool(full_text))
        if full_text:
            doc.add(c.FULLTEXT, full_text)

        return PageDocument(
            order=page.order,
            phys_id=page.phys_id,
            doc=doc,
            file_name=page.file_name,
            mime_type=page.mime_type,
            order_label=page.order_label,
            full_text_available=bool(full_text),
        )

    def generate_pages(
        self,
        pages: list[PageSource],
        pi: str,
        write_strategy: WriteStrategy,
        data_folders: Optional[dict[str, Path]] = None,
        data_repository: Optional[str] = None,
    ) -> PageBuildSummary:
        """
        Build and stage all page documents of a record.

        Returns:
            Summary of the staged pages
        """
        data_folders = data_folders or {}
        summary = PageBuildSummary()

        def build_and_stage(source: PageSource) -> PageDocument:
            page_doc = self.build_page(source, pi, data_folders, data_repository)
            write_strategy.add_page_doc(page_doc)
            return page_doc

        if self.threads > 1 and len(pages) > 1:
            logger.info(f"Generating {len(pages)} page documents with {self.threads} workers")
            with ThreadPoolExecutor(max_workers=self.threads) as executor:
                built = list(executor.map(build_and_stage, pages))
        else:
            logger.info(f"Generating {len(pages)} page documents")
            built = [build_and_stage(source) for source in sorted(pages, key=lambda p: p.order)]

        for page_doc in built:
            summary.pages += 1
            if page_doc.file_name and page_doc.doc.get_first(c.DOCTYPE) == c.DOCTYPE_PAGE:
                summary.image_available = True
            if page_doc.full_text_available:
                summary.full_text_available = True
        return summary
