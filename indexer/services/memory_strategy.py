"""
In-memory write strategies.
"""

import logging
from typing import Optional

from indexer.models import constants as c
from indexer.models.fields import SearchDocument
from indexer.models.page import PageDocument
from indexer.services.write_strategy import WriteStrategy

logger = logging.getLogger(__name__)


class MemoryWriteStrategy(WriteStrategy):
    """Keeps all staged documents in process memory."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._root: Optional[SearchDocument] = None
        self._docs: list[SearchDocument] = []
        self._pages_by_order: dict[int, PageDocument] = {}
        self._order_by_phys_id: dict[str, int] = {}

    @property
    def root_doc(self) -> Optional[SearchDocument]:
        return self._root

    def set_root_doc(self, doc: SearchDocument) -> None:
        self._root = doc

    def add_doc(self, doc: SearchDocument) -> None:
        with self._lock:
            self._docs.append(doc)

    def add_page_doc(self, page: PageDocument) -> None:
        with self._lock:
            if page.order in self._pages_by_order:
                logger.error(f"Collision for page order {page.order} ({page.phys_id})")
            self._pages_by_order[page.order] = page
            self._order_by_phys_id[page.phys_id] = page.order

    def update_doc(self, page: PageDocument) -> None:
        with self._lock:
            if page.order not in self._pages_by_order:
                logger.warning(f"Page {page.order} was not staged, adding it")
            self._pages_by_order[page.order] = page
            self._order_by_phys_id[page.phys_id] = page.order

    def get_page_docs_for_phys_ids(self, phys_ids: list[str]) -> list[PageDocument]:
        pages = []
        with self._lock:
            for phys_id in phys_ids:
                order = self._order_by_phys_id.get(phys_id)
                if order is None:
                    logger.warning(f"No page staged for physical id {phys_id}")
                    continue
                pages.append(self._pages_by_order[order])
        return pages

    def get_page_doc_for_order(self, order: int) -> Optional[PageDocument]:
        return self._pages_by_order.get(order)

    def page_order_numbers(self) -> list[int]:
        with self._lock:
            return sorted(self._pages_by_order)

    def _prepare(self, aggregate: bool) -> tuple[SearchDocument, list[SearchDocument], list[SearchDocument]]:
        """Finalize staged documents; returns root, other docs and pages in page order."""
        root = self._require_root()
        pi = root.get_first(c.PI)

        docs = [doc for doc in self._docs if self.finalize_doc(doc, pi)]
        pages = [page.doc for page in self.get_pages_in_order() if self.finalize_doc(page.doc, pi)]

        if aggregate:
            self.add_aggregated_fields(
                root,
                [v for doc in docs if doc.get_first(c.DOCTYPE) == c.DOCTYPE_DOCSTRCT for v in doc.get_values(c.DEFAULT)],
                [v for doc in pages for v in doc.get_values(c.FULLTEXT)],
            )
        self.finalize_doc(root, pi)
        self.check_value_collisions([root, *docs, *pages], pi)
        return root, docs, pages

    def write_docs(self, aggregate: bool = False) -> int:
        root, docs, pages = self._prepare(aggregate)
        ordered = [*pages, *docs, root]
        batches = (ordered[i:i + self.batch_size] for i in range(0, len(ordered), self.batch_size))
        return self.commit_documents(batches)

    def cleanup(self) -> None:
        self._root = None
        self._docs = []
        self._pages_by_order = {}
        self._order_by_phys_id = {}


class HierarchicalWriteStrategy(MemoryWriteStrategy):
    """
    Stores structure elements and pages as nested children of the record.

    Only the root document is written; everything else travels inside it.
    """

    def write_docs(self, aggregate: bool = False) -> int:
        root, docs, pages = self._prepare(aggregate)
        root.children = [*pages, *docs]
        logger.info(f"Writing record {root.get_first(c.PI)} with {len(root.children)} nested documents")
        return self.commit_documents([[root]])
