"""
Disk-backed write strategy.

Every staged document is serialized to a private temporary folder as soon as
it is added and read back on demand, so peak memory does not grow with the
size of the record. Full texts are kept in separate files because they
dominate document size.
"""

import json
import logging
import shutil
import tempfile
from itertools import chain
from pathlib import Path
from typing import Iterator, Optional

from indexer.exceptions import IndexerError
from indexer.models import constants as c
from indexer.models.fields import SearchDocument
from indexer.models.page import PageDocument
from indexer.services.write_strategy import WriteStrategy

logger = logging.getLogger(__name__)


class SerializingWriteStrategy(WriteStrategy):
    """Stages documents as JSON files named by document identifier."""

    FULLTEXT_SUFFIX = "_FULLTEXT"

    def __init__(self, *args, temp_parent: Optional[Path] = None, **kwargs):
        """
        Initialize disk-backed write strategy.

        Args:
            temp_parent: Folder in which the private staging folder is created
                (system temp folder if None)
        """
        super().__init__(*args, **kwargs)
        if temp_parent is not None:
            Path(temp_parent).mkdir(parents=True, exist_ok=True)
        self.temp_folder = Path(tempfile.mkdtemp(prefix="indexer_", dir=temp_parent))
        self._root_iddoc: Optional[int] = None
        self._doc_iddocs: list[int] = []
        self._page_iddoc_by_order: dict[int, int] = {}
        self._order_by_phys_id: dict[str, int] = {}
        logger.info(f"Staging documents in {self.temp_folder}")

    # --- File handling ---

    def _doc_path(self, iddoc: int) -> Path:
        return self.temp_folder / f"{iddoc}.json"

    def _fulltext_path(self, iddoc: int) -> Path:
        return self.temp_folder / f"{iddoc}{self.FULLTEXT_SUFFIX}.txt"

    def _save(self, iddoc: Optional[int], data: dict, doc: SearchDocument) -> None:
        if iddoc is None:
            raise IndexerError(f"Cannot stage document without {c.IDDOC}")
        full_texts = doc.get_values(c.FULLTEXT)
        if full_texts:
            stripped = SearchDocument((n, v) for n, v in doc if n != c.FULLTEXT)
            stripped.children = doc.children
            data["doc"] = stripped.to_dict()
            with open(self._fulltext_path(iddoc), "w", encoding="utf-8") as f:
                json.dump([str(t) for t in full_texts], f, ensure_ascii=False)
        else:
            data["doc"] = doc.to_dict()
            self._fulltext_path(iddoc).unlink(missing_ok=True)
        with open(self._doc_path(iddoc), "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)

    def _load_data(self, iddoc: int) -> tuple[dict, SearchDocument]:
        try:
            with open(self._doc_path(iddoc), "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise IndexerError(f"Cannot read staged document {iddoc}: {e}") from e
        doc = SearchDocument.from_dict(data["doc"])
        fulltext_path = self._fulltext_path(iddoc)
        if fulltext_path.exists():
            with open(fulltext_path, "r", encoding="utf-8") as f:
                full_texts = json.load(f)
            # FULLTEXT is stored after all other fields
            for text in full_texts:
                doc.add(c.FULLTEXT, text)
        return data, doc

    def _load_doc(self, iddoc: int) -> SearchDocument:
        return self._load_data(iddoc)[1]

    def _load_page(self, iddoc: int) -> PageDocument:
        data, doc = self._load_data(iddoc)
        return PageDocument.from_dict(data, doc=doc)

    # --- Staging ---

    @property
    def root_doc(self) -> Optional[SearchDocument]:
        if self._root_iddoc is None:
            return None
        return self._load_doc(self._root_iddoc)

    def set_root_doc(self, doc: SearchDocument) -> None:
        self._save(doc.iddoc, {}, doc)
        self._root_iddoc = doc.iddoc

    def add_doc(self, doc: SearchDocument) -> None:
        self._save(doc.iddoc, {}, doc)
        with self._lock:
            self._doc_iddocs.append(doc.iddoc)

    def add_page_doc(self, page: PageDocument) -> None:
        self._save(page.iddoc, page.to_dict(include_doc=False), page.doc)
        with self._lock:
            if page.order in self._page_iddoc_by_order:
                logger.error(f"Collision for page order {page.order} ({page.phys_id})")
            self._page_iddoc_by_order[page.order] = page.iddoc
            self._order_by_phys_id[page.phys_id] = page.order

    def update_doc(self, page: PageDocument) -> None:
        self._save(page.iddoc, page.to_dict(include_doc=False), page.doc)
        with self._lock:
            if page.order not in self._page_iddoc_by_order:
                logger.warning(f"Page {page.order} was not staged, adding it")
            self._page_iddoc_by_order[page.order] = page.iddoc
            self._order_by_phys_id[page.phys_id] = page.order

    # --- Lookup ---

    def get_page_docs_for_phys_ids(self, phys_ids: list[str]) -> list[PageDocument]:
        pages = []
        for phys_id in phys_ids:
            order = self._order_by_phys_id.get(phys_id)
            if order is None:
                logger.warning(f"No page staged for physical id {phys_id}")
                continue
            pages.append(self._load_page(self._page_iddoc_by_order[order]))
        return pages

    def get_page_doc_for_order(self, order: int) -> Optional[PageDocument]:
        iddoc = self._page_iddoc_by_order.get(order)
        if iddoc is None:
            return None
        return self._load_page(iddoc)

    def page_order_numbers(self) -> list[int]:
        with self._lock:
            return sorted(self._page_iddoc_by_order)

    # --- Commit ---

    def _iter_staged(self, iddocs: list[int]) -> Iterator[SearchDocument]:
        for iddoc in iddocs:
            doc = self._load_doc(iddoc)
            if doc.get_first(c.DOCTYPE) != c.DOCTYPE_SHAPE:
                yield doc

    def _iter_finalized(self, iddocs: list[int], pi: Optional[str]) -> Iterator[SearchDocument]:
        for doc in self._iter_staged(iddocs):
            if self.finalize_doc(doc, pi):
                yield doc

    def _page_iddocs_in_order(self) -> list[int]:
        return [self._page_iddoc_by_order[order] for order in self.page_order_numbers()]

    def _batched(self, docs: Iterator[SearchDocument]) -> Iterator[list[SearchDocument]]:
        batch: list[SearchDocument] = []
        for doc in docs:
            batch.append(doc)
            if len(batch) >= self.batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def write_docs(self, aggregate: bool = False) -> int:
        root = self._require_root()
        pi = root.get_first(c.PI)
        page_iddocs = self._page_iddocs_in_order()

        if aggregate:
            default_values = [
                v
                for doc in self._iter_staged(self._doc_iddocs)
                if doc.get_first(c.DOCTYPE) == c.DOCTYPE_DOCSTRCT
                for v in doc.get_values(c.DEFAULT)
            ]
            full_texts = [v for doc in self._iter_staged(page_iddocs) for v in doc.get_values(c.FULLTEXT)]
            self.add_aggregated_fields(root, default_values, full_texts)
        self.finalize_doc(root, pi)

        self.check_value_collisions(
            chain([root], self._iter_staged(page_iddocs), self._iter_staged(self._doc_iddocs)),
            pi,
        )

        def ordered() -> Iterator[SearchDocument]:
            yield from self._iter_finalized(page_iddocs, pi)
            yield from self._iter_finalized(self._doc_iddocs, pi)
            yield root

        return self.commit_documents(self._batched(ordered()))

    def cleanup(self) -> None:
        if self.temp_folder.exists():
            shutil.rmtree(self.temp_folder)
            logger.debug(f"Removed staging folder {self.temp_folder}")
        self._root_iddoc = None
        self._doc_iddocs = []
        self._page_iddoc_by_order = {}
        self._order_by_phys_id = {}
