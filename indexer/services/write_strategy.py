"""
Write strategies for staging the documents of one record.

A write strategy collects every document of a record (root, structure
elements, pages, grouped metadata, events) and writes them to the search
index in a single commit. Implementations differ in where staged documents
live: process memory, a temporary folder, or nested under the root document.
"""

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

from indexer.config.fields import FieldConfiguration
from indexer.db.search_index import SearchIndex
from indexer.exceptions import IdentifierCollisionError, IndexerError
from indexer.models import constants as c
from indexer.models.fields import SearchDocument
from indexer.models.page import PageDocument

if TYPE_CHECKING:
    from indexer.config.settings import Settings

logger = logging.getLogger(__name__)


class WriteStrategy(ABC):
    """Abstract staging area for the documents of one record."""

    # Field values that must be unique across records
    COLLISION_CHECK_FIELDS = (c.URN,)

    def __init__(
        self,
        search_index: SearchIndex,
        field_config: Optional[FieldConfiguration] = None,
        batch_size: int = 5000,
    ):
        """
        Initialize write strategy.

        Args:
            search_index: Index receiving the documents on commit
            field_config: Field configuration (single-valued fields)
            batch_size: Documents passed to the index per write call
        """
        self.search_index = search_index
        self.field_config = field_config or FieldConfiguration()
        self.batch_size = batch_size
        self._lock = threading.RLock()

    # --- Staging ---

    @abstractmethod
    def set_root_doc(self, doc: SearchDocument) -> None:
        """Stage the record (top structure) document."""
        pass

    @abstractmethod
    def add_doc(self, doc: SearchDocument) -> None:
        """Stage a structure element, grouped metadata or event document."""
        pass

    def add_docs(self, docs: Iterable[SearchDocument]) -> None:
        for doc in docs:
            self.add_doc(doc)

    @abstractmethod
    def add_page_doc(self, page: PageDocument) -> None:
        """Stage a page document. Safe to call from worker threads."""
        pass

    @abstractmethod
    def update_doc(self, page: PageDocument) -> None:
        """Replace a staged page document."""
        pass

    # --- Lookup ---

    @abstractmethod
    def get_page_docs_for_phys_ids(self, phys_ids: list[str]) -> list[PageDocument]:
        """
        Get staged pages by physical id.

        Args:
            phys_ids: Physical ids in the desired order

        Returns:
            Pages in the order of the requested ids; unknown ids are skipped
        """
        pass

    @abstractmethod
    def get_page_doc_for_order(self, order: int) -> Optional[PageDocument]:
        pass

    @abstractmethod
    def page_order_numbers(self) -> list[int]:
        """Sorted order numbers of all staged pages."""
        pass

    @property
    @abstractmethod
    def root_doc(self) -> Optional[SearchDocument]:
        pass

    @property
    def page_docs_size(self) -> int:
        return len(self.page_order_numbers())

    def get_pages_in_order(self) -> list[PageDocument]:
        """All staged pages sorted by their order field."""
        pages = []
        for order in self.page_order_numbers():
            page = self.get_page_doc_for_order(order)
            if page is not None:
                pages.append(page)
        return pages

    # --- Commit ---

    @abstractmethod
    def write_docs(self, aggregate: bool = False) -> int:
        """
        Commit all staged documents in one batch.

        Args:
            aggregate: Add aggregated search texts to the root document

        Returns:
            Number of documents written

        Raises:
            IndexerError: If there is nothing to write or the commit fails
        """
        pass

    @abstractmethod
    def cleanup(self) -> None:
        """Release staged documents and remove any staging artifacts."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False

    # --- Shared commit preparation ---

    def finalize_doc(self, doc: SearchDocument, pi_topstruct: Optional[str]) -> bool:
        """
        Prepare a staged document for commit.

        Returns:
            False if the document must not be written
        """
        if doc.get_first(c.DOCTYPE) == c.DOCTYPE_SHAPE:
            return False
        if c.ACCESSCONDITION not in doc:
            doc.add(c.ACCESSCONDITION, c.OPEN_ACCESS_VALUE)
        if c.PI_TOPSTRUCT not in doc and pi_topstruct:
            logger.warning(f"Document {doc.iddoc} has no {c.PI_TOPSTRUCT}, adding {pi_topstruct}")
            doc.add(c.PI_TOPSTRUCT, pi_topstruct)
        if c.GROUPFIELD not in doc:
            logger.error(f"Document {doc.iddoc} has no {c.GROUPFIELD}")
        self.sanitize_doc(doc)
        return True

    def sanitize_doc(self, doc: SearchDocument) -> None:
        """Trim single-valued fields to their first value."""
        for name in doc.names():
            if not self.field_config.is_single_valued(name):
                continue
            values = doc.get_values(name)
            if len(values) > 1:
                logger.debug(f"Field {name} of document {doc.iddoc} has {len(values)} values, keeping first")
                doc.set(name, values[0])

    @staticmethod
    def add_aggregated_fields(
        root: SearchDocument,
        default_values: Iterable[str],
        full_texts: Iterable[str],
    ) -> None:
        """Add SUPERDEFAULT and SUPERFULLTEXT to the root document."""
        super_default = " ".join(v.strip() for v in default_values if v and v.strip())
        if super_default:
            root.set(c.SUPERDEFAULT, super_default)
        super_fulltext = "\n".join(t.strip() for t in full_texts if t and t.strip())
        if super_fulltext:
            root.set(c.SUPERFULLTEXT, super_fulltext)

    def check_value_collisions(self, docs: Iterable[SearchDocument], pi: Optional[str]) -> None:
        """
        Ensure that unique values (URNs) are not used by another record.

        Raises:
            IdentifierCollisionError: If another record already uses a value
        """
        values: dict[str, set] = {}
        for doc in docs:
            for field_name in self.COLLISION_CHECK_FIELDS:
                for value in doc.get_values(field_name):
                    values.setdefault(field_name, set()).add(value)

        exclude = {c.PI_TOPSTRUCT: pi, c.PI: pi} if pi else None
        for field_name, field_values in values.items():
            for value in sorted(field_values, key=str):
                hits = self.search_index.search({field_name: value}, fields=[c.PI_TOPSTRUCT, c.PI], exclude=exclude)
                if hits:
                    owner = hits[0].get_first(c.PI_TOPSTRUCT) or hits[0].get_first(c.PI)
                    raise IdentifierCollisionError(f"{field_name} '{value}' is already used by record '{owner}'")

    def commit_documents(self, batches: Iterable[list[SearchDocument]]) -> int:
        """Pass document batches to the index and commit once."""
        written = 0
        for batch in batches:
            if batch:
                self.search_index.write(batch)
                written += len(batch)
        if written == 0:
            raise IndexerError("No docs to write")
        self.search_index.commit()
        logger.info(f"Wrote {written} documents")
        return written

    def _require_root(self) -> SearchDocument:
        root = self.root_doc
        if root is None:
            raise IndexerError("No root document staged")
        return root


def measure_size(path: Path) -> int:
    """Size of a file, or the total size of all files below a folder."""
    if path.is_file():
        return path.stat().st_size
    if path.is_dir():
        return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())
    return 0


def create_write_strategy(
    search_index: SearchIndex,
    settings: "Settings",
    source_path: Optional[Path] = None,
    data_folders: Optional[dict[str, Path]] = None,
    field_config: Optional[FieldConfiguration] = None,
) -> WriteStrategy:
    """
    Factory function to select a write strategy for one record.

    Args:
        search_index: Index receiving the documents
        settings: Application settings (thresholds, nested mode, temp folder)
        source_path: Record source file
        data_folders: Auxiliary data folders by kind
        field_config: Field configuration

    Returns:
        Write strategy instance
    """
    from indexer.services.memory_strategy import HierarchicalWriteStrategy, MemoryWriteStrategy
    from indexer.services.serializing_strategy import SerializingWriteStrategy

    kwargs = {"field_config": field_config, "batch_size": settings.write_batch_size}

    if settings.hierarchical_documents:
        logger.info("Using hierarchical write strategy")
        return HierarchicalWriteStrategy(search_index, **kwargs)

    if source_path is not None and source_path.exists():
        size = measure_size(source_path)
        if size >= settings.source_size_threshold:
            logger.info(f"Source {source_path.name} is {size} bytes, using disk-backed write strategy")
            return SerializingWriteStrategy(search_index, temp_parent=settings.temp_path, **kwargs)

    for kind, folder in (data_folders or {}).items():
        if folder is None or not folder.exists():
            continue
        size = measure_size(folder)
        if size >= settings.data_folder_size_threshold:
            logger.info(f"Data folder '{kind}' is {size} bytes, using disk-backed write strategy")
            return SerializingWriteStrategy(search_index, temp_parent=settings.temp_path, **kwargs)

    logger.debug("Using in-memory write strategy")
    return MemoryWriteStrategy(search_index, **kwargs)
