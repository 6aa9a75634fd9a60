"""
Record indexing pipeline.

Sequences the indexing of one record: create-or-update detection, tree
building, page generation and ownership resolution, anchor/volume
consistency and the single commit of all documents.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import Callable, Optional

from indexer.config.fields import FieldConfiguration
from indexer.config.settings import Settings
from indexer.db.search_index import SearchIndex
from indexer.exceptions import IdentifierCollisionError, IndexerError, RecordValidationError
from indexer.models import constants as c
from indexer.models.fields import utc_now
from indexer.models.index_object import IndexObject
from indexer.models.record import RecordDescriptor, RecordSource
from indexer.models.result import IndexingResult
from indexer.services.consistency import AnchorCoordinator, RecordDeleter
from indexer.services.extractor import MetadataExtractor
from indexer.services.grouped_metadata import GroupedMetadataBuilder
from indexer.services.identity import IdentityGenerator
from indexer.services.page_builder import PageDocumentBuilder
from indexer.services.page_resolver import PageOwnershipResolver
from indexer.services.reindex_queue import ReindexQueue
from indexer.services.tree_builder import DocumentTreeBuilder
from indexer.services.write_strategy import WriteStrategy, create_write_strategy

logger = logging.getLogger(__name__)

ILLEGAL_PI_CHARACTERS = re.compile(r"[^\w|-]")


def validate_pi(pi: Optional[str]) -> str:
    """
    Check a persistent identifier.

    Raises:
        RecordValidationError: If the PI is missing or has illegal characters
    """
    if not pi or not pi.strip():
        raise RecordValidationError("PI not found.")
    pi = pi.strip()
    if ILLEGAL_PI_CHARACTERS.search(pi):
        raise RecordValidationError(f"PI contains illegal characters: {pi}")
    return pi


class RecordIndexer:
    """
    Indexing pipeline for record sources.

    Coordinates the tree builder, page builder, ownership resolver, write
    strategy and anchor coordinator for one record at a time.
    """

    def __init__(
        self,
        search_index: SearchIndex,
        identity: IdentityGenerator,
        extractor: MetadataExtractor,
        reindex_queue: ReindexQueue,
        settings: Settings,
        field_config: Optional[FieldConfiguration] = None,
        clock: Callable = utc_now,
        strategy_factory: Callable[..., WriteStrategy] = create_write_strategy,
    ):
        """
        Initialize record indexer.

        Args:
            search_index: Index client
            identity: Identifier generator shared by all components
            extractor: Source format extractor
            reindex_queue: Queue receiving anchor and volume re-index work
            settings: Application settings
            field_config: Field propagation configuration
            clock: Source of timestamps
            strategy_factory: Selects the write strategy of a record
        """
        self.search_index = search_index
        self.identity = identity
        self.extractor = extractor
        self.reindex_queue = reindex_queue
        self.settings = settings
        self.field_config = field_config or settings.get_field_configuration()
        self.clock = clock
        self.strategy_factory = strategy_factory

        self.resolver = PageOwnershipResolver(self.field_config)
        self.grouped_builder = GroupedMetadataBuilder(identity, self.field_config.collection_field)
        self.deleter = RecordDeleter(search_index, identity, clock=clock)
        self.tree_builder = DocumentTreeBuilder(
            identity=identity,
            search_index=search_index,
            deleter=self.deleter,
            resolver=self.resolver,
            grouped_builder=self.grouped_builder,
            field_config=self.field_config,
            add_label_to_children=settings.add_label_to_children,
        )
        self.page_builder = PageDocumentBuilder(identity, threads=settings.page_threads)
        self.coordinator = AnchorCoordinator(
            search_index=search_index,
            extractor=extractor,
            reindex_queue=reindex_queue,
            hotfolder_path=settings.hotfolder_path,
            indexed_records_path=settings.indexed_records_path,
            collection_field=self.field_config.collection_field,
            add_volume_collections=settings.add_volume_collections_to_anchor,
        )

        logger.info("Initialized RecordIndexer")

    def index(
        self,
        descriptor: RecordDescriptor,
        write_strategy: Optional[WriteStrategy] = None,
    ) -> IndexingResult:
        """
        Index one record source.

        Args:
            descriptor: Source file and auxiliary data folders
            write_strategy: Staging area to use instead of the configured one

        Returns:
            OK with the record PI, or ERROR with the cause
        """
        path = descriptor.main_path
        logger.info(f"Indexing {path.name}")
        pi: Optional[str] = None
        strategy = write_strategy

        try:
            source = self.extractor.extract(path)
            pi = validate_pi(source.pi)
            if strategy is None:
                strategy = self.strategy_factory(
                    self.search_index,
                    self.settings,
                    source_path=path,
                    data_folders=descriptor.data_folders,
                    field_config=self.field_config,
                )
            root = self._index_record(pi, source, strategy, descriptor)
        except RecordValidationError as e:
            logger.error(f"Record {pi or path.name} not indexed: {e}")
            self.search_index.rollback()
            return IndexingResult.failure(str(e), pi=pi, record_file_name=path.name)
        except IndexerError as e:
            logger.error(f"Indexing of {pi or path.name} failed: {e}", exc_info=True)
            self.search_index.rollback()
            return IndexingResult.failure(str(e), pi=pi, record_file_name=path.name)
        except Exception as e:
            logger.error(f"Unexpected error indexing {pi or path.name}: {e}", exc_info=True)
            self.search_index.rollback()
            return IndexingResult.failure(f"Unexpected error: {e}", pi=pi, record_file_name=path.name)
        finally:
            if strategy is not None:
                strategy.cleanup()

        self._store_source(path, pi)

        rescheduled = self.coordinator.consume_rescheduled(pi)
        if root.volume and root.parent_pi and (not root.update or rescheduled):
            self.coordinator.schedule_anchor_reindex(root.parent_pi)

        logger.info(f"Successfully indexed {pi} ({'update' if root.update else 'new'})")
        return IndexingResult.success(pi, record_file_name=path.name)

    def _index_record(
        self,
        pi: str,
        source: RecordSource,
        strategy: WriteStrategy,
        descriptor: RecordDescriptor,
    ) -> IndexObject:
        now = self.clock()
        tree = self.tree_builder
        existing = tree.probe_existing(pi)

        anchor_node = None
        if source.is_volume:
            anchor_doc = self.coordinator.find_anchor(source.parent_pi)
            if anchor_doc is not None:
                anchor_node = self.coordinator.build_anchor_node(anchor_doc, source.parent_pi)
            else:
                logger.info(f"Anchor {source.parent_pi} of {pi} is not indexed yet")

        root_id = tree.allocate_root_id(existing, source.anchor)
        if anchor_node is not None and anchor_node.iddoc == root_id:
            raise IdentifierCollisionError(f"Anchor and volume have the same IDDOC: {root_id}")

        root = IndexObject(
            root_id,
            parent=anchor_node,
            type=source.root.type,
            label=source.root.label,
            log_id=source.root.log_id,
            pi=pi,
        )
        root.topstruct_pi = pi
        root.anchor = source.anchor
        root.volume = source.is_volume
        root.parent_pi = source.parent_pi if source.is_volume else None
        root.data_repository = source.data_repository
        root.source_doc_format = source.source_format

        tree.prepare_update(root, existing)

        tree.push_simple_data(root)
        root.fields.add(c.SOURCEDOCFORMAT, source.source_format)
        tree.add_element_fields(root, source.root)
        if anchor_node is not None and not root.access_conditions:
            for condition in anchor_node.access_conditions:
                root.add_access_condition(condition)
        tree.write_access_conditions(root)
        tree.write_date_modified(root, now)

        if root.anchor:
            root.fields.set(c.ISANCHOR, True)
            root.fields.set(c.NUMVOLUMES, self.coordinator.count_volumes(pi))
        else:
            summary = self.page_builder.generate_pages(
                source.pages,
                pi,
                strategy,
                data_folders=descriptor.data_folders,
                data_repository=source.data_repository,
            )
            root.fields.set(c.BOOL_IMAGEAVAILABLE, summary.image_available)
            root.fields.set(c.FULLTEXTAVAILABLE, summary.full_text_available)
            if not root.physical_ids:
                root.physical_ids = [page.phys_id for page in sorted(source.pages, key=lambda p: p.order)]
            if root.physical_ids:
                self.resolver.map_pages(
                    root,
                    strategy,
                    is_work=True,
                    representative=source.representative or root.thumbnail_represent,
                )
            root.fields.set(c.ISWORK, True)

        tree.build_tree(root, source.root)
        tree.resolve(root, strategy)

        if root.anchor:
            self.coordinator.merge_anchor(root, source)
            self.coordinator.schedule_volume_reindex(root)
        else:
            self.resolver.summarize(root.walk(), strategy)
            tree.write_page_fields(root)

        staged = tree.materialize(root, strategy)
        tree.write_default_field(root)
        strategy.add_docs(self.grouped_builder.build_group_docs(root))
        strategy.add_docs(self.grouped_builder.build_event_docs(source.events, root))
        strategy.set_root_doc(root.to_document())
        logger.debug(f"Staged {staged} structure elements and {strategy.page_docs_size} pages for {pi}")

        # Point of no return
        strategy.write_docs(aggregate=self.settings.aggregate_records)
        return root

    def _store_source(self, path: Path, pi: str) -> None:
        """Keep the indexed source in the data repository."""
        target = self.coordinator.indexed_source_path(pi)
        if path.resolve() == target.resolve():
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(path, target)
        except OSError as e:
            logger.warning(f"Could not store source of {pi} in {target.parent}: {e}")

    def delete(self, pi: str, trace: bool = True) -> IndexingResult:
        """
        Delete a record, optionally leaving a tombstone.

        Returns:
            OK with the PI, or ERROR if the record was not deleted
        """
        try:
            pi = validate_pi(pi)
        except RecordValidationError as e:
            return IndexingResult.failure(str(e), pi=pi)

        if not self.deleter.delete(pi, trace=trace):
            return IndexingResult.failure(f"Could not delete {pi}", pi=pi)

        stored = self.coordinator.indexed_source_path(pi)
        stored.unlink(missing_ok=True)
        return IndexingResult.success(pi)

    def apply_anchor_update(self, path: Path) -> IndexingResult:
        """
        Store a regenerated anchor source without re-indexing it.

        Used for metadata-only anchor updates whose collections did not change.
        """
        try:
            source = self.extractor.extract(path)
            pi = validate_pi(source.pi)
        except RecordValidationError as e:
            logger.error(f"Invalid anchor update {path.name}: {e}")
            return IndexingResult.failure(str(e), record_file_name=path.name)

        target = self.coordinator.indexed_source_path(pi)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, target)
        except OSError as e:
            logger.error(f"Could not store metadata update of anchor {pi} in {target.parent}: {e}")
            return IndexingResult.failure(
                f"Could not store anchor update: {e}", pi=pi, record_file_name=path.name
            )
        logger.info(f"Stored metadata update of anchor {pi}")
        return IndexingResult.success(pi, record_file_name=path.name)
