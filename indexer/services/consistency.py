"""
Cross-record consistency.

Keeps multi-volume works coherent (anchor merge, re-index scheduling) and
implements cascading deletion with optional tombstones.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from indexer.db.search_index import SearchIndex
from indexer.exceptions import IndexerError
from indexer.models import constants as c
from indexer.models.fields import SearchDocument, utc_now
from indexer.models.index_object import IndexObject
from indexer.models.record import ChildLink, RecordSource
from indexer.services.extractor import MetadataExtractor
from indexer.services.identity import IdentityGenerator
from indexer.services.reindex_queue import ReindexPriority, ReindexQueue

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"
ANCHOR_UPDATE_SUFFIX = ".anchor_update"


class RecordDeleter:
    """Cascading deletion of records, optionally leaving a tombstone."""

    def __init__(
        self,
        search_index: SearchIndex,
        identity: IdentityGenerator,
        clock: Callable = utc_now,
    ):
        self.search_index = search_index
        self.identity = identity
        self.clock = clock

    def has_volumes(self, pi: str) -> bool:
        """True if pi is an anchor that still has indexed volumes."""
        docs = self.search_index.search({c.PI: pi}, fields=[c.ISANCHOR])
        if not any(doc.get_first(c.ISANCHOR) is True for doc in docs):
            return False
        return self.search_index.count({c.PI_PARENT: pi}) > 0

    def _page_urns(self, pi: str, record: SearchDocument) -> list[str]:
        pages = self.search_index.search({c.PI_TOPSTRUCT: pi, c.DOCTYPE: c.DOCTYPE_PAGE}, fields=[c.ORDER, c.IMAGEURN])
        # nested pages of records written in hierarchical mode
        pages.extend(child for child in record.children if child.get_first(c.DOCTYPE) == c.DOCTYPE_PAGE)
        pages.sort(key=lambda p: p.get_first(c.ORDER) or 0)
        urns = []
        for page in pages:
            for urn in page.get_values(c.IMAGEURN):
                if urn not in urns:
                    urns.append(urn)
        return urns

    def build_tombstone(self, pi: str, record: SearchDocument) -> SearchDocument:
        """Minimal document marking the deletion of a record."""
        now = self.clock()
        iddoc = self.identity.next_id()
        tombstone = SearchDocument()
        tombstone.add(c.IDDOC, iddoc)
        tombstone.add(c.GROUPFIELD, str(iddoc))
        tombstone.add(c.PI, pi)
        urn = record.get_first(c.URN)
        if urn:
            tombstone.add(c.URN, urn)
        for page_urn in self._page_urns(pi, record):
            tombstone.add(c.IMAGEURN_OAI, page_urn)
        tombstone.add(c.DATEDELETED, now)
        tombstone.add(c.DATEUPDATED, now)
        return tombstone

    def delete_with_pi(self, pi: str, trace: bool) -> bool:
        """
        Stage deletion of all documents of a record without committing.

        Args:
            pi: Persistent identifier of the record
            trace: Stage a tombstone unless one exists already

        Returns:
            False if no document with this PI exists
        """
        hits = self.search_index.search({c.PI: pi})
        if not hits:
            logger.warning(f"Not found: {pi}")
            return False
        if len(hits) > 1:
            logger.warning(f"{len(hits)} documents found for {pi}")

        tombstone_exists = any(c.DATEDELETED in hit for hit in hits)
        to_delete: set[int] = set()
        for hit in hits:
            if c.DATEDELETED in hit:
                if not trace and hit.iddoc is not None:
                    to_delete.add(hit.iddoc)
                continue
            if hit.iddoc is not None:
                to_delete.add(hit.iddoc)
            if trace and not tombstone_exists:
                tombstone = self.build_tombstone(pi, hit)
                self.search_index.write([tombstone])
                tombstone_exists = True
                logger.info(f"Created tombstone {tombstone.iddoc} for {pi}")

        for doc in self.search_index.search({c.PI_TOPSTRUCT: pi}, fields=[c.IDDOC]):
            if doc.iddoc is not None:
                to_delete.add(doc.iddoc)

        self.search_index.delete(to_delete)
        logger.info(f"Deleting {len(to_delete)} documents of {pi}")
        return True

    def delete(self, pi: str, trace: bool = True) -> bool:
        """
        Delete a record and all its documents in one commit.

        Args:
            pi: Persistent identifier of the record
            trace: Leave a tombstone document

        Returns:
            True if the record was deleted; False if it was not found, is an
            anchor with volumes, or the deletion failed and was rolled back
        """
        try:
            if self.has_volumes(pi):
                logger.warning(f"Record {pi} is an anchor with indexed volumes, not deleting")
                return False
            if not self.delete_with_pi(pi, trace):
                self.search_index.rollback()
                return False
            self.search_index.commit()
        except IndexerError as e:
            logger.error(f"Deletion of {pi} failed, rolling back: {e}", exc_info=True)
            self.search_index.rollback()
            return False

        logger.info(f"Deleted {pi}")
        return True


@dataclass
class AnchorMergeResult:
    """Outcome of regenerating an anchor's volume links."""

    volume_pis: list[str] = field(default_factory=list)
    collections: list[str] = field(default_factory=list)
    collections_changed: bool = False
    path: Optional[Path] = None


class AnchorCoordinator:
    """
    Keeps anchors and their volumes consistent.

    Regenerated anchor sources are written to the hotfolder and queued; the
    sources of indexed records live in the data repository folder.
    """

    def __init__(
        self,
        search_index: SearchIndex,
        extractor: MetadataExtractor,
        reindex_queue: ReindexQueue,
        hotfolder_path: Path,
        indexed_records_path: Path,
        collection_field: str = "DC",
        add_volume_collections: bool = True,
    ):
        self.search_index = search_index
        self.extractor = extractor
        self.reindex_queue = reindex_queue
        self.hotfolder_path = hotfolder_path
        self.indexed_records_path = indexed_records_path
        self.collection_field = collection_field
        self.add_volume_collections = add_volume_collections
        self._rescheduled_volumes: set[str] = set()

    def indexed_source_path(self, pi: str) -> Path:
        return self.indexed_records_path / f"{pi}{RECORD_SUFFIX}"

    # --- Volumes ---

    def find_anchor(self, parent_pi: str) -> Optional[SearchDocument]:
        """Get the indexed anchor document of a volume, if any."""
        for doc in self.search_index.search({c.PI: parent_pi}):
            if c.DATEDELETED not in doc:
                return doc
        return None

    def build_anchor_node(self, anchor_doc: SearchDocument, parent_pi: str) -> IndexObject:
        """Parent node standing in for the indexed anchor of a volume."""
        docstrct = anchor_doc.get_first(c.DOCSTRCT)
        if not docstrct:
            logger.warning(f"Anchor {parent_pi} has no {c.DOCSTRCT}, using {c.GENERIC_ANCHOR_TYPE}")
            docstrct = c.GENERIC_ANCHOR_TYPE
        label = anchor_doc.get_first(c.LABEL)
        node = IndexObject(
            anchor_doc.iddoc,
            type=str(docstrct),
            label=str(label) if label else None,
            pi=parent_pi,
        )
        node.anchor = True
        for condition in anchor_doc.get_values(c.ACCESSCONDITION):
            node.add_access_condition(str(condition))
        return node

    def schedule_anchor_reindex(self, parent_pi: str) -> bool:
        """Queue the stored anchor source so its volume links are regenerated."""
        path = self.indexed_source_path(parent_pi)
        if not path.exists():
            logger.info(f"Anchor {parent_pi} has not been indexed yet, nothing to re-index")
            return False
        return self.reindex_queue.add(path, ReindexPriority.HIGH)

    def consume_rescheduled(self, pi: str) -> bool:
        """True (once) if the volume was queued because its parent link was stale."""
        if pi in self._rescheduled_volumes:
            self._rescheduled_volumes.discard(pi)
            return True
        return False

    # --- Anchors ---

    def count_volumes(self, anchor_pi: str) -> int:
        return self.search_index.count({c.PI_PARENT: anchor_pi, c.ISWORK: True})

    def _indexed_volumes(self, anchor_pi: str) -> list[SearchDocument]:
        volumes = self.search_index.search({c.PI_PARENT: anchor_pi, c.ISWORK: True})
        orders = [volume.get_first(c.CURRENTNOSORT) for volume in volumes]
        if volumes and all(isinstance(o, int) and not isinstance(o, bool) for o in orders):
            volumes.sort(key=lambda v: (v.get_first(c.CURRENTNOSORT), str(v.get_first(c.PI))))
        else:
            if any(o is None for o in orders):
                logger.debug(f"Not all volumes of {anchor_pi} have {c.CURRENTNOSORT}, sorting by PI")
            volumes.sort(key=lambda v: str(v.get_first(c.PI)))
        return volumes

    def _merge_collections(self, anchor: IndexObject, volumes: list[SearchDocument]) -> tuple[list[str], bool]:
        own = {str(v).lower() for v in anchor.fields.get_values(self.collection_field)}
        merged = set(own)
        for volume in volumes:
            for value in volume.get_values(self.collection_field):
                merged.add(str(value).lower())
        return sorted(merged), len(merged) > len(own)

    def merge_anchor(self, anchor: IndexObject, source: RecordSource) -> AnchorMergeResult:
        """
        Regenerate the volume links of an anchor from the indexed volumes.

        The regenerated source is queued for immediate re-indexing if the
        merged collections changed, otherwise as a metadata-only update.
        """
        volumes = self._indexed_volumes(anchor.pi)
        result = AnchorMergeResult()
        if not volumes:
            logger.warning(f"Anchor {anchor.pi} has no volumes, no merge needed")
            return result

        links = []
        for position, volume in enumerate(volumes, start=1):
            volume_pi = str(volume.get_first(c.PI))
            order = volume.get_first(c.CURRENTNOSORT)
            label = volume.get_first(c.LABEL)
            links.append(ChildLink(
                pi=volume_pi,
                order=order if isinstance(order, int) and not isinstance(order, bool) else position,
                label=str(label) if label else c.EMPTY_PAGE_LABEL,
                type=str(volume.get_first(c.DOCSTRCT)) if volume.get_first(c.DOCSTRCT) else None,
                urn=str(volume.get_first(c.URN)) if volume.get_first(c.URN) else None,
                log_id=f"LOG_{position:04d}",
            ))
            result.volume_pis.append(volume_pi)

        regenerated = source.model_copy(deep=True)
        regenerated.root.child_links = links

        if self.add_volume_collections:
            result.collections, result.collections_changed = self._merge_collections(anchor, volumes)
            if result.collections_changed:
                regenerated.root.fields = [
                    (name, value) for name, value in regenerated.root.fields if name != self.collection_field
                ] + [(self.collection_field, value) for value in result.collections]

        if result.collections_changed:
            path = self.hotfolder_path / f"{anchor.pi}{RECORD_SUFFIX}"
            priority = ReindexPriority.HIGH
        else:
            path = self.hotfolder_path / f"{anchor.pi}{ANCHOR_UPDATE_SUFFIX}"
            priority = ReindexPriority.LOW
        result.path = self.extractor.write(regenerated, path)
        self.reindex_queue.add(result.path, priority)

        logger.info(
            f"Merged anchor {anchor.pi}: {len(links)} volumes, "
            f"collections {'changed' if result.collections_changed else 'unchanged'}"
        )
        return result

    def schedule_volume_reindex(self, anchor: IndexObject) -> list[str]:
        """
        Queue every volume whose parent link does not point to the anchor.

        Returns:
            PIs of the queued volumes
        """
        scheduled = []
        for volume in self.search_index.search({c.PI_PARENT: anchor.pi, c.ISWORK: True}):
            if volume.get_first(c.IDDOC_PARENT) == anchor.iddoc:
                continue
            volume_pi = str(volume.get_first(c.PI))
            path = self.indexed_source_path(volume_pi)
            if not path.exists():
                logger.warning(f"Source of volume {volume_pi} not found in {self.indexed_records_path}")
                continue
            if self.reindex_queue.add(path, ReindexPriority.HIGH):
                self._rescheduled_volumes.add(volume_pi)
                scheduled.append(volume_pi)
        if scheduled:
            logger.info(f"Scheduled {len(scheduled)} volumes of {anchor.pi} for re-indexing")
        return scheduled
