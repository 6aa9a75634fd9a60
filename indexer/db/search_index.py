"""
Search index interface using Qdrant.

Stores every search document of every record as one payload-only point in a
single collection. Writes and deletions are buffered and applied together on
commit, which restores the previous state of all affected points if applying
the batch fails.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Mapping, Optional, Sequence

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from indexer.exceptions import SearchIndexError
from indexer.models import constants as c
from indexer.models.fields import FieldValue, SearchDocument, encode_value


logger = logging.getLogger(__name__)

Query = Mapping[str, FieldValue]


class SearchIndex(ABC):
    """Abstract search index client."""

    @abstractmethod
    def search(
        self,
        query: Query,
        fields: Optional[Sequence[str]] = None,
        exclude: Optional[Query] = None,
    ) -> list[SearchDocument]:
        """
        Find committed documents matching all query terms.

        Args:
            query: Field name to value, AND-combined; a multi-valued field
                matches if any of its values is equal
            fields: Field names to return (all if None)
            exclude: Field name to value; documents matching any term are dropped

        Returns:
            Matching documents
        """
        pass

    @abstractmethod
    def write(self, documents: Iterable[SearchDocument]) -> None:
        """Stage documents for insertion; they become visible on commit."""
        pass

    @abstractmethod
    def delete(self, identifiers: Iterable[int]) -> None:
        """Stage document identifiers for deletion."""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Apply all staged writes and deletions."""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard all staged writes and deletions."""
        pass

    @abstractmethod
    def get(self, iddoc: int) -> Optional[SearchDocument]:
        """Point lookup of a committed document."""
        pass

    def is_id_available(self, iddoc: int) -> bool:
        """Check that no committed document uses an identifier."""
        return self.get(iddoc) is None

    def count(self, query: Query) -> int:
        return len(self.search(query, fields=[]))

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def project(doc: SearchDocument, fields: Optional[Sequence[str]]) -> SearchDocument:
    """Reduce a document to the requested fields."""
    if fields is None:
        return doc
    wanted = set(fields)
    projected = SearchDocument((name, value) for name, value in doc if name in wanted)
    projected.children = doc.children
    return projected


class QdrantSearchIndex(SearchIndex):
    """
    Search index backed by a Qdrant collection.

    The collection only holds payloads; points carry a dummy one-dimensional
    vector. The point id is the document identifier (IDDOC).
    """

    SCROLL_PAGE_SIZE = 256
    RETRIEVE_CHUNK_SIZE = 500
    KEYWORD_FIELDS = (c.PI, c.PI_TOPSTRUCT, c.PI_PARENT, c.DOCTYPE, c.URN)

    def __init__(
        self,
        location: str,
        collection_name: str = "records",
        batch_size: int = 5000,
    ):
        """
        Initialize search index.

        Args:
            location: Storage directory, or ":memory:" for a transient index
            collection_name: Name of the collection holding all documents
            batch_size: Maximum points per upsert request
        """
        self.location = location
        self.collection_name = collection_name
        self.batch_size = batch_size

        if location == ":memory:":
            self.client = QdrantClient(location=":memory:")
        else:
            self.client = QdrantClient(path=location)

        self._pending_writes: dict[int, SearchDocument] = {}
        self._pending_deletes: set[int] = set()

        logger.info(f"Initialized QdrantSearchIndex at {location}")
        self._ensure_collection()

    def _ensure_collection(self):
        """Create the collection if it doesn't exist."""
        collections = self.client.get_collections().collections
        collection_names = [collection.name for collection in collections]

        if self.collection_name not in collection_names:
            logger.info(f"Creating collection: {self.collection_name}")
            self.client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=1,  # Dummy vector
                    distance=Distance.DOT,
                ),
            )
            # Keyword indexes for the identifier lookups used while indexing
            for field_name in self.KEYWORD_FIELDS:
                self.client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=field_name,
                    field_schema="keyword"
                )

    @staticmethod
    def _build_filter(query: Query, exclude: Optional[Query] = None) -> Optional[Filter]:
        must = [
            FieldCondition(key=name, match=MatchValue(value=encode_value(value)))
            for name, value in query.items()
        ]
        must_not = [
            FieldCondition(key=name, match=MatchValue(value=encode_value(value)))
            for name, value in (exclude or {}).items()
        ]
        if not must and not must_not:
            return None
        return Filter(must=must or None, must_not=must_not or None)

    def search(
        self,
        query: Query,
        fields: Optional[Sequence[str]] = None,
        exclude: Optional[Query] = None,
    ) -> list[SearchDocument]:
        scroll_filter = self._build_filter(query, exclude)
        results: list[SearchDocument] = []
        offset = None

        try:
            while True:
                points, offset = self.client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=scroll_filter,
                    limit=self.SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )
                for point in points:
                    doc = SearchDocument.from_payload(point.payload or {})
                    results.append(project(doc, fields))
                if offset is None:
                    break
        except Exception as e:
            raise SearchIndexError(f"Search failed for {dict(query)}: {e}") from e

        logger.debug(f"Search {dict(query)} returned {len(results)} documents")
        return results

    def get(self, iddoc: int) -> Optional[SearchDocument]:
        try:
            points = self.client.retrieve(
                collection_name=self.collection_name,
                ids=[iddoc],
                with_payload=True,
            )
        except Exception as e:
            raise SearchIndexError(f"Lookup of document {iddoc} failed: {e}") from e
        if not points:
            return None
        return SearchDocument.from_payload(points[0].payload or {})

    def count(self, query: Query) -> int:
        try:
            return self.client.count(
                collection_name=self.collection_name,
                count_filter=self._build_filter(query),
                exact=True,
            ).count
        except Exception as e:
            raise SearchIndexError(f"Count failed for {dict(query)}: {e}") from e

    def write(self, documents: Iterable[SearchDocument]) -> None:
        for doc in documents:
            iddoc = doc.iddoc
            if iddoc is None:
                raise ValueError(f"Cannot write document without IDDOC: {doc!r}")
            self._pending_deletes.discard(iddoc)
            self._pending_writes[iddoc] = doc

    def delete(self, identifiers: Iterable[int]) -> None:
        for iddoc in identifiers:
            self._pending_writes.pop(iddoc, None)
            self._pending_deletes.add(iddoc)

    @property
    def pending(self) -> int:
        return len(self._pending_writes) + len(self._pending_deletes)

    def _snapshot(self, ids: list[int]) -> list:
        snapshot = []
        for start in range(0, len(ids), self.RETRIEVE_CHUNK_SIZE):
            snapshot.extend(
                self.client.retrieve(
                    collection_name=self.collection_name,
                    ids=ids[start:start + self.RETRIEVE_CHUNK_SIZE],
                    with_payload=True,
                    with_vectors=True,
                )
            )
        return snapshot

    def _to_point(self, doc: SearchDocument) -> PointStruct:
        return PointStruct(id=doc.iddoc, vector=[1.0], payload=doc.to_payload())

    def _apply(self, deletes: list[int], writes: list[SearchDocument]) -> None:
        if deletes:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=deletes),
            )
        for start in range(0, len(writes), self.batch_size):
            self.client.upsert(
                collection_name=self.collection_name,
                points=[self._to_point(doc) for doc in writes[start:start + self.batch_size]],
            )

    def _restore(self, affected: list[int], snapshot: list) -> None:
        self.client.delete(
            collection_name=self.collection_name,
            points_selector=PointIdsList(points=affected),
        )
        if snapshot:
            self.client.upsert(
                collection_name=self.collection_name,
                points=[
                    PointStruct(id=point.id, vector=point.vector or [1.0], payload=point.payload or {})
                    for point in snapshot
                ],
            )

    def commit(self) -> None:
        deletes = sorted(self._pending_deletes)
        writes = list(self._pending_writes.values())
        self._pending_deletes = set()
        self._pending_writes = {}

        if not deletes and not writes:
            return

        affected = sorted(set(deletes) | {doc.iddoc for doc in writes})
        try:
            snapshot = self._snapshot(affected)
        except Exception as e:
            raise SearchIndexError(f"Commit failed, index unreachable: {e}") from e

        try:
            self._apply(deletes, writes)
        except Exception as e:
            logger.error(f"Commit failed, restoring {len(snapshot)} documents: {e}")
            try:
                self._restore(affected, snapshot)
            except Exception as restore_error:
                logger.critical(f"Could not restore index state after failed commit: {restore_error}")
            raise SearchIndexError(f"Commit failed: {e}") from e

        logger.info(f"Committed {len(writes)} documents and {len(deletes)} deletions")

    def rollback(self) -> None:
        if self.pending:
            logger.info(f"Rolling back {self.pending} staged index operations")
        self._pending_deletes = set()
        self._pending_writes = {}

    def close(self):
        """Close the Qdrant client connection."""
        try:
            self.client.close()
            logger.info("Closed QdrantSearchIndex")
        except Exception as e:
            logger.warning(f"Error closing QdrantSearchIndex: {e}")
