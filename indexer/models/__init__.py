"""Data models for the indexer."""

from indexer.models.fields import FieldValue, SearchDocument
from indexer.models.index_object import GroupedMetadata, IndexObject
from indexer.models.page import PageDocument
from indexer.models.record import (
    ChildLink,
    EventSource,
    GroupedMetadataSource,
    PageSource,
    RecordDescriptor,
    RecordSource,
    StructureElement,
)
from indexer.models.result import IndexingResult, IndexingStatus

__all__ = [
    "FieldValue",
    "SearchDocument",
    "GroupedMetadata",
    "IndexObject",
    "PageDocument",
    "ChildLink",
    "EventSource",
    "GroupedMetadataSource",
    "PageSource",
    "RecordDescriptor",
    "RecordSource",
    "StructureElement",
    "IndexingResult",
    "IndexingStatus",
]
