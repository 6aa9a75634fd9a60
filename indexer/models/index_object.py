"""
Structural node model.

An IndexObject is one level of the logical structure of a record (the
record itself, a chapter, a volume, ...). Nodes own their children and their
grouped metadata; the parent link is a weak back-reference.
"""

import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional

from indexer.models.constants import (
    BOOL_PREFIX,
    EMPTY_PAGE_LABEL,
    SORT_PREFIX,
)
from indexer.models.fields import FieldValue, SearchDocument


@dataclass
class GroupedMetadata:
    """A metadata group that becomes its own search document."""

    label: str
    main_value: Optional[str] = None
    fields: list[tuple[str, FieldValue]] = field(default_factory=list)
    children: list["GroupedMetadata"] = field(default_factory=list)
    group_field: Optional[str] = None

    def signature(self) -> tuple:
        """Identity used to drop duplicate groups of one owner."""
        return (
            self.label,
            self.main_value,
            tuple(self.fields),
            tuple(child.signature() for child in self.children),
        )


class IndexObject:
    """
    A structural node of a record.

    Attributes:
        iddoc: Document identifier, fixed at construction
        depth: Distance from the top of the tree (anchors count as a level)
        fields: Ordered field list written to the index
    """

    def __init__(
        self,
        iddoc: int,
        parent: Optional["IndexObject"] = None,
        type: Optional[str] = None,
        label: Optional[str] = None,
        log_id: Optional[str] = None,
        pi: Optional[str] = None,
    ):
        if iddoc is None:
            raise ValueError("IndexObject requires an identifier")
        self._iddoc = iddoc
        self._parent_ref = weakref.ref(parent) if parent is not None else None
        self.parent_id: Optional[int] = parent.iddoc if parent is not None else None
        self.depth: int = parent.depth + 1 if parent is not None else 0

        self.type = type
        self.label = label
        self.log_id = log_id
        self.pi = pi
        self.topstruct_pi: Optional[str] = parent.topstruct_pi if parent is not None else pi
        self.parent_pi: Optional[str] = None

        self.fields = SearchDocument()
        self.grouped_metadata: list[GroupedMetadata] = []
        self.access_conditions: list[str] = []
        self.children: list["IndexObject"] = []
        self.physical_ids: list[str] = []

        self._date_created: Optional[datetime] = None
        self.date_updated: list[datetime] = []
        self.date_indexed: list[datetime] = []

        self.num_pages = 0
        self.first_page_label: Optional[str] = None
        self.last_page_label: Optional[str] = None
        self.thumbnail_file_name: Optional[str] = None
        self.thumbnail_represent: Optional[str] = None

        self.default_value = ""
        self.parent_labels: list[str] = []

        self.anchor = False
        self.volume = False
        self.update = False
        self.data_repository: Optional[str] = None
        self.source_doc_format: Optional[str] = None

    @property
    def iddoc(self) -> int:
        return self._iddoc

    @property
    def parent(self) -> Optional["IndexObject"]:
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def date_created(self) -> Optional[datetime]:
        return self._date_created

    @date_created.setter
    def date_created(self, value: datetime) -> None:
        # creation date never changes once known
        if self._date_created is None:
            self._date_created = value

    def add_child(self, child: "IndexObject") -> None:
        if child.parent is not self:
            raise ValueError(f"Node {child.iddoc} was not created under {self.iddoc}")
        self.children.append(child)

    def add_field(self, name: str, value: FieldValue, skip_duplicates: bool = False) -> bool:
        """
        Add a field value.

        Sort and boolean fields are single-valued and replace any existing value.

        Returns:
            True if the value was added
        """
        if value is None or value == "":
            return False
        if name.startswith(SORT_PREFIX) or name.startswith(BOOL_PREFIX):
            self.fields.set(name, value)
            return True
        if skip_duplicates:
            return self.fields.add_unique(name, value)
        self.fields.add(name, value)
        return True

    def add_access_condition(self, condition: str) -> None:
        if condition and condition not in self.access_conditions:
            self.access_conditions.append(condition)

    def set_page_labels(self, first: Optional[str], last: Optional[str]) -> None:
        self.first_page_label = first if first and first != EMPTY_PAGE_LABEL else None
        self.last_page_label = last if last and last != EMPTY_PAGE_LABEL else None

    def ancestors(self) -> Iterator["IndexObject"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def walk(self) -> Iterator["IndexObject"]:
        """Pre-order traversal of this node and its descendants."""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_document(self) -> SearchDocument:
        return self.fields.copy()

    def __repr__(self) -> str:
        return f"IndexObject(iddoc={self.iddoc}, type={self.type!r}, log_id={self.log_id!r}, depth={self.depth})"
