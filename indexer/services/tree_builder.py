"""
Document tree construction.

Builds the structure element tree of a record and prepares its documents in
explicit passes:

1. build: create one IndexObject per structure element, linked to its parent
2. resolve: propagate inherited fields top-down and claim pages
3. materialize: bottom-up inheritance, search text and staging of documents
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from indexer.config.fields import FieldConfiguration
from indexer.db.search_index import SearchIndex
from indexer.models import constants as c
from indexer.models.fields import as_datetime
from indexer.models.index_object import IndexObject
from indexer.models.record import StructureElement
from indexer.services.consistency import RecordDeleter
from indexer.services.grouped_metadata import GroupedMetadataBuilder, to_grouped_metadata
from indexer.services.identity import IdentityGenerator
from indexer.services.page_resolver import PageOwnershipResolver
from indexer.services.write_strategy import WriteStrategy

logger = logging.getLogger(__name__)

_DEFAULT_SEPARATORS = re.compile(r"[,;:]")
_MULTIPLE_SPACES = re.compile(r" {2,}")


def clean_up_default_field(value: str) -> str:
    """Replace separators with spaces, collapse repeated spaces and trim."""
    if not value:
        return ""
    value = _DEFAULT_SEPARATORS.sub(" ", value)
    value = _MULTIPLE_SPACES.sub(" ", value)
    return value.strip()


def contains_label(text: str, label: str) -> bool:
    """Check whether a label already occurs in a text as a run of whole words."""
    words = clean_up_default_field(text).split()
    label_words = clean_up_default_field(label).split()
    size = len(label_words)
    return any(words[i:i + size] == label_words for i in range(len(words) - size + 1))


@dataclass
class ExistingRecord:
    """What is kept from the previously indexed version of a record."""

    iddoc: Optional[int]
    anchor: bool = False
    tombstone: bool = False
    date_created: Optional[datetime] = None
    date_updated: list[datetime] = field(default_factory=list)
    thumbnail_represent: Optional[str] = None


class DocumentTreeBuilder:
    """Builds and stages the structure element documents of one record."""

    def __init__(
        self,
        identity: IdentityGenerator,
        search_index: SearchIndex,
        deleter: RecordDeleter,
        resolver: PageOwnershipResolver,
        grouped_builder: GroupedMetadataBuilder,
        field_config: Optional[FieldConfiguration] = None,
        add_label_to_children: bool = False,
    ):
        self.identity = identity
        self.search_index = search_index
        self.deleter = deleter
        self.resolver = resolver
        self.grouped_builder = grouped_builder
        self.field_config = field_config or FieldConfiguration()
        self.add_label_to_children = add_label_to_children

    # --- Create or update ---

    def probe_existing(self, pi: str) -> Optional[ExistingRecord]:
        """
        Look up the indexed version of a record.

        Returns:
            The existing record, a tombstone marker, or None for new records
        """
        hits = self.search_index.search({c.PI: pi})
        if not hits:
            return None

        live = [hit for hit in hits if c.DATEDELETED not in hit]
        if not live:
            logger.info(f"Record {pi} was deleted before, replacing its tombstone")
            return ExistingRecord(iddoc=hits[0].iddoc, tombstone=True)
        if len(live) > 1:
            logger.warning(f"Found {len(live)} documents with {c.PI} {pi}")

        doc = live[0]
        date_updated = [d for d in (as_datetime(v) for v in doc.get_values(c.DATEUPDATED)) if d is not None]
        represent = doc.get_first(c.THUMBNAILREPRESENT)
        return ExistingRecord(
            iddoc=doc.iddoc,
            anchor=doc.get_first(c.ISANCHOR) is True,
            date_created=as_datetime(doc.get_first(c.DATECREATED)),
            date_updated=date_updated,
            thumbnail_represent=str(represent) if represent else None,
        )

    def allocate_root_id(self, existing: Optional[ExistingRecord], anchor: bool) -> int:
        """Anchors keep their identifier across updates so volume links stay valid."""
        if existing is not None and existing.anchor and anchor and existing.iddoc is not None:
            logger.debug(f"Keeping anchor identifier {existing.iddoc}")
            return existing.iddoc
        return self.identity.next_id()

    def prepare_update(self, root: IndexObject, existing: Optional[ExistingRecord]) -> bool:
        """
        Stage removal of the previous version of a record.

        Immutable attributes (creation date, previous update dates, the
        representative page) are copied onto the new root.

        Returns:
            True if this is an update of an indexed record
        """
        if existing is None:
            return False

        if existing.tombstone:
            self.deleter.delete_with_pi(root.pi, trace=False)
            return False

        root.update = True
        if existing.date_created is not None:
            root.date_created = existing.date_created
        for date in existing.date_updated:
            if date not in root.date_updated:
                root.date_updated.append(date)
        if existing.thumbnail_represent:
            root.thumbnail_represent = existing.thumbnail_represent

        if existing.anchor and root.anchor:
            stale = {existing.iddoc}
            owned = self.search_index.search({c.IDDOC_OWNER: existing.iddoc}, fields=[c.IDDOC])
            owned.extend(self.search_index.search({c.PI_TOPSTRUCT: root.pi}, fields=[c.IDDOC]))
            stale.update(doc.iddoc for doc in owned if doc.iddoc is not None)
            logger.info(f"Updating anchor {root.pi}, removing {len(stale)} old documents")
            self.search_index.delete(stale)
        else:
            logger.info(f"Updating record {root.pi}")
            self.deleter.delete_with_pi(root.pi, trace=False)
        return True

    # --- Node data ---

    @staticmethod
    def top_structure(node: IndexObject) -> IndexObject:
        """First ancestor (or the node itself) that is not below an anchor."""
        top = node
        while top.parent is not None and not top.parent.anchor:
            top = top.parent
        return top

    def push_simple_data(self, node: IndexObject) -> None:
        """Add the core identification fields of a structure element."""
        f = node.fields
        f.add(c.IDDOC, node.iddoc)
        f.add(c.GROUPFIELD, str(node.iddoc))
        f.add(c.DOCTYPE, c.DOCTYPE_DOCSTRCT)
        if node.pi:
            f.add(c.PI, node.pi)
        if node.topstruct_pi:
            f.add(c.PI_TOPSTRUCT, node.topstruct_pi)
        if node.parent_pi:
            f.add(c.PI_PARENT, node.parent_pi)
            f.add(c.PI_ANCHOR, node.parent_pi)
        if node.label:
            f.add(c.LABEL, node.label)
        if node.log_id:
            f.add(c.LOGID, node.log_id)

        parent = node.parent
        if parent is not None:
            f.add(c.IDDOC_PARENT, parent.iddoc)
        top = self.top_structure(node)
        f.add(c.IDDOC_TOPSTRUCT, top.iddoc)
        if node.type:
            f.add(c.DOCSTRCT, node.type)
            if top.type:
                f.add(c.DOCSTRCT_TOP, top.type)
            if top is not node:
                f.add(c.DOCSTRCT_SUB, node.type)

    @staticmethod
    def add_element_fields(node: IndexObject, element: StructureElement) -> None:
        """Copy extracted values of a structure element onto its node."""
        for name, value in element.fields:
            try:
                node.add_field(name, value)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping field {name} of {element.log_id or element.type}: {e}")
        for condition in element.access_conditions:
            node.add_access_condition(condition)
        node.grouped_metadata = [to_grouped_metadata(group) for group in element.grouped_metadata]
        node.physical_ids = list(element.physical_ids)

    @staticmethod
    def write_access_conditions(node: IndexObject, parent: Optional[IndexObject] = None) -> None:
        """
        Write ACCESSCONDITION fields.

        Nodes without own conditions inherit their parent's restrictions;
        unrestricted nodes are open access.
        """
        if not node.access_conditions and parent is not None:
            for condition in parent.access_conditions:
                if condition != c.OPEN_ACCESS_VALUE:
                    node.add_access_condition(condition)
        if not node.access_conditions:
            node.add_access_condition(c.OPEN_ACCESS_VALUE)
        for condition in node.access_conditions:
            node.fields.add_unique(c.ACCESSCONDITION, condition)

    @staticmethod
    def write_date_modified(node: IndexObject, now: datetime) -> None:
        """Write creation, update and indexing dates of a record."""
        node.date_created = now
        node.fields.set(c.DATECREATED, node.date_created)
        if node.update or not node.date_updated:
            node.date_updated.append(now)
        for date in node.date_updated:
            node.fields.add_unique(c.DATEUPDATED, date)
        node.fields.set(c.SORT_DATEUPDATED, max(node.date_updated))
        node.date_indexed.append(now)
        node.fields.add(c.DATEINDEXED, now)

    def write_default_field(self, node: IndexObject) -> None:
        """Assemble the DEFAULT search text from configured fields and labels."""
        parts = [
            str(value)
            for name in self.field_config.fields_to_add_to_default
            for value in node.fields.get_values(name)
            if isinstance(value, str)
        ]
        default_value = " ".join(parts)
        if node.label and not contains_label(default_value, node.label):
            default_value += f" {node.label}"
        if self.add_label_to_children:
            for label in node.parent_labels:
                if not contains_label(default_value, label):
                    default_value += f" {label}"

        cleaned = clean_up_default_field(default_value)
        node.default_value = cleaned
        if cleaned:
            node.fields.set(c.DEFAULT, cleaned)

    @staticmethod
    def write_page_fields(node: IndexObject) -> None:
        if node.num_pages <= 0:
            return
        node.fields.set(c.NUMPAGES, node.num_pages)
        if node.first_page_label:
            node.fields.set(c.ORDERLABELFIRST, node.first_page_label)
        if node.last_page_label:
            node.fields.set(c.ORDERLABELLAST, node.last_page_label)
        if node.first_page_label and node.last_page_label:
            node.fields.set(c.MD_ORDERLABELRANGE, f"{node.first_page_label} - {node.last_page_label}")

    # --- Pass 1: build ---

    def build_tree(self, node: IndexObject, element: StructureElement) -> None:
        """Create and link the nodes for all descendants of a structure element."""
        for child_element in element.children:
            child = IndexObject(
                self.identity.next_id(),
                parent=node,
                type=child_element.type,
                label=child_element.label,
                log_id=child_element.log_id,
            )
            child.data_repository = node.data_repository
            child.parent_labels = ([node.label] if node.label else []) + node.parent_labels
            self.push_simple_data(child)
            self.add_element_fields(child, child_element)
            node.add_child(child)
            self.build_tree(child, child_element)

    # --- Pass 2: resolve ---

    def inherit_from_parent(self, child: IndexObject, parent: IndexObject) -> None:
        for date in parent.date_updated:
            if date not in child.date_updated:
                child.date_updated.append(date)
        for date in child.date_updated:
            child.fields.add_unique(c.DATEUPDATED, date)

        anchor_pi = parent.fields.get_first(c.PI_ANCHOR)
        if anchor_pi and c.PI_ANCHOR not in child.fields:
            child.fields.add(c.PI_ANCHOR, anchor_pi)

        for name in self.field_config.fields_to_add_to_children:
            for value in parent.fields.get_values(name):
                child.add_field(name, value, skip_duplicates=True)

        # One instance of each sort field
        for name, value in parent.fields:
            if name.startswith(c.SORT_PREFIX) and name not in child.fields:
                child.fields.add(name, value)

    def resolve(self, node: IndexObject, write_strategy: WriteStrategy) -> None:
        """Propagate inherited data to all descendants and claim their pages."""
        for child in node.children:
            self.inherit_from_parent(child, node)
            self.write_access_conditions(child, node)
            if child.physical_ids:
                self.resolver.map_pages(child, write_strategy)
            self.resolve(child, write_strategy)

    # --- Pass 3: materialize ---

    def add_child_metadata(self, parent: IndexObject, child: IndexObject) -> None:
        for name in self.field_config.fields_to_add_to_parents:
            for value in child.fields.get_values(name):
                parent.fields.add_unique(name, value)

    def materialize(self, node: IndexObject, write_strategy: WriteStrategy) -> int:
        """
        Stage the documents of all descendants, deepest first.

        Returns:
            Number of staged structure element documents
        """
        staged = 0
        for child in node.children:
            staged += self.materialize(child, write_strategy)
            self.write_page_fields(child)
            self.write_default_field(child)
            self.add_child_metadata(node, child)
            write_strategy.add_docs(self.grouped_builder.build_group_docs(child))
            write_strategy.add_doc(child.to_document())
            staged += 1
        return staged
