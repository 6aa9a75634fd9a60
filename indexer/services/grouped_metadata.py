"""
Grouped metadata and event documents.

Metadata groups (persons, places, subjects with authority data, ...) and
events are written as their own documents, owned by the structure element
they belong to.
"""

import logging

from indexer.models import constants as c
from indexer.models.fields import SearchDocument
from indexer.models.index_object import GroupedMetadata, IndexObject
from indexer.models.record import EventSource, GroupedMetadataSource
from indexer.services.identity import IdentityGenerator

logger = logging.getLogger(__name__)


def to_grouped_metadata(source: GroupedMetadataSource) -> GroupedMetadata:
    return GroupedMetadata(
        label=source.label,
        main_value=source.main_value,
        fields=list(source.fields),
        children=[to_grouped_metadata(child) for child in source.children],
        group_field=source.group_field,
    )


def remove_duplicate_groups(groups: list[GroupedMetadata]) -> list[GroupedMetadata]:
    """Drop groups identical to an earlier group of the same owner."""
    seen = set()
    unique = []
    for group in groups:
        signature = group.signature()
        if signature in seen:
            logger.debug(f"Dropping duplicate metadata group {group.label}: {group.main_value}")
            continue
        seen.add(signature)
        unique.append(group)
    return unique


class GroupedMetadataBuilder:
    """Materializes metadata groups and events as search documents."""

    def __init__(self, identity: IdentityGenerator, collection_field: str = "DC"):
        self.identity = identity
        self.collection_field = collection_field

    def build_group_docs(self, owner: IndexObject) -> list[SearchDocument]:
        """
        Build the documents for all metadata groups of a structure element.

        Groups without a main value are skipped.
        """
        docs: list[SearchDocument] = []
        for group in remove_duplicate_groups(owner.grouped_metadata):
            docs.extend(self._build_group(group, owner, owner.iddoc))
        return docs

    def _build_group(self, group: GroupedMetadata, owner: IndexObject, owner_iddoc: int) -> list[SearchDocument]:
        if not group.main_value:
            logger.debug(f"Skipping metadata group {group.label} of {owner.iddoc}: no main value")
            return []

        iddoc = self.identity.next_id()
        doc = SearchDocument()
        doc.add(c.IDDOC, iddoc)
        if group.group_field:
            doc.add(c.GROUPFIELD, group.group_field)
        else:
            logger.warning(f"Metadata group {group.label} has no group field, using {iddoc}")
            doc.add(c.GROUPFIELD, str(iddoc))
        doc.add(c.IDDOC_OWNER, owner_iddoc)
        doc.add(c.DOCTYPE, c.DOCTYPE_METADATA)
        doc.add(c.METADATATYPE, group.label)
        doc.add(c.MD_VALUE, group.main_value)
        if owner.topstruct_pi:
            doc.add(c.PI_TOPSTRUCT, owner.topstruct_pi)
        docstrct_top = owner.fields.get_first(c.DOCSTRCT_TOP)
        if docstrct_top:
            doc.add(c.DOCSTRCT_TOP, docstrct_top)
        for condition in owner.access_conditions:
            doc.add(c.ACCESSCONDITION, condition)
        for name, value in group.fields:
            try:
                doc.add(name, value)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping field {name} of metadata group {group.label}: {e}")
        for value in owner.fields.get_values(self.collection_field):
            doc.add_unique(self.collection_field, value)

        docs = [doc]
        for child in group.children:
            docs.extend(self._build_group(child, owner, iddoc))
        return docs

    def build_event_docs(
        self,
        events: list[EventSource],
        owner: IndexObject,
    ) -> list[SearchDocument]:
        """Build one document per event of the record."""
        docs = []
        for event in events:
            iddoc = self.identity.next_id()
            doc = SearchDocument()
            doc.add(c.IDDOC, iddoc)
            doc.add(c.GROUPFIELD, str(iddoc))
            doc.add(c.IDDOC_OWNER, owner.iddoc)
            doc.add(c.DOCTYPE, c.DOCTYPE_EVENT)
            doc.add(c.EVENTTYPE, event.type)
            if owner.topstruct_pi:
                doc.add(c.PI_TOPSTRUCT, owner.topstruct_pi)
            for condition in owner.access_conditions:
                doc.add(c.ACCESSCONDITION, condition)
            for name, value in event.fields:
                try:
                    doc.add(name, value)
                except (TypeError, ValueError) as e:
                    logger.warning(f"Skipping field {name} of event {event.type}: {e}")
            docs.append(doc)
        return docs

