"""
Page ownership resolution.

Every structure element claims the pages mapped to it. A page belongs to the
deepest element that claims it: a claim replaces the current owner only if
no owner is recorded yet or the claiming element sits deeper in the tree.
"""

import logging
from pathlib import PurePath
from typing import Iterable, Optional

from indexer.config.fields import FieldConfiguration
from indexer.exceptions import MalformedStructureError
from indexer.models import constants as c
from indexer.models.index_object import IndexObject
from indexer.models.page import PageDocument
from indexer.services.write_strategy import WriteStrategy

logger = logging.getLogger(__name__)


def _same_file(file_name: Optional[str], representative: str) -> bool:
    if not file_name:
        return False
    return file_name == representative or PurePath(file_name).name == PurePath(representative).name


class PageOwnershipResolver:
    """Maps staged pages to structure elements."""

    def __init__(self, field_config: Optional[FieldConfiguration] = None):
        self.field_config = field_config or FieldConfiguration()

    def map_pages(
        self,
        node: IndexObject,
        write_strategy: WriteStrategy,
        is_work: bool = False,
        representative: Optional[str] = None,
    ) -> list[PageDocument]:
        """
        Claim the pages mapped to a structure element.

        Args:
            node: Structure element; its physical ids select the pages
            write_strategy: Staging area holding the page documents
            is_work: True for the record element, which gets the thumbnail
            representative: File name of the representative page

        Returns:
            Pages mapped to the node, in the order of its physical ids

        Raises:
            MalformedStructureError: If the node has no local structural id
        """
        if not node.log_id:
            raise MalformedStructureError(f"Structure element {node.iddoc} ({node.type}) has no LOGID")

        pages = write_strategy.get_page_docs_for_phys_ids(node.physical_ids)
        if not pages:
            logger.debug(f"No pages mapped to {node.log_id}")
            return []

        if is_work and not representative:
            representative = node.thumbnail_represent
        first_page = min(pages, key=lambda p: p.order)
        if is_work and not representative:
            self._set_thumbnail(node, first_page, represent=False)

        represented = False
        for page in pages:
            if is_work and representative and not represented and _same_file(page.file_name, representative):
                self._set_thumbnail(node, page, represent=True)
                represented = True

            if page.claim(node.iddoc, node.depth):
                self._take_ownership(node, page)

            self._add_record_fields(node, page)
            self._merge_access_conditions(node, page)
            write_strategy.update_doc(page)

        if is_work and representative and not represented:
            logger.warning(
                f"Representative '{representative}' of {node.pi} matches no page, using page {first_page.order}"
            )
            self._set_thumbnail(node, first_page, represent=True)

        return pages

    def _take_ownership(self, node: IndexObject, page: PageDocument) -> None:
        doc = page.doc
        if node.log_id:
            doc.set(c.LOGID, node.log_id)
        if node.type:
            doc.set(c.DOCSTRCT, node.type)
        if c.DOCSTRCT_TOP not in doc and node.fields.get_first(c.DOCSTRCT_TOP):
            doc.add(c.DOCSTRCT_TOP, node.fields.get_first(c.DOCSTRCT_TOP))

        # Sort fields follow the current owner
        doc.remove_prefix(c.SORT_PREFIX)
        for name, value in node.fields:
            if name.startswith(c.SORT_PREFIX) and name not in doc:
                doc.add(name, value)

        for name in self.field_config.fields_to_add_to_pages:
            for value in node.fields.get_values(name):
                doc.add_unique(name, value)

    def _add_record_fields(self, node: IndexObject, page: PageDocument) -> None:
        doc = page.doc
        if c.PI_TOPSTRUCT not in doc and node.topstruct_pi:
            doc.add(c.PI_TOPSTRUCT, node.topstruct_pi)
        anchor_pi = node.fields.get_first(c.PI_ANCHOR)
        if anchor_pi and c.PI_ANCHOR not in doc:
            doc.add(c.PI_ANCHOR, anchor_pi)
        if node.data_repository and c.DATAREPOSITORY not in doc:
            doc.add(c.DATAREPOSITORY, node.data_repository)
        for date in node.date_updated:
            doc.add_unique(c.DATEUPDATED, date)

    @staticmethod
    def _merge_access_conditions(node: IndexObject, page: PageDocument) -> None:
        doc = page.doc
        for condition in node.access_conditions:
            existing = doc.get_values(c.ACCESSCONDITION)
            if condition == c.OPEN_ACCESS_VALUE:
                if not existing:
                    doc.add(c.ACCESSCONDITION, condition)
                continue
            if existing == [c.OPEN_ACCESS_VALUE]:
                doc.remove(c.ACCESSCONDITION)
            doc.add_unique(c.ACCESSCONDITION, condition)

    @staticmethod
    def _set_thumbnail(node: IndexObject, page: PageDocument, represent: bool) -> None:
        node.thumbnail_file_name = page.file_name
        if page.file_name:
            node.fields.set(c.THUMBNAIL, page.file_name)
            if represent:
                node.fields.set(c.THUMBNAILREPRESENT, page.file_name)
                node.thumbnail_represent = page.file_name
        node.fields.set(c.THUMBPAGENO, page.order)
        if page.order_label:
            node.fields.set(c.THUMBPAGENOLABEL, page.order_label)
        if page.mime_type:
            node.fields.set(c.MIMETYPE, page.mime_type)

    def summarize(self, nodes: Iterable[IndexObject], write_strategy: WriteStrategy) -> None:
        """
        Record page counts and labels once ownership is final.

        Each node counts the pages it owns; labels come from its first and
        last owned page in page order.
        """
        owned: dict[int, list[PageDocument]] = {}
        for page in write_strategy.get_pages_in_order():
            if page.owner_id is not None:
                owned.setdefault(page.owner_id, []).append(page)

        for node in nodes:
            pages = owned.get(node.iddoc, [])
            node.num_pages = len(pages)
            if pages:
                node.set_page_labels(pages[0].order_label, pages[-1].order_label)
            else:
                node.set_page_labels(None, None)
