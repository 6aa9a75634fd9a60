"""
Page document model.
"""

from dataclasses import dataclass, field
from typing import Optional

from indexer.models.constants import IDDOC_OWNER, MDNUM_OWNERDEPTH
from indexer.models.fields import SearchDocument


NO_OWNER_DEPTH = -1


@dataclass
class PageDocument:
    """
    One physical page or resource of a record.

    The owner attributes change while structural nodes claim the page; the
    search document is frozen once the record is committed.
    """

    order: int
    phys_id: str
    doc: SearchDocument = field(default_factory=SearchDocument)
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    order_label: Optional[str] = None
    full_text_available: bool = False
    owner_id: Optional[int] = None
    owner_depth: int = NO_OWNER_DEPTH

    @property
    def iddoc(self) -> Optional[int]:
        return self.doc.iddoc

    def can_be_claimed(self, depth: int) -> bool:
        """A node may claim the page if nobody owns it or it sits deeper than the owner."""
        return self.owner_id is None or depth > self.owner_depth

    def claim(self, owner_id: int, depth: int) -> bool:
        """
        Record a new owner if the ownership rule allows it.

        Returns:
            True if ownership changed
        """
        if not self.can_be_claimed(depth):
            return False
        self.owner_id = owner_id
        self.owner_depth = depth
        self.doc.set(IDDOC_OWNER, owner_id)
        self.doc.set(MDNUM_OWNERDEPTH, depth)
        return True

    def to_dict(self, include_doc: bool = True) -> dict:
        data = {
            "order": self.order,
            "phys_id": self.phys_id,
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "order_label": self.order_label,
            "full_text_available": self.full_text_available,
            "owner_id": self.owner_id,
            "owner_depth": self.owner_depth,
        }
        if include_doc:
            data["doc"] = self.doc.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict, doc: Optional[SearchDocument] = None) -> "PageDocument":
        if doc is None:
            doc = SearchDocument.from_dict(data.get("doc", {}))
        return cls(
            order=data["order"],
            phys_id=data["phys_id"],
            doc=doc,
            file_name=data.get("file_name"),
            mime_type=data.get("mime_type"),
            order_label=data.get("order_label"),
            full_text_available=data.get("full_text_available", False),
            owner_id=data.get("owner_id"),
            owner_depth=data.get("owner_depth", NO_OWNER_DEPTH),
        )

    def __repr__(self) -> str:
        return f"PageDocument(order={self.order}, phys_id={self.phys_id!r}, owner_id={self.owner_id})"
