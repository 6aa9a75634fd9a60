"""
Data models for record sources.

A record source is the extracted, format-neutral description of one logical
record: its structural tree, its physical pages and its events.
"""

from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictInt, StrictStr

SourceValue = Union[StrictBool, StrictInt, StrictStr]


class GroupedMetadataSource(BaseModel):
    """A metadata group (e.g. a person with name parts and authority ids)."""

    label: str = Field(..., description="Group type, written as METADATATYPE")
    main_value: Optional[str] = Field(None, description="Display value of the group")
    fields: list[tuple[str, SourceValue]] = Field(default_factory=list, description="Group fields")
    group_field: Optional[str] = Field(None, description="Explicit grouping value")
    children: list["GroupedMetadataSource"] = Field(default_factory=list, description="Nested groups")


class ChildLink(BaseModel):
    """Link from an anchor to one of its volumes."""

    pi: str = Field(..., description="Persistent identifier of the volume")
    order: Optional[int] = Field(None, description="Position of the volume within the anchor")
    label: Optional[str] = Field(None, description="Volume label")
    type: Optional[str] = Field(None, description="Structural type of the volume")
    urn: Optional[str] = Field(None, description="URN of the volume")
    log_id: Optional[str] = Field(None, description="Local structural id of the link")


class StructureElement(BaseModel):
    """One node of the logical structure."""

    type: str = Field(..., description="Structural type (monograph, chapter, volume, ...)")
    label: Optional[str] = Field(None, description="Display label")
    log_id: Optional[str] = Field(None, description="Local structural id")
    fields: list[tuple[str, SourceValue]] = Field(default_factory=list, description="Extracted fields")
    access_conditions: list[str] = Field(default_factory=list, description="Access conditions")
    grouped_metadata: list[GroupedMetadataSource] = Field(default_factory=list)
    physical_ids: list[str] = Field(
        default_factory=list,
        description="Physical ids of the pages mapped to this node"
    )
    children: list["StructureElement"] = Field(default_factory=list)
    child_links: list[ChildLink] = Field(
        default_factory=list,
        description="Volume links (anchors only)"
    )


class PageSource(BaseModel):
    """One physical page or resource."""

    phys_id: str = Field(..., description="Source-local physical id")
    order: int = Field(..., ge=1, description="1-based sequence position")
    order_label: Optional[str] = Field(None, description="Printed page label")
    file_name: Optional[str] = Field(None, description="Image or media file name")
    mime_type: Optional[str] = Field(None, description="Media type of the file")
    urn: Optional[str] = Field(None, description="Page-level URN")
    doc_type: str = Field(default="PAGE", description="PAGE or SHAPE")
    fields: list[tuple[str, SourceValue]] = Field(default_factory=list)
    full_text: Optional[str] = Field(None, description="Inline full text")


class EventSource(BaseModel):
    """An event (production, acquisition, ...) attached to the record."""

    type: str = Field(..., description="Event type")
    fields: list[tuple[str, SourceValue]] = Field(default_factory=list)


class RecordSource(BaseModel):
    """Extracted content of one record source file."""

    pi: Optional[str] = Field(None, description="Persistent identifier")
    anchor: bool = Field(default=False, description="True for multi-volume anchors")
    parent_pi: Optional[str] = Field(None, description="Anchor PI of a volume")
    source_format: str = Field(default="JSON", description="Source document format")
    representative: Optional[str] = Field(None, description="File name of the representative page")
    root: StructureElement
    pages: list[PageSource] = Field(default_factory=list)
    events: list[EventSource] = Field(default_factory=list)
    data_repository: Optional[str] = Field(None, description="Data repository name")

    @property
    def is_volume(self) -> bool:
        return not self.anchor and bool(self.parent_pi)


class RecordDescriptor(BaseModel):
    """A job: the main source file plus auxiliary data folders."""

    main_path: Path = Field(..., description="Path to the record source file")
    data_folders: dict[str, Path] = Field(
        default_factory=dict,
        description="Auxiliary data folders by kind (fulltext, alto, media, ...)"
    )


GroupedMetadataSource.model_rebuild()
StructureElement.model_rebuild()
