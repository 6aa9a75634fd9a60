"""
Field propagation configuration.

Defines which fields travel between structural nodes and pages, and which
fields the index stores with a single value only.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class FieldConfiguration(BaseModel):
    """Field names copied between documents of one record."""

    fields_to_add_to_children: list[str] = Field(
        default_factory=lambda: ["DC", "MD_PUBLISHER", "MD_YEARPUBLISH"],
        description="Parent fields copied to every child structure element"
    )
    fields_to_add_to_pages: list[str] = Field(
        default_factory=lambda: ["DC", "MD_TITLE", "MD_CREATOR"],
        description="Owner fields copied to the pages it owns"
    )
    fields_to_add_to_parents: list[str] = Field(
        default_factory=list,
        description="Child fields copied upwards to the parent"
    )
    fields_to_add_to_default: list[str] = Field(
        default_factory=lambda: ["MD_TITLE", "MD_CREATOR", "MD_SUBJECT"],
        description="Fields whose values make up the DEFAULT search text"
    )
    collection_field: str = Field(default="DC", description="Field holding collection names")
    single_valued_fields: list[str] = Field(
        default_factory=lambda: ["DATECREATED"],
        description="Fields trimmed to their first value before commit"
    )
    single_valued_prefixes: list[str] = Field(
        default_factory=lambda: ["BOOL_", "MDNUM_"],
        description="Field name prefixes trimmed to their first value before commit"
    )

    def is_single_valued(self, name: str) -> bool:
        return name in self.single_valued_fields or any(
            name.startswith(prefix) for prefix in self.single_valued_prefixes
        )


def load_field_configuration(path: Optional[Path] = None) -> FieldConfiguration:
    """
    Load the field configuration from a JSON file.

    Args:
        path: JSON file path; None for the defaults

    Returns:
        Field configuration

    Raises:
        ValueError: If the file cannot be read or is invalid
    """
    if path is None:
        return FieldConfiguration()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot read field configuration {path}: {e}") from e

    try:
        config = FieldConfiguration.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid field configuration {path}: {e}") from e

    logger.info(f"Loaded field configuration from {path}")
    return config
