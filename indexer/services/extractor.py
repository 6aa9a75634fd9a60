"""
Record source extraction.

Turns a record source file into a RecordSource. The JSON extractor reads
the normalized record format directly; other source formats plug in through
the MetadataExtractor interface.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from indexer.exceptions import RecordValidationError
from indexer.models.record import RecordSource

logger = logging.getLogger(__name__)


class MetadataExtractor(ABC):
    """Abstract base class for source format extractors."""

    @abstractmethod
    def extract(self, path: Path) -> RecordSource:
        """
        Read a record source file.

        Args:
            path: Source file

        Returns:
            Extracted record

        Raises:
            RecordValidationError: If the file cannot be read or is invalid
        """
        pass

    @abstractmethod
    def write(self, source: RecordSource, path: Path) -> Path:
        """
        Write a (regenerated) record source file.

        Returns:
            Path of the written file
        """
        pass


class JsonRecordExtractor(MetadataExtractor):
    """Extractor for the JSON record format."""

    def extract(self, path: Path) -> RecordSource:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise RecordValidationError(f"Cannot read record source {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise RecordValidationError(f"Record source {path} is not valid JSON: {e}") from e

        try:
            source = RecordSource.model_validate(data)
        except ValidationError as e:
            raise RecordValidationError(f"Invalid record source {path}: {e}") from e

        logger.debug(f"Extracted record {source.pi} from {path}")
        return source

    def write(self, source: RecordSource, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        # write to a sibling file first so readers never see a partial file
        tmp_path = path.with_name(f".{path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(source.model_dump_json(indent=2, exclude_none=True))
        os.replace(tmp_path, path)
        logger.debug(f"Wrote record source {source.pi} to {path}")
        return path
