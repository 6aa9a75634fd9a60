"""
Result of one indexing invocation.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class IndexingStatus(str, Enum):
    OK = "OK"
    ERROR = "ERROR"


class IndexingResult(BaseModel):
    """(status, message) pair returned to the caller of an indexing job."""

    status: IndexingStatus = Field(..., description="Outcome of the job")
    pi: Optional[str] = Field(None, description="Persistent identifier of the record")
    record_file_name: Optional[str] = Field(None, description="Name of the processed file")
    message: Optional[str] = Field(None, description="Human-readable error cause")

    @property
    def ok(self) -> bool:
        return self.status == IndexingStatus.OK

    @classmethod
    def success(cls, pi: Optional[str], record_file_name: Optional[str] = None) -> "IndexingResult":
        return cls(status=IndexingStatus.OK, pi=pi, record_file_name=record_file_name)

    @classmethod
    def failure(
        cls,
        message: str,
        pi: Optional[str] = None,
        record_file_name: Optional[str] = None,
    ) -> "IndexingResult":
        return cls(status=IndexingStatus.ERROR, pi=pi, record_file_name=record_file_name, message=message)
