"""Custom exception hierarchy for the indexer."""


class IndexerError(Exception):
    """Base class for all errors raised by the indexer."""


# --- Fatal errors: abort the current record and roll back ---

class FatalIndexerError(IndexerError):
    """Base class for errors that abort the record being indexed."""


class IdentifierAllocationError(FatalIndexerError):
    """Raised when a document identifier cannot be allocated safely."""


class SearchIndexError(FatalIndexerError):
    """Raised when the search index cannot be read, written or committed."""


class MalformedStructureError(FatalIndexerError):
    """Raised when the structural tree of a record is unusable."""


# --- Validation errors: reported to the caller, record not indexed ---

class RecordValidationError(IndexerError):
    """Raised when a record fails validation and must not be indexed."""


class IdentifierCollisionError(RecordValidationError):
    """Raised when identifiers of two documents or records collide."""
