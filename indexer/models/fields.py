"""
Search document model.

A search document is an ordered multimap of field names to values. Values are
a small closed set of kinds: strings, integers, booleans and timestamps.
Repeated field names are allowed and keep their insertion order.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Optional, Union

from indexer.models.constants import GROUPFIELD, IDDOC

FieldValue = Union[bool, int, str, datetime]

CHILDREN_KEY = "_children"

_KIND_BOOL = "bool"
_KIND_INT = "int"
_KIND_STR = "str"
_KIND_DATE = "date"


def utc_now() -> datetime:
    """Current time, truncated to milliseconds (the index resolution)."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_millis(value: datetime) -> int:
    """Convert a timestamp to epoch milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_millis(value: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC timestamp."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def as_datetime(value: Any) -> Optional[datetime]:
    """
    Interpret a stored field value as a timestamp.

    Timestamps read back from the index arrive as epoch milliseconds, staged
    ones as datetime objects.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, int):
        return from_millis(value)
    if isinstance(value, str):
        try:
            return as_datetime(datetime.fromisoformat(value))
        except ValueError:
            return None
    return None


def _kind_of(value: FieldValue) -> str:
    # bool is a subclass of int, check it first
    if isinstance(value, bool):
        return _KIND_BOOL
    if isinstance(value, int):
        return _KIND_INT
    if isinstance(value, str):
        return _KIND_STR
    if isinstance(value, datetime):
        return _KIND_DATE
    raise TypeError(f"Unsupported field value type: {type(value).__name__}")


def encode_value(value: FieldValue) -> Union[bool, int, str]:
    """Encode a value for storage in an index payload."""
    if isinstance(value, datetime):
        return to_millis(value)
    return value


class SearchDocument:
    """
    Flat field map written to the search index.

    Holds an ordered list of (name, value) pairs plus optional nested child
    documents used by the hierarchical write mode.
    """

    __slots__ = ("_fields", "children")

    def __init__(self, fields: Iterable[tuple[str, FieldValue]] = ()):
        self._fields: list[tuple[str, FieldValue]] = []
        self.children: list["SearchDocument"] = []
        for name, value in fields:
            self.add(name, value)

    def add(self, name: str, value: FieldValue) -> None:
        """Append a value. Duplicates are kept."""
        if not name:
            raise ValueError("Field name must not be empty")
        _kind_of(value)
        self._fields.append((name, value))

    def add_unique(self, name: str, value: FieldValue) -> bool:
        """Append a value unless the same name/value pair is already present."""
        if self.has_value(name, value):
            return False
        self.add(name, value)
        return True

    def set(self, name: str, value: FieldValue) -> None:
        """Replace all values of a field with a single value."""
        self.remove(name)
        self.add(name, value)

    def remove(self, name: str) -> int:
        """Remove all values of a field. Returns the number removed."""
        before = len(self._fields)
        self._fields = [(n, v) for n, v in self._fields if n != name]
        return before - len(self._fields)

    def remove_prefix(self, prefix: str) -> int:
        """Remove all fields whose name starts with a prefix."""
        before = len(self._fields)
        self._fields = [(n, v) for n, v in self._fields if not n.startswith(prefix)]
        return before - len(self._fields)

    def get_first(self, name: str, default: Optional[FieldValue] = None) -> Optional[FieldValue]:
        for field_name, value in self._fields:
            if field_name == name:
                return value
        return default

    def get_values(self, name: str) -> list[FieldValue]:
        return [v for n, v in self._fields if n == name]

    def has_value(self, name: str, value: FieldValue) -> bool:
        for field_name, existing in self._fields:
            if field_name == name and existing == value and _kind_of(existing) == _kind_of(value):
                return True
        return False

    def names(self) -> list[str]:
        """Distinct field names in first-occurrence order."""
        seen: dict[str, None] = {}
        for name, _ in self._fields:
            seen.setdefault(name, None)
        return list(seen)

    def items(self) -> list[tuple[str, FieldValue]]:
        return list(self._fields)

    def copy(self) -> "SearchDocument":
        clone = SearchDocument(self._fields)
        clone.children = [child.copy() for child in self.children]
        return clone

    @property
    def iddoc(self) -> Optional[int]:
        value = self.get_first(IDDOC)
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
        return None

    @property
    def group_field(self) -> Optional[FieldValue]:
        return self.get_first(GROUPFIELD)

    def __contains__(self, name: object) -> bool:
        return any(n == name for n, _ in self._fields)

    def __iter__(self) -> Iterator[tuple[str, FieldValue]]:
        return iter(list(self._fields))

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchDocument):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"SearchDocument(iddoc={self.iddoc}, fields={len(self._fields)}, children={len(self.children)})"

    # --- Serialization ---

    def to_dict(self) -> dict:
        """Kind-tagged form used by the disk-backed staging area."""
        data: dict = {
            "fields": [[name, _kind_of(value), encode_value(value)] for name, value in self._fields]
        }
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SearchDocument":
        doc = cls()
        for name, kind, raw in data.get("fields", []):
            if kind == _KIND_DATE:
                doc.add(name, from_millis(raw))
            elif kind == _KIND_BOOL:
                doc.add(name, bool(raw))
            elif kind == _KIND_INT:
                doc.add(name, int(raw))
            else:
                doc.add(name, str(raw))
        doc.children = [cls.from_dict(child) for child in data.get("children", [])]
        return doc

    def to_payload(self) -> dict:
        """Index payload: field name to list of values, timestamps as epoch milliseconds."""
        payload: dict[str, Any] = {}
        for name, value in self._fields:
            payload.setdefault(name, []).append(encode_value(value))
        if self.children:
            payload[CHILDREN_KEY] = [child.to_payload() for child in self.children]
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "SearchDocument":
        doc = cls()
        for name, values in payload.items():
            if name == CHILDREN_KEY:
                continue
            if not isinstance(values, list):
                values = [values]
            for value in values:
                doc.add(name, value)
        doc.children = [cls.from_payload(child) for child in payload.get(CHILDREN_KEY, [])]
        return doc
