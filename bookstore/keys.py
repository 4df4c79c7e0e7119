"""Cache keys for entity rows.

Every key lives in a ``cache:<table>:<field>`` namespace, so lookups by
primary key and by each secondary field can never collide. Values are
percent-encoded, which keeps the separator out of the variable part.
"""
from dataclasses import dataclass
from urllib.parse import quote

KEY_PREFIX = "cache"
KEY_SEP = ":"
PRIMARY_FIELD = "id"


def _validate_name(value: str, name: str) -> None:
    """Raise ValueError if *value* is empty or contains the key separator."""
    if not value or KEY_SEP in value:
        raise ValueError(f"Cache key {name} must be non-empty and not contain {KEY_SEP!r}: {value!r}")


@dataclass(frozen=True)
class CacheKey:
    """A cache key for one lookup dimension of one table."""

    table: str
    field: str
    value: str

    def __post_init__(self) -> None:
        _validate_name(self.table, "table")
        _validate_name(self.field, "field")

    @classmethod
    def primary(cls, table: str, pk: int | str) -> "CacheKey":
        return cls(table, PRIMARY_FIELD, str(pk))

    @classmethod
    def secondary(cls, table: str, field: str, value: object) -> "CacheKey":
        if field == PRIMARY_FIELD:
            raise ValueError("secondary keys must not use the primary key namespace")
        return cls(table, field, str(value))

    @property
    def is_primary(self) -> bool:
        return self.field == PRIMARY_FIELD

    def __str__(self) -> str:
        return KEY_SEP.join((KEY_PREFIX, self.table, self.field, quote(self.value, safe="")))
