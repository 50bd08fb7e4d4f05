from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from ..models.dataset import MARKER_KEYS, is_blank, values_equal

"""Row identity strategies.

Rows have no primary key, so identity across two snapshots is derived from a
small set of columns domain experts treat as identifying (asset type, component,
functional location). The strategy is swappable: anything with ``key_of`` works,
so a future stable row id only needs a new RowIdentity implementation.
"""

__all__ = [
    "RowKey",
    "RowIdentity",
    "CompositeKeyIdentity",
    "DEFAULT_KEY_FIELDS",
    "rows_equal",
]

RowKey = tuple[str, ...]

DEFAULT_KEY_FIELDS: tuple[str, ...] = ("Asset Type", "Component", "FLOC")


class RowIdentity(Protocol):
    def key_of(self, row: Mapping[str, Any]) -> RowKey: ...


class CompositeKeyIdentity:
    """Composite key built from a fixed list of fields.

    Total: a missing or blank field contributes an empty segment instead of
    raising, so every row gets a key.
    """

    def __init__(self, key_fields: Sequence[str] = DEFAULT_KEY_FIELDS) -> None:
        if not key_fields:
            raise ValueError("key_fields must not be empty")
        self.key_fields = tuple(key_fields)

    def key_of(self, row: Mapping[str, Any]) -> RowKey:
        parts = []
        for f in self.key_fields:
            v = row.get(f)
            parts.append("" if is_blank(v) else str(v))
        return tuple(parts)

    def __repr__(self) -> str:  # pragma: no cover (trivial)
        return f"CompositeKeyIdentity({list(self.key_fields)!r})"


def rows_equal(a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
    """Full-row equality under null-equivalence, ignoring preview markers."""
    keys = (set(a) | set(b)) - MARKER_KEYS
    return all(values_equal(a.get(k), b.get(k)) for k in keys)
