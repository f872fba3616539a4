# Overview: Normalized attribute dictionary used by variants and tier scoping.

from __future__ import annotations

from collections.abc import Mapping
from typing import Iterator


class AttributeMap(Mapping):
    """
    Ordered, immutable mapping of attribute name -> attribute value.

    Keys are lowercased and stripped (parent attribute names are stored that
    way); values are stripped but keep their case. Two maps are equal when
    they hold the same pairs, regardless of insertion order.
    """

    __slots__ = ("_items",)

    def __init__(self, data: Mapping | list | tuple | None = None):
        items: dict[str, str] = {}
        if data is None:
            pairs = []
        elif isinstance(data, Mapping):
            pairs = list(data.items())
        else:
            pairs = list(data)
        for key, value in pairs:
            if key is None or value is None:
                raise ValueError("attribute names and values cannot be null")
            name = normalize_name(key)
            if not name:
                raise ValueError("attribute names cannot be blank")
            items[name] = str(value).strip()
        self._items = items

    def __getitem__(self, key: str) -> str:
        return self._items[normalize_name(key)]

    def __contains__(self, key) -> bool:
        if not isinstance(key, str):
            return False
        return normalize_name(key) in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other) -> bool:
        if isinstance(other, AttributeMap):
            return self._items == other._items
        if isinstance(other, Mapping):
            try:
                return self._items == AttributeMap(other)._items
            except ValueError:
                return False
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._items.items()))

    def __repr__(self) -> str:
        return f"AttributeMap({self._items!r})"

    def matches(self, name: str | None, value: str | None) -> bool:
        """True when the pair is present. An unscoped pair (name=None) always matches."""
        if name is None:
            return True
        if name not in self:
            return False
        return self[name] == (value or "").strip()

    def joined_values(self, sep: str = " ") -> str:
        return sep.join(self._items.values())

    def to_dict(self) -> dict[str, str]:
        return dict(self._items)


def normalize_name(name) -> str:
    return str(name).strip().lower()
