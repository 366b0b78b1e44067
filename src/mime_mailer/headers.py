# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Ordered, case-insensitive header multimap.

Field names keep the spelling they were first set with and are compared
case-insensitively. Emission order is the order in which each field name was
first seen; replacing the values of an existing field keeps its position.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, MutableMapping


class Header(MutableMapping[str, list[str]]):
    """Mapping from header field name to its ordered list of values."""

    def __init__(self, fields: Mapping[str, Iterable[str]] | None = None):
        self._fields: dict[str, tuple[str, list[str]]] = {}
        if fields:
            for key, values in fields.items():
                self[key] = values

    def __getitem__(self, key: str) -> list[str]:
        return self._fields[key.lower()][1]

    def __setitem__(self, key: str, values: Iterable[str]) -> None:
        if isinstance(values, str):
            values = [values]
        lowered = key.lower()
        existing = self._fields.get(lowered)
        name = existing[0] if existing else key
        self._fields[lowered] = (name, list(values))

    def __delitem__(self, key: str) -> None:
        del self._fields[key.lower()]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._fields

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"Header({dict(self.items())!r})"

    def set(self, key: str, value: str) -> None:
        """Replace the field with a single value."""
        self[key] = [value]

    def add(self, key: str, value: str) -> None:
        """Append a value, creating the field when needed."""
        if key in self:
            self[key].append(value)
        else:
            self[key] = [value]

    def copy(self) -> Header:
        return Header(self)


__all__ = ["Header"]
