"""Category registry — the flat set of names a listing may be filed under.

Mutation is admin-only; the service layer performs that check.
"""

from __future__ import annotations

from typing import Iterable

from guildhall.errors import AlreadyExistsError, InvalidInputError, NotFoundError


class CategoryRegistry:
    """Set of known listing categories, kept in insertion order."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: dict[str, None] = {}
        for name in names:
            self.add(name)

    def add(self, name: str) -> str:
        canonical = name.strip()
        if not canonical:
            raise InvalidInputError("Category name must be non-empty")
        if canonical in self._names:
            raise AlreadyExistsError(f"Category already exists: {canonical}")
        self._names[canonical] = None
        return canonical

    def remove(self, name: str) -> str:
        canonical = name.strip()
        if canonical not in self._names:
            raise NotFoundError(f"Category not found: {canonical}")
        del self._names[canonical]
        return canonical

    def exists(self, name: str) -> bool:
        return name in self._names

    def all(self) -> list[str]:
        return list(self._names)

    def __len__(self) -> int:
        return len(self._names)
