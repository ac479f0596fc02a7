"""Permission catalog for role-based access control.

A permission is an opaque capability tag such as ``"Accounting"``. Tags are
compared by exact string identity. The sentinel ``ALL_PERMISSIONS`` grants
unrestricted access and is always part of the catalog.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

ALL_PERMISSIONS = "All"


class PermissionCatalog:
    """Fixed, ordered set of capability tags available for assignment.

    The catalog is built once from configuration and never mutated. Iteration
    order is the configured order followed by ``ALL_PERMISSIONS``.
    """

    def __init__(self, tags: Iterable[str]) -> None:
        ordered: list[str] = []
        for tag in tags:
            if not tag or not tag.strip():
                raise ValueError("Permission tags cannot be empty")
            if tag not in ordered and tag != ALL_PERMISSIONS:
                ordered.append(tag)
        ordered.append(ALL_PERMISSIONS)
        self._tags = tuple(ordered)
        self._index = {tag: position for position, tag in enumerate(self._tags)}

    def list(self) -> tuple[str, ...]:
        """Return every tag in stable display order."""
        return self._tags

    def contains(self, tag: str) -> bool:
        """Check whether ``tag`` is a known capability."""
        return tag in self._index

    def unknown(self, tags: Iterable[str]) -> set[str]:
        """Return the subset of ``tags`` that are not in the catalog."""
        return {tag for tag in tags if tag not in self._index}

    def sort(self, tags: Iterable[str]) -> list[str]:
        """Order known tags by catalog position."""
        return sorted(set(tags), key=lambda tag: self._index.get(tag, len(self._index)))

    def expand(self, tags: Iterable[str]) -> frozenset[str]:
        """Resolve ``ALL_PERMISSIONS`` to the full catalog."""
        tags = frozenset(tags)
        if ALL_PERMISSIONS in tags:
            return frozenset(self._tags)
        return tags

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __contains__(self, tag: object) -> bool:
        return tag in self._index
