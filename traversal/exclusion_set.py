"""
Object-id exclusion state shared by every level of one traversal pass.

A single ExclusionSet instance is handed by reference to the root level and
to every child level created beneath it. Consuming a node adds its id, so an
object reachable through several membership edges is only visited once.
"""

from typing import FrozenSet, Iterable, Iterator, Optional


class ExclusionSet:
    """Mutable set of object ids to skip."""

    def __init__(self, initial: Optional[Iterable[str]] = None):
        self._members = set(initial or ())

    def __contains__(self, object_id: object) -> bool:
        return object_id in self._members

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[str]:
        return iter(self._members)

    def __repr__(self) -> str:
        return f"ExclusionSet({sorted(self._members)!r})"

    def add(self, object_id: str) -> None:
        self._members.add(object_id)

    def snapshot(self) -> FrozenSet[str]:
        """Immutable copy of the current members."""
        return frozenset(self._members)

    def reset_to(self, snapshot: Iterable[str]) -> None:
        """Replace the members in place; holders of this instance see the change."""
        self._members.clear()
        self._members.update(snapshot)
