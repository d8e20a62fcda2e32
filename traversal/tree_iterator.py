"""
One level of a depth-first walk over the repository's membership graph.

Each level holds an ordered list of candidate ids and a cursor. All levels of
a pass share one ExclusionSet by reference: ids are added as they are
consumed, and the cursor skips any id already present. Only the root level
keeps a snapshot of the caller-supplied exclusions and may restart the pass.
"""

from typing import List, Optional, Sequence, Tuple

from api.interfaces import ChildIndex
from colored_logger import get_colored_logger
from .exclusion_set import ExclusionSet
from .path_builder import PathBuilder

logger = get_colored_logger(__name__)


class TraversalStateError(RuntimeError):
    """A traversal level was used in a way its position does not allow."""

    pass


class TreeLevelIterator:
    def __init__(
        self,
        object_ids: Sequence[str],
        exclusions: ExclusionSet,
        index: ChildIndex,
        identity: str,
        path_builder: Optional[PathBuilder] = None,
        parent: Optional["TreeLevelIterator"] = None,
    ):
        self._ids: List[str] = list(object_ids)
        self.exclusions = exclusions
        self.index = index
        self.identity = identity
        self.path_builder = path_builder
        self.parent = parent
        self._pristine = exclusions.snapshot() if parent is None else None
        self._cursor = 0
        self._skip_excluded()

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def depth(self) -> int:
        return 0 if self.parent is None else self.parent.depth + 1

    def __len__(self) -> int:
        return len(self._ids)

    def _skip_excluded(self) -> None:
        while self._cursor < len(self._ids) and self._ids[self._cursor] in self.exclusions:
            self._cursor += 1

    def valid(self) -> bool:
        return (
            self._cursor < len(self._ids)
            and self._ids[self._cursor] not in self.exclusions
        )

    def current(self) -> str:
        if self._cursor >= len(self._ids):
            raise TraversalStateError("Traversal level is exhausted")
        return self._ids[self._cursor]

    def advance(self) -> None:
        """Exclude the current id for the rest of the pass and move to the next valid one."""
        if self._cursor >= len(self._ids):
            return
        self.exclusions.add(self._ids[self._cursor])
        self._cursor += 1
        self._skip_excluded()

    def restart(self) -> None:
        """
        Rewind the pass to its first node and restore the caller-supplied
        exclusions. Only the root level owns the exclusion state of a pass.
        """
        if not self.is_root:
            raise TraversalStateError(
                "Only the root traversal level can be restarted; "
                "child levels share the pass's exclusion set"
            )
        self.exclusions.reset_to(self._pristine)
        self._cursor = 0
        self._skip_excluded()

    def has_children(self) -> bool:
        """Existence check against the index. Raises IndexQueryError."""
        return self.index.count_children(self.current(), self.identity) > 0

    def get_children(self) -> "TreeLevelIterator":
        """Child level for the current id, sharing this pass's exclusion set."""
        child_ids = self.index.list_children(self.current(), self.identity)
        logger.trace("%s has %d children", self.current(), len(child_ids))
        return TreeLevelIterator(
            child_ids,
            self.exclusions,
            self.index,
            self.identity,
            path_builder=self.path_builder,
            parent=self,
        )

    def current_lineage(self) -> Tuple[str, ...]:
        """Ids of the current node and its ancestors, root level first."""
        lineage = []
        level: Optional[TreeLevelIterator] = self
        while level is not None:
            lineage.append(level.current())
            level = level.parent
        return tuple(reversed(lineage))

    def current_path(self) -> str:
        if self.path_builder is None:
            raise TraversalStateError("No path builder configured for this traversal")
        return self.path_builder.build(self.current_lineage())
