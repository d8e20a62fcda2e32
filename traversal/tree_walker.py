"""
Lazy pre-order traversal over a rooted forest of repository objects.

TreeTraversal drives a stack of TreeLevelIterator instances. Nodes are yielded
before their children are resolved; resolving children happens only when the
consumer asks for the next node, so a consumer that stops early never issues
the index queries for the remainder of the tree.
"""

from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from api.errors import IndexQueryError
from api.interfaces import ChildIndex, ContentUnit, Repository, RepositoryObject
from colored_logger import get_colored_logger
from .exclusion_set import ExclusionSet
from .path_builder import PathBuilder
from .tree_iterator import TreeLevelIterator

logger = get_colored_logger(__name__)


class TraversalNode:
    """
    A yielded object id plus its lineage at the time it was visited.

    Label, content units and path are resolved lazily through the path
    builder, so failures surface where the caller reads them rather than
    inside the traversal.
    """

    def __init__(self, object_id: str, lineage: Tuple[str, ...], resolver: PathBuilder):
        self.object_id = object_id
        self.lineage = lineage
        self._resolver = resolver
        self._path: Optional[str] = None

    @property
    def depth(self) -> int:
        return len(self.lineage) - 1

    def load(self) -> RepositoryObject:
        return self._resolver.resolve(self.object_id)

    @property
    def label(self) -> str:
        return self.load().label

    def content_units(self) -> Sequence[ContentUnit]:
        return self.load().content_units()

    @property
    def path(self) -> str:
        if self._path is None:
            self._path = self._resolver.build(self.lineage)
        return self._path

    def __repr__(self) -> str:
        return f"TraversalNode({self.object_id}, depth={self.depth})"


class TreeTraversal:
    """
    Pre-order walk from `start_ids`, skipping `exclusions`.

    Every object is yielded at most once per pass, however many membership
    edges lead to it. `restart()` rewinds to the first node and discards the
    exclusions accumulated during the pass.
    """

    def __init__(
        self,
        start_ids: Iterable[str],
        exclude_ids: Iterable[str],
        repository: Repository,
        index: ChildIndex,
        identity: str,
        collection_model: str = "islandora:collectionCModel",
    ):
        self.identity = identity
        self.exclusions = ExclusionSet(exclude_ids)
        self.path_builder = PathBuilder(repository, identity, collection_model)
        self.root = TreeLevelIterator(
            list(start_ids),
            self.exclusions,
            index,
            identity,
            path_builder=self.path_builder,
        )

    def restart(self) -> None:
        self.root.restart()

    def __iter__(self) -> Iterator[TraversalNode]:
        return self.walk()

    def _descend(self, level: TreeLevelIterator) -> Optional[TreeLevelIterator]:
        object_id = level.current()
        try:
            if not level.has_children():
                return None
            return level.get_children()
        except IndexQueryError as e:
            logger.warning("Skipping children of %s: %s", object_id, e)
            return None

    def walk(self) -> Iterator[TraversalNode]:
        stack: List[TreeLevelIterator] = [self.root]
        while stack:
            level = stack[-1]
            if not level.valid():
                stack.pop()
                if stack:
                    stack[-1].advance()
                continue

            object_id = level.current()
            # Claim the id before descending so cycles and diamond edges
            # below this node cannot reach it again.
            self.exclusions.add(object_id)
            yield TraversalNode(object_id, level.current_lineage(), self.path_builder)

            child = self._descend(level)
            if child is not None:
                stack.append(child)
            else:
                level.advance()
