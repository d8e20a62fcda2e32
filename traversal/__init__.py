from .exclusion_set import ExclusionSet
from .path_builder import PathBuilder, sanitize_component
from .tree_iterator import TreeLevelIterator, TraversalStateError
from .tree_walker import TraversalNode, TreeTraversal

__all__ = [
    "ExclusionSet",
    "PathBuilder",
    "sanitize_component",
    "TreeLevelIterator",
    "TraversalStateError",
    "TraversalNode",
    "TreeTraversal",
]
