"""
Human-readable archive paths for traversal nodes.

A node's path is built from its lineage (root level id first) as
"label (id)" components joined by "/". When the root object is not a
collection, the label of its first parent is prepended so the export still
reads as nested under something.
"""

import re
from typing import List, Optional, Sequence, Set

from api.errors import RepositoryAccessError
from api.interfaces import Repository, RepositoryObject
from colored_logger import get_colored_logger
from core import Cache

logger = get_colored_logger(__name__)

_UNSAFE_CHARS = re.compile(r'[\x00-\x1f\x7f/\\:*?"<>|]')
MAX_COMPONENT_LENGTH = 120


def sanitize_component(value: str, fallback: str = "unnamed") -> str:
    """Make one path component safe for use inside a ZIP entry name."""
    cleaned = _UNSAFE_CHARS.sub("_", value or "").strip()
    cleaned = cleaned.replace("..", "_")
    cleaned = cleaned.strip(". ")
    if len(cleaned) > MAX_COMPONENT_LENGTH:
        cleaned = cleaned[:MAX_COMPONENT_LENGTH].rstrip()
    return cleaned or fallback


class PathBuilder:
    """Resolves objects for one export identity and renders lineage paths."""

    def __init__(
        self,
        repository: Repository,
        identity: str,
        collection_model: str = "islandora:collectionCModel",
        cache: Optional[Cache] = None,
    ):
        self.repository = repository
        self.identity = identity
        self.collection_model = collection_model
        self._objects = cache or Cache(ttl_seconds=3600, max_entries=1000)
        self._unresolved: Set[str] = set()

    def resolve(self, object_id: str) -> RepositoryObject:
        """Load an object as the export identity. Raises RepositoryAccessError."""
        return self._objects.get_or_load(
            self.identity,
            object_id,
            lambda: self.repository.load_object(object_id, self.identity),
        )

    def _try_resolve(self, object_id: str) -> Optional[RepositoryObject]:
        if object_id in self._unresolved:
            return None
        try:
            return self.resolve(object_id)
        except RepositoryAccessError as e:
            self._unresolved.add(object_id)
            logger.warning("Could not resolve label of %s for path: %s", object_id, e)
            return None

    def component(self, object_id: str) -> str:
        """Render "label (id)", or "(id)" when the object cannot be loaded."""
        safe_id = sanitize_component(object_id)
        obj = self._try_resolve(object_id)
        if obj is None:
            return f"({safe_id})"
        return f"{sanitize_component(obj.label, object_id)} ({safe_id})"

    def _root_prefix(self, root_id: str) -> Optional[str]:
        root = self._try_resolve(root_id)
        if root is None or self.collection_model in root.content_models:
            return None

        parents = root.parent_ids
        if not parents:
            return None

        parent = self._try_resolve(parents[0])
        if parent is None:
            return None
        return sanitize_component(parent.label, parents[0])

    def build(self, lineage: Sequence[str]) -> str:
        """Render the path for a lineage of ids, root level first."""
        if not lineage:
            return ""

        components: List[str] = [self.component(object_id) for object_id in lineage]
        prefix = self._root_prefix(lineage[0])
        if prefix:
            components.insert(0, prefix)
        return "/".join(components)
