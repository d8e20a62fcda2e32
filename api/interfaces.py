"""
Capability interfaces for the repository and index collaborators.

The export pipeline only talks to these protocols; `RepositoryClient` and
`IndexClient` are the HTTP-backed implementations, tests use in-memory fakes.
"""

from pathlib import Path
from typing import List, Protocol, Sequence


class ContentUnit(Protocol):
    """A named, typed blob attached to a repository object (a datastream)."""

    id: str
    label: str
    mimetype: str

    def retrieve_to(self, path: Path) -> None:
        """Write the unit's bytes to `path`. Raises RepositoryAccessError."""
        ...


class RepositoryObject(Protocol):
    id: str

    @property
    def label(self) -> str: ...

    @property
    def content_models(self) -> List[str]: ...

    @property
    def parent_ids(self) -> List[str]: ...

    def content_units(self) -> Sequence[ContentUnit]: ...


class Repository(Protocol):
    def load_object(self, object_id: str, identity: str) -> RepositoryObject:
        """Raises RepositoryAccessError when the object cannot be loaded."""
        ...


class ChildIndex(Protocol):
    def count_children(self, parent_id: str, identity: str) -> int: ...

    def list_children(self, parent_id: str, identity: str) -> List[str]: ...
