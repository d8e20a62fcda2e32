from .errors import RepositoryAccessError, IndexQueryError
from .interfaces import ContentUnit, RepositoryObject, Repository, ChildIndex
from .repository_client import RepositoryClient, RestRepositoryObject, RestContentUnit
from .index_client import IndexClient

__all__ = [
    "RepositoryAccessError",
    "IndexQueryError",
    "ContentUnit",
    "RepositoryObject",
    "Repository",
    "ChildIndex",
    "RepositoryClient",
    "RestRepositoryObject",
    "RestContentUnit",
    "IndexClient",
]
