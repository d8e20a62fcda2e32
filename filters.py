from typing import FrozenSet, Iterable

from api.errors import RepositoryAccessError
from api.interfaces import ContentUnit
from colored_logger import get_colored_logger
from models import ExportRequest, normalize_mimetype

logger = get_colored_logger(__name__)


class ContentFilter:
    """
    Decides whether a content unit goes into the export.

    A unit is included when its id is not in the datastream exclusion list and
    its MIME type is in the allow-list (which has already had the exclude-list
    removed from it).
    """

    def __init__(self, allowed_mimetypes: Iterable[str], dsid_exclude: Iterable[str]):
        self.allowed_mimetypes: FrozenSet[str] = frozenset(
            normalize_mimetype(m) for m in allowed_mimetypes if m
        )
        self.dsid_exclude: FrozenSet[str] = frozenset(dsid_exclude)

        if not self.allowed_mimetypes:
            logger.warning("Content type allow-list is empty; nothing will be exported")

    @classmethod
    def from_request(cls, request: ExportRequest) -> "ContentFilter":
        return cls(request.allowed_mimetypes, request.dsid_exclude)

    def include(self, unit: ContentUnit) -> bool:
        """
        :raises RepositoryAccessError: if the unit's id or MIME type cannot be read.
        """
        try:
            unit_id = unit.id
            mimetype = normalize_mimetype(unit.mimetype)
        except RepositoryAccessError:
            raise
        except (AttributeError, KeyError, TypeError) as e:
            raise RepositoryAccessError(
                f"Could not read content unit metadata: {e}"
            ) from e

        if unit_id in self.dsid_exclude:
            logger.debug("Content unit %s skipped: excluded by id", unit_id)
            return False

        if mimetype not in self.allowed_mimetypes:
            logger.debug(
                "Content unit %s skipped: type '%s' not allowed", unit_id, mimetype
            )
            return False

        return True
