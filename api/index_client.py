from typing import Any, Dict, List, Optional, Sequence

import requests

from colored_logger import get_colored_logger
from core import RateLimiter
from .errors import IndexQueryError

logger = get_colored_logger(__name__)


class IndexClient:
    """
    Resolves parent -> child membership through a Solr-style select endpoint.

    A child is any document whose membership field(s) reference the parent;
    the configured relation fields are OR'd together.
    """

    def __init__(
        self,
        base_url: str,
        membership_relations: Sequence[str],
        identifier_field: str = "PID",
        value_prefix: str = "info:fedora/",
        max_rows: int = 100000,
        identity_header: str = "X-On-Behalf-Of",
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.membership_relations = list(membership_relations)
        self.identifier_field = identifier_field
        self.value_prefix = value_prefix
        self.max_rows = max_rows
        self.identity_header = identity_header
        self.timeout = timeout
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or RateLimiter()

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None):
        return cls(
            settings.index_url,
            settings.membership_relations,
            identifier_field=settings.identifier_field,
            value_prefix=settings.value_prefix,
            max_rows=settings.index_max_rows,
            identity_header=settings.identity_header,
            timeout=settings.request_timeout_seconds,
            session=session,
            rate_limiter=RateLimiter(settings.rate_limit_requests_per_minute, 60),
        )

    def build_query(self, parent_id: str) -> str:
        value = f"{self.value_prefix}{parent_id}".replace('"', '\\"')
        return " OR ".join(
            f'{field}:"{value}"' for field in self.membership_relations
        )

    def _select(self, parent_id: str, identity: str, rows: int) -> Dict[str, Any]:
        if not self.membership_relations:
            return {"numFound": 0, "docs": []}

        params = {
            "q": self.build_query(parent_id),
            "rows": rows,
            "wt": "json",
            "fl": self.identifier_field,
            "sort": f"{self.identifier_field} asc",
        }
        self.rate_limiter.wait_if_needed()
        try:
            logger.trace("Index query for children of %s (rows=%d)", parent_id, rows)
            response = self.session.get(
                f"{self.base_url}/select",
                params=params,
                headers={self.identity_header: identity},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
            return body["response"]
        except requests.exceptions.RequestException as e:
            raise IndexQueryError(
                f"Index query for {parent_id} failed: {e}", object_id=parent_id
            ) from e
        except (ValueError, KeyError, TypeError) as e:
            raise IndexQueryError(
                f"Malformed index response for {parent_id}: {e}", object_id=parent_id
            ) from e

    def count_children(self, parent_id: str, identity: str) -> int:
        result = self._select(parent_id, identity, rows=0)
        try:
            return int(result.get("numFound", 0))
        except (AttributeError, TypeError, ValueError) as e:
            raise IndexQueryError(
                f"Malformed child count for {parent_id}: {e}", object_id=parent_id
            ) from e

    def list_children(self, parent_id: str, identity: str) -> List[str]:
        result = self._select(parent_id, identity, rows=self.max_rows)
        children = []
        try:
            for doc in result.get("docs", []):
                value = doc.get(self.identifier_field)
                if isinstance(value, list):
                    value = value[0] if value else None
                if value:
                    children.append(str(value))
        except (AttributeError, TypeError) as e:
            raise IndexQueryError(
                f"Malformed child listing for {parent_id}: {e}", object_id=parent_id
            ) from e
        return children
