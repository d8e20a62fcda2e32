import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from colored_logger import get_colored_logger
from core import Cache, RateLimiter
from .errors import RepositoryAccessError

logger = get_colored_logger(__name__)


class RestContentUnit:
    """A datastream of a repository object, retrievable over HTTP."""

    def __init__(
        self,
        client: "RepositoryClient",
        object_id: str,
        identity: str,
        unit_id: str,
        label: str,
        mimetype: str,
    ):
        self._client = client
        self.object_id = object_id
        self.identity = identity
        self.id = unit_id
        self.label = label
        self.mimetype = mimetype

    def retrieve_to(self, path: Path) -> None:
        self._client.download_content(self.object_id, self.id, self.identity, path)

    def __repr__(self) -> str:
        return f"RestContentUnit({self.object_id}/{self.id}, {self.mimetype})"


class RestRepositoryObject:
    """
    Repository object backed by the REST API.

    The profile (label, content models, parents) is fetched on construction;
    the content-unit listing is fetched on first use.
    """

    def __init__(
        self,
        client: "RepositoryClient",
        object_id: str,
        identity: str,
        profile: Dict[str, Any],
    ):
        self._client = client
        self.id = object_id
        self.identity = identity
        self._profile = profile
        self._units: Optional[List[RestContentUnit]] = None

    @property
    def label(self) -> str:
        return str(self._profile.get("label") or self.id)

    @property
    def content_models(self) -> List[str]:
        return [str(m) for m in self._profile.get("models", [])]

    @property
    def parent_ids(self) -> List[str]:
        return [str(p) for p in self._profile.get("parents", [])]

    def content_units(self) -> List[RestContentUnit]:
        if self._units is None:
            listing = self._client.list_datastreams(self.id, self.identity)
            self._units = [
                RestContentUnit(
                    self._client,
                    self.id,
                    self.identity,
                    entry["dsid"],
                    entry.get("label") or entry["dsid"],
                    entry.get("mimeType", ""),
                )
                for entry in listing
            ]
        return self._units

    def __repr__(self) -> str:
        return f"RestRepositoryObject({self.id})"


class RepositoryClient:
    """
    HTTP adapter for the repository object store.

    Every call carries the acting identity in `identity_header`; there is no
    process-wide notion of the current user.
    """

    USER_AGENT = "RepositoryBundleExport/1.0"
    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        base_url: str,
        identity_header: str = "X-On-Behalf-Of",
        auth: Optional[Tuple[str, str]] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[Cache] = None,
        max_retries: int = 3,
    ):
        self.base_url = base_url.rstrip("/")
        self.identity_header = identity_header
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.session = session or requests.Session()
        if auth:
            self.session.auth = auth
        self.rate_limiter = rate_limiter or RateLimiter()
        self.cache = cache or Cache(ttl_seconds=300, max_entries=5000)

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None):
        return cls(
            settings.repository_url,
            identity_header=settings.identity_header,
            auth=settings.repository_auth,
            timeout=settings.request_timeout_seconds,
            session=session,
            rate_limiter=RateLimiter(settings.rate_limit_requests_per_minute, 60),
            cache=Cache(settings.cache_ttl_seconds, settings.max_cache_entries),
            max_retries=settings.request_max_retries,
        )

    def _headers(self, identity: str) -> Dict[str, str]:
        return {"User-Agent": self.USER_AGENT, self.identity_header: identity}

    def _retrying(self, url: str, call: Callable[[], Any]) -> Any:
        """Run `call`, retrying timeouts and dropped connections with exponential backoff."""
        for attempt in range(self.max_retries):
            self.rate_limiter.wait_if_needed()
            try:
                return call()
            except (
                requests.exceptions.Timeout,
                requests.exceptions.ConnectionError,
            ) as e:
                if attempt >= self.max_retries - 1:
                    raise
                logger.warning(
                    "Attempt %d/%d for %s failed: %s",
                    attempt + 1,
                    self.max_retries,
                    url,
                    e,
                )
                time.sleep(2**attempt)

    def _get_json(self, path: str, identity: str, object_id: str) -> Any:
        url = f"{self.base_url}{path}"

        def fetch() -> Any:
            logger.trace("GET %s as %s", url, identity)
            response = self.session.get(
                url,
                params={"format": "json"},
                headers=self._headers(identity),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()

        try:
            return self._retrying(url, fetch)
        except requests.exceptions.RequestException as e:
            raise RepositoryAccessError(
                f"Request to {url} failed: {e}", object_id=object_id
            ) from e
        except ValueError as e:
            raise RepositoryAccessError(
                f"Invalid JSON from {url}: {e}", object_id=object_id
            ) from e

    def load_object(self, object_id: str, identity: str) -> RestRepositoryObject:
        def fetch_profile() -> Dict[str, Any]:
            profile = self._get_json(f"/objects/{object_id}", identity, object_id)
            if not isinstance(profile, dict):
                raise RepositoryAccessError(
                    f"Unexpected profile for {object_id}", object_id=object_id
                )
            return profile

        profile = self.cache.get_or_load(identity, object_id, fetch_profile)
        return RestRepositoryObject(self, object_id, identity, profile)

    def list_datastreams(self, object_id: str, identity: str) -> List[Dict[str, Any]]:
        listing = self._get_json(
            f"/objects/{object_id}/datastreams", identity, object_id
        )
        if isinstance(listing, dict):
            listing = listing.get("datastreams", [])
        if not isinstance(listing, list) or any(
            not isinstance(entry, dict) or "dsid" not in entry for entry in listing
        ):
            raise RepositoryAccessError(
                f"Malformed datastream listing for {object_id}", object_id=object_id
            )
        return listing

    def download_content(
        self, object_id: str, unit_id: str, identity: str, path: Path
    ) -> None:
        """Stream one datastream's content to `path`, removing partial files on failure."""
        url = f"{self.base_url}/objects/{object_id}/datastreams/{unit_id}/content"

        def stream() -> None:
            try:
                with self.session.get(
                    url,
                    headers=self._headers(identity),
                    timeout=self.timeout,
                    stream=True,
                ) as response:
                    response.raise_for_status()
                    with open(path, "wb") as out:
                        for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                            if chunk:
                                out.write(chunk)
            except requests.exceptions.RequestException:
                if os.path.exists(path):
                    os.remove(path)
                raise

        try:
            self._retrying(url, stream)
        except requests.exceptions.RequestException as e:
            raise RepositoryAccessError(
                f"Failed to retrieve {object_id}/{unit_id}: {e}",
                object_id=object_id,
                unit_id=unit_id,
            ) from e
