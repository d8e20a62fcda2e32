import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from models import SUPPORTED_CHECKSUMS, SizeLimits

logger = logging.getLogger(__name__)

DEFAULT_MEMBERSHIP_RELATIONS = [
    "RELS_EXT_isMemberOfCollection_uri_ms",
    "RELS_EXT_isMemberOf_uri_ms",
    "RELS_EXT_isConstituentOf_uri_ms",
]


def _load_env_file(env_path: str) -> None:
    """
    Minimal .env parser: KEY=value pairs, optional quotes, # comments.
    Values from the file take precedence over the inherited environment.
    """
    if not os.path.isfile(env_path):
        return

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                    value = value[1:-1]

                if key:
                    os.environ[key] = value

        logger.info(".env file loaded from %s", env_path)

    except OSError as e:
        logger.warning("Failed to load .env file: %s", e)


for _env_path in (".env", "../.env"):
    if os.path.isfile(_env_path):
        _load_env_file(_env_path)
        break


class ExportSettings:
    """
    Worker configuration for the export pipeline.

    Loaded from an optional JSON file; selected keys can be overridden through
    environment variables. Repository credentials only ever come from the
    environment (or .env).
    """

    ENV_OVERRIDES = {
        "EXPORT_ROOT": "export_root",
        "EXPORT_BASE_URL": "base_url",
        "REPOSITORY_URL": "repository_url",
        "INDEX_URL": "index_url",
        "TRACKING_DB_PATH": "tracking_db_path",
        "EXPORT_LOG_LEVEL": "log_level",
    }

    def __init__(self, settings_file: Optional[str] = None) -> None:
        """
        :param settings_file: Path to a JSON settings file. When omitted the
            built-in defaults are used. A missing or invalid file is fatal.
        """
        self.raw: Dict[str, Any] = {}
        if settings_file is not None:
            if not os.path.isfile(settings_file):
                logger.critical(
                    "Settings file not found at '%s'. Exiting...", settings_file
                )
                sys.exit(1)

            loaded = self._load_json(settings_file)
            if not isinstance(loaded, dict):
                logger.critical(
                    "Settings file '%s' is empty or invalid. Exiting...", settings_file
                )
                sys.exit(1)
            self.raw = loaded

        for env_name, key in self.ENV_OVERRIDES.items():
            if os.environ.get(env_name):
                self.raw[key] = os.environ[env_name]

        # Locations
        self.export_root: str = self.raw.get("export_root", "./exports")
        self.base_url: str = self.raw.get("base_url", "http://localhost/exports")
        self.repository_url: str = self.raw.get(
            "repository_url", "http://localhost:8080/fedora"
        )
        self.index_url: str = self.raw.get(
            "index_url", "http://localhost:8080/solr/collection1"
        )
        self.tracking_db_path: str = self.raw.get(
            "tracking_db_path", "export_tracking.db"
        )

        # HTTP behaviour
        self.request_timeout_seconds: int = self.raw.get("request_timeout_seconds", 30)
        self.request_max_retries: int = self.raw.get("request_max_retries", 3)
        self.rate_limit_requests_per_minute: int = self.raw.get(
            "rate_limit_requests_per_minute", 600
        )
        self.cache_ttl_seconds: int = self.raw.get("cache_ttl_seconds", 300)
        self.max_cache_entries: int = self.raw.get("max_cache_entries", 5000)
        self.identity_header: str = self.raw.get("identity_header", "X-On-Behalf-Of")
        self.repository_username: str = os.environ.get("REPOSITORY_USERNAME", "")
        self.repository_password: str = os.environ.get("REPOSITORY_PASSWORD", "")

        # Index / traversal
        index_settings = self.raw.get("index", {})
        self.membership_relations: List[str] = list(
            index_settings.get("membership_relations", DEFAULT_MEMBERSHIP_RELATIONS)
        )
        self.identifier_field: str = index_settings.get("identifier_field", "PID")
        self.value_prefix: str = index_settings.get("value_prefix", "info:fedora/")
        self.index_max_rows: int = index_settings.get("max_rows", 100000)
        self.collection_content_model: str = self.raw.get(
            "collection_content_model", "islandora:collectionCModel"
        )

        if not self.membership_relations:
            logger.warning(
                "No membership relations configured; exports will not descend "
                "into child objects."
            )

        # Export defaults
        self.size_limits: SizeLimits = SizeLimits.from_dict(self.raw.get("limits"))
        self.checksums: Dict[str, bool] = {"md5": True, "sha1": False}
        for name, enabled in (self.raw.get("checksums") or {}).items():
            if name not in SUPPORTED_CHECKSUMS:
                logger.warning("Ignoring unsupported checksum algorithm '%s'", name)
                continue
            self.checksums[name] = bool(enabled)
        self.ttl_hours: float = float(self.raw.get("ttl_hours", 72))

        # Logging
        self.log_level: str = str(self.raw.get("log_level", "INFO"))
        self.log_file: str = self.raw.get("log_file", "")
        self.progress_interval: int = max(1, int(self.raw.get("progress_interval", 25)))

        if settings_file is not None:
            logger.info("Settings loaded from '%s'.", settings_file)

    @property
    def repository_auth(self) -> Optional[tuple]:
        if self.repository_username:
            return (self.repository_username, self.repository_password)
        return None

    def _load_json(self, path: str) -> Any:
        """
        Loads JSON from the given file path.

        :return: The parsed JSON if valid, otherwise None.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError, OSError) as e:
            logger.error("Error loading JSON file '%s': %s", path, e)
            return None
