"""
Export directory and container naming.

Every export gets its own randomly named directory under the export root;
that directory is the only isolation between concurrently running exports.
"""

import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from colored_logger import get_colored_logger

logger = get_colored_logger(__name__)


def build_file_url(base_url: str, directory_name: str, filename: str) -> str:
    """Absolute URL of a file inside an export directory."""
    return f"{base_url.rstrip('/')}/{quote(directory_name)}/{quote(filename)}"


class ExportPathGenerator:
    """Generates export directories and container file names."""

    CONTAINER_PREFIX = "export"
    CONTAINER_EXTENSION = "zip"

    def __init__(self, export_root: str):
        self.export_root = Path(export_root)

    def generate_timestamp(self, now: Optional[datetime] = None) -> str:
        return (now or datetime.now()).strftime("%Y%m%d_%H%M%S")

    def generate_directory_name(self) -> str:
        return uuid.uuid4().hex

    def create_export_directory(self) -> Path:
        """Create a fresh, uniquely named export directory."""
        self.export_root.mkdir(parents=True, exist_ok=True)
        while True:
            candidate = self.export_root / self.generate_directory_name()
            try:
                candidate.mkdir()
            except FileExistsError:
                logger.debug("Export directory %s already exists, retrying", candidate)
                continue
            return candidate

    def container_name(self, now: Optional[datetime] = None) -> str:
        return (
            f"{self.CONTAINER_PREFIX}_{self.generate_timestamp(now)}."
            f"{self.CONTAINER_EXTENSION}"
        )
