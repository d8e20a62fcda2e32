"""
Incremental ZIP container for export bundles.

Each entry is committed on its own: the container is opened in append mode,
one entry is written, and the file is closed again. The container on disk is
therefore always a complete archive of every entry added so far, which is
what lets an export aborted by the source-size limit still deliver what it
had written.
"""

import mimetypes
import os
import re
import zipfile
from pathlib import Path
from typing import Optional, Set

from colored_logger import get_colored_logger
from models import ArchiveStats, ResolvedLimits
from traversal.path_builder import sanitize_component
from .archive_limits import check_source_limit

logger = get_colored_logger(__name__)

_EXTENSION = re.compile(r"^\.[A-Za-z0-9]{1,5}$")


def build_entry_name(node_path: str, unit_id: str, unit_label: str, mimetype: str) -> str:
    """
    Entry name for a content unit: "<node path>/<label> (<id>)<ext>".

    The extension is guessed from the MIME type unless the label already has one.
    """
    label = sanitize_component(unit_label, unit_id)
    stem, extension = os.path.splitext(label)
    if not _EXTENSION.match(extension):
        stem, extension = label, ""
        if mimetype:
            guessed = mimetypes.guess_extension(mimetype.split(";", 1)[0].strip())
            extension = guessed or ""

    name = f"{stem} ({sanitize_component(unit_id)}){extension}"
    return f"{node_path}/{name}" if node_path else name


class ArchiveBuilder:
    """Appends entries to a ZIP container while enforcing the source-size budget."""

    LARGE_FILE_THRESHOLD = 10 * 1024 * 1024

    def __init__(
        self,
        container_path: Path,
        limits: ResolvedLimits,
        stats: Optional[ArchiveStats] = None,
        compression_level: int = 6,
        chunk_size: int = 64 * 1024,
    ):
        self.container_path = Path(container_path)
        self.limits = limits
        self.stats = stats if stats is not None else ArchiveStats()
        self.compression_level = compression_level
        self.chunk_size = max(1024, chunk_size)
        self._names: Set[str] = set()

    def _open_container(self) -> zipfile.ZipFile:
        return zipfile.ZipFile(
            self.container_path,
            "a",
            zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level,
            allowZip64=True,
        )

    def _unique_name(self, arcname: str) -> str:
        candidate = arcname
        stem, extension = os.path.splitext(arcname)
        counter = 2
        while candidate in self._names:
            candidate = f"{stem}_{counter}{extension}"
            counter += 1
        self._names.add(candidate)
        return candidate

    def _write_entry(self, zipf: zipfile.ZipFile, source_path: Path, arcname: str) -> None:
        if source_path.stat().st_size > self.LARGE_FILE_THRESHOLD:
            with open(source_path, "rb") as src_file:
                with zipf.open(arcname, "w", force_zip64=True) as dst_file:
                    while True:
                        chunk = src_file.read(self.chunk_size)
                        if not chunk:
                            break
                        dst_file.write(chunk)
        else:
            zipf.write(source_path, arcname)

    def add_entry(self, source_path: Path, arcname: str) -> ArchiveStats:
        """
        Append one file to the container.

        :raises SourceLimitExceededError: before anything is written, if the
            entry would take the cumulative source size to or past the limit.
        """
        source_path = Path(source_path)
        entry_bytes = source_path.stat().st_size
        check_source_limit(
            self.stats.source_bytes, entry_bytes, self.limits.source_limit_bytes
        )

        arcname = self._unique_name(arcname)
        with self._open_container() as zipf:
            self._write_entry(zipf, source_path, arcname)

        self.stats.record_entry(entry_bytes, self.container_path.stat().st_size)
        logger.trace(
            "Added %s (%d bytes); container now %d bytes",
            arcname,
            entry_bytes,
            self.stats.container_bytes,
        )
        return self.stats

    @property
    def has_entries(self) -> bool:
        return self.stats.count > 0
