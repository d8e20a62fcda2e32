"""
Manifest files for a finished export.

- files.txt: one absolute URL per downloadable file.
- <algorithm>.txt: one "<hex digest> *<name>" line per checksummed file, for
  every enabled algorithm. Disabled algorithms are reported with a
  "not applicable" marker instead of a URL.
"""

import hashlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from colored_logger import get_colored_logger
from models import NOT_APPLICABLE, SUPPORTED_CHECKSUMS, DeliverableFile, ManifestEntry
from .path_utils import build_file_url

logger = get_colored_logger(__name__)

FILE_LIST_NAME = "files.txt"


@dataclass
class ManifestResult:
    deliverable_urls: List[str] = field(default_factory=list)
    # "files" plus one key per supported algorithm, in a stable order
    manifest_urls: Dict[str, str] = field(default_factory=dict)
    entries: Dict[str, List[ManifestEntry]] = field(default_factory=dict)


class ManifestGenerator:
    def __init__(self, chunk_size: int = 64 * 1024):
        self.chunk_size = max(1024, chunk_size)

    def calculate_digest(self, sources: Sequence[Path], algorithm: str) -> str:
        """Digest of the concatenation of `sources`, read in chunks."""
        digest = hashlib.new(algorithm)
        for source in sources:
            with open(source, "rb") as f:
                for chunk in iter(lambda: f.read(self.chunk_size), b""):
                    digest.update(chunk)
        return digest.hexdigest()

    def build_entries(
        self, files: Iterable[DeliverableFile], algorithm: str
    ) -> List[ManifestEntry]:
        return [
            ManifestEntry(
                filename=item.name,
                digest=self.calculate_digest(item.sources, algorithm),
                algorithm=algorithm,
            )
            for item in files
            if item.checksummed
        ]

    def write_file_list(self, path: Path, urls: List[str]) -> None:
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            for url in urls:
                f.write(f"{url}\n")

    def write_checksum_manifest(self, path: Path, entries: List[ManifestEntry]) -> None:
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            for entry in entries:
                f.write(entry.to_line() + "\n")

    def generate(
        self,
        export_dir: Path,
        base_url: str,
        files: Sequence[DeliverableFile],
        algorithms: Iterable[str],
    ) -> ManifestResult:
        export_dir = Path(export_dir)
        enabled = set(algorithms)
        unknown = enabled - set(SUPPORTED_CHECKSUMS)
        if unknown:
            raise ValueError(f"Unsupported checksum algorithm(s): {sorted(unknown)}")

        result = ManifestResult()
        result.deliverable_urls = [
            build_file_url(base_url, export_dir.name, item.name)
            for item in files
            if item.downloadable
        ]
        self.write_file_list(export_dir / FILE_LIST_NAME, result.deliverable_urls)
        result.manifest_urls["files"] = build_file_url(
            base_url, export_dir.name, FILE_LIST_NAME
        )

        for algorithm in SUPPORTED_CHECKSUMS:
            if algorithm not in enabled:
                result.manifest_urls[algorithm] = NOT_APPLICABLE
                continue

            manifest_name = f"{algorithm}.txt"
            entries = self.build_entries(files, algorithm)
            self.write_checksum_manifest(export_dir / manifest_name, entries)
            result.entries[algorithm] = entries
            result.manifest_urls[algorithm] = build_file_url(
                base_url, export_dir.name, manifest_name
            )
            logger.debug("Wrote %s with %d entries", manifest_name, len(entries))

        return result
