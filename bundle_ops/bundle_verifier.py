"""
Integrity checks for export bundles.

Covers the ZIP container itself (CRC test of every entry) and the checksum
manifests written next to it. A container that was split is checked by
digesting its parts in order.
"""

import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from colored_logger import get_colored_logger
from models import SUPPORTED_CHECKSUMS
from .archive_splitter import SUFFIX_LENGTH
from .manifest_generator import ManifestGenerator

logger = get_colored_logger(__name__)


class BundleVerifier:
    def __init__(self, manifest_generator: Optional[ManifestGenerator] = None):
        self.manifest_generator = manifest_generator or ManifestGenerator()

    def verify_container(self, container_path: Path) -> bool:
        """Run a CRC check over every entry of a ZIP container."""
        try:
            with zipfile.ZipFile(container_path, "r") as zipf:
                bad_file = zipf.testzip()
                if bad_file is not None:
                    logger.debug("ZIP integrity check failed on entry: %s", bad_file)
                    return False
                return True
        except (OSError, zipfile.BadZipFile) as e:
            logger.debug("ZIP integrity verification failed: %s", e)
            return False

    def get_container_info(self, container_path: Path) -> Dict[str, Any]:
        with zipfile.ZipFile(container_path, "r") as zipf:
            entries = zipf.infolist()
            return {
                "entry_count": len(entries),
                "compressed_size": sum(e.compress_size for e in entries),
                "uncompressed_size": sum(e.file_size for e in entries),
            }

    def parse_manifest(self, manifest_path: Path) -> List[Tuple[str, str]]:
        """Read "<digest> *<name>" lines; malformed lines are skipped with a warning."""
        entries = []
        with open(manifest_path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, 1):
                line = line.rstrip("\n")
                if not line:
                    continue
                digest, sep, name = line.partition(" *")
                if not sep or not digest or not name:
                    logger.warning(
                        "Malformed line %d in %s: %r", line_number, manifest_path, line
                    )
                    continue
                entries.append((digest.lower(), name))
        return entries

    def sources_for(self, directory: Path, name: str) -> List[Path]:
        """The file itself, or its numbered parts when only those exist."""
        path = directory / name
        if path.is_file():
            return [path]
        pattern = f"{name}." + "[0-9]" * SUFFIX_LENGTH
        return sorted(directory.glob(pattern), key=lambda p: p.name)

    def verify_checksum_manifest(self, manifest_path: Path) -> List[str]:
        """
        Recompute every digest listed in a checksum manifest.

        Returns the names whose digest does not match or whose file is missing.
        """
        manifest_path = Path(manifest_path)
        algorithm = manifest_path.stem.lower()
        if algorithm not in SUPPORTED_CHECKSUMS:
            raise ValueError(f"Not a checksum manifest: {manifest_path.name}")

        mismatches = []
        for expected, name in self.parse_manifest(manifest_path):
            sources = self.sources_for(manifest_path.parent, name)
            if not sources:
                logger.warning("Listed file missing: %s", name)
                mismatches.append(name)
                continue

            actual = self.manifest_generator.calculate_digest(sources, algorithm)
            if actual != expected:
                logger.warning(
                    "%s mismatch for %s: expected %s, got %s",
                    algorithm,
                    name,
                    expected,
                    actual,
                )
                mismatches.append(name)

        return mismatches

    def verify_export_directory(self, export_dir: Path) -> Dict[str, List[str]]:
        """Verify every checksum manifest present in an export directory."""
        export_dir = Path(export_dir)
        results = {}
        for algorithm in SUPPORTED_CHECKSUMS:
            manifest_path = export_dir / f"{algorithm}.txt"
            if manifest_path.is_file():
                results[algorithm] = self.verify_checksum_manifest(manifest_path)
        return results
