"""
Splitting of oversized export containers.

When a finished container is larger than the split threshold it is cut into
fixed-size numbered parts by an external byte-splitting utility (GNU `split`
by default). Two reassembly scripts, one for POSIX shells and one for
Windows `cmd`, are written next to the parts; the unsplit container is then
removed from the export directory.
"""

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from colored_logger import get_colored_logger
from models import DeliverableFile, ResolvedLimits

logger = get_colored_logger(__name__)

SUFFIX_LENGTH = 3
SHELL_SCRIPT_NAME = "reassemble.sh"
BATCH_SCRIPT_NAME = "reassemble.bat"


class SplitError(RuntimeError):
    """The splitting utility ran but did not leave the expected parts behind."""

    pass


@dataclass
class SplitResult:
    """Outcome of post-processing one container."""

    container_name: str
    split: bool
    parts: List[Path] = field(default_factory=list)
    scripts: List[Path] = field(default_factory=list)
    container_path: Optional[Path] = None

    def deliverables(self) -> List[DeliverableFile]:
        """
        Files to list in the manifests.

        Unsplit: the container itself. Split: every part, both scripts (not
        checksummed), and a logical entry for the whole container described
        by its parts, so its checksum is still published.
        """
        if not self.split:
            return [DeliverableFile.on_disk(self.container_path)]

        files = [DeliverableFile.on_disk(part) for part in self.parts]
        files.extend(
            DeliverableFile.on_disk(script, checksummed=False) for script in self.scripts
        )
        files.append(
            DeliverableFile(
                name=self.container_name,
                sources=tuple(self.parts),
                downloadable=False,
            )
        )
        return files


class ReassemblyScriptWriter:
    """Writes the shell and batch scripts that concatenate parts back together."""

    def shell_script(self, part_names: List[str], container_name: str) -> str:
        quoted_parts = " ".join(f'"{name}"' for name in part_names)
        return (
            "#!/bin/sh\n"
            'cd "$(dirname "$0")" || exit 1\n'
            f'cat {quoted_parts} > "{container_name}" || exit 1\n'
            f'echo "Created {container_name}"\n'
        )

    def batch_script(self, part_names: List[str], container_name: str) -> str:
        joined_parts = " + ".join(f'"{name}"' for name in part_names)
        lines = [
            "@echo off",
            'cd /d "%~dp0"',
            f'copy /b {joined_parts} "{container_name}" >nul || exit /b 1',
            f"echo Created {container_name}",
        ]
        return "\r\n".join(lines) + "\r\n"

    def write(self, directory: Path, parts: List[Path], container_name: str) -> List[Path]:
        part_names = [part.name for part in parts]

        shell_path = directory / SHELL_SCRIPT_NAME
        with open(shell_path, "w", encoding="utf-8", newline="\n") as f:
            f.write(self.shell_script(part_names, container_name))
        shell_path.chmod(0o755)

        batch_path = directory / BATCH_SCRIPT_NAME
        with open(batch_path, "w", encoding="utf-8", newline="") as f:
            f.write(self.batch_script(part_names, container_name))

        return [batch_path, shell_path]


class SplitPostProcessor:
    def __init__(
        self,
        limits: ResolvedLimits,
        script_writer: Optional[ReassemblyScriptWriter] = None,
        timeout: Optional[int] = 3600,
    ):
        self.limits = limits
        self.script_writer = script_writer or ReassemblyScriptWriter()
        self.timeout = timeout

    def should_split(self, container_bytes: int) -> bool:
        return (
            self.limits.split_enabled
            and container_bytes > self.limits.split_threshold_bytes
        )

    def build_split_command(self, container_path: Path, prefix: str) -> List[str]:
        return [
            self.limits.split_utility,
            "-b",
            str(self.limits.split_threshold_bytes),
            "-a",
            str(SUFFIX_LENGTH),
            "--numeric-suffixes=1",
            str(container_path),
            prefix,
        ]

    def _collect_parts(self, directory: Path, prefix_name: str) -> List[Path]:
        pattern = prefix_name + "[0-9]" * SUFFIX_LENGTH
        return sorted(directory.glob(pattern), key=lambda p: p.name)

    def process(self, container_path: Path, container_bytes: int) -> SplitResult:
        """
        Split `container_path` if it exceeds the threshold.

        :raises subprocess.CalledProcessError: if the utility fails.
        :raises SplitError: if no parts were produced.
        """
        container_path = Path(container_path)
        if not self.should_split(container_bytes):
            return SplitResult(
                container_name=container_path.name,
                split=False,
                container_path=container_path,
            )

        directory = container_path.parent
        on_disk_bytes = container_path.stat().st_size
        prefix_name = f"{container_path.name}."
        cmd = self.build_split_command(container_path, str(directory / prefix_name))

        logger.info(
            "Splitting %s (%d bytes) into %d-byte parts",
            container_path.name,
            container_bytes,
            self.limits.split_threshold_bytes,
        )
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=self.timeout,
            check=False,
        )
        if result.returncode != 0:
            logger.error("Split command failed: %s", result.stderr.strip())
            raise subprocess.CalledProcessError(
                result.returncode, cmd, result.stdout, result.stderr
            )

        parts = self._collect_parts(directory, prefix_name)
        if not parts or sum(p.stat().st_size for p in parts) != on_disk_bytes:
            raise SplitError(
                f"Splitting {container_path.name} did not produce a complete set of parts"
            )

        scripts = self.script_writer.write(directory, parts, container_path.name)
        container_path.unlink()

        logger.info("Container split into %d parts", len(parts))
        return SplitResult(
            container_name=container_path.name,
            split=True,
            parts=parts,
            scripts=scripts,
        )
