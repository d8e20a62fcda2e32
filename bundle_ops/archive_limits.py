"""
Size-limit resolution and enforcement for export bundles.

Limits arrive in units of `scale_factor` bytes and are resolved once, at the
start of an export, into absolute byte counts. The source-size budget is
checked before every entry; the first entry that would meet or exceed it
aborts the export.
"""

import math
from pathlib import Path
from typing import Optional

import psutil

from colored_logger import get_colored_logger
from models import ResolvedLimits, SizeLimits

logger = get_colored_logger(__name__)


class SourceLimitExceededError(Exception):
    """Adding an entry would take the cumulative source size to or past the limit."""

    def __init__(self, current_bytes: int, entry_bytes: int, limit_bytes: int):
        super().__init__(
            f"Source size limit of {limit_bytes} bytes reached: "
            f"{current_bytes} archived + {entry_bytes} requested"
        )
        self.current_bytes = current_bytes
        self.entry_bytes = entry_bytes
        self.limit_bytes = limit_bytes


class SizeLimitResolver:
    """Turns job-level SizeLimits into absolute byte counts."""

    @staticmethod
    def _to_bytes(value: float, scale_factor: int, name: str) -> int:
        try:
            value = float(value or 0)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid {name}: {value!r}")
        if value < 0 or math.isnan(value):
            raise ValueError(f"{name} must not be negative: {value}")
        return int(value * scale_factor)

    def resolve(self, limits: SizeLimits) -> ResolvedLimits:
        if limits.scale_factor <= 0:
            raise ValueError(f"scale_factor must be positive: {limits.scale_factor}")

        resolved = ResolvedLimits(
            source_limit_bytes=self._to_bytes(
                limits.source_limit, limits.scale_factor, "source_limit"
            ),
            split_threshold_bytes=self._to_bytes(
                limits.split_threshold, limits.scale_factor, "split_threshold"
            ),
            split_utility=limits.split_utility or "split",
        )
        logger.debug(
            "Resolved limits: source=%d bytes, split=%d bytes, utility=%s",
            resolved.source_limit_bytes,
            resolved.split_threshold_bytes,
            resolved.split_utility,
        )
        return resolved


def check_source_limit(current_bytes: int, entry_bytes: int, limit_bytes: int) -> None:
    """Raise SourceLimitExceededError if the entry may not be added."""
    if limit_bytes > 0 and current_bytes + entry_bytes >= limit_bytes:
        raise SourceLimitExceededError(current_bytes, entry_bytes, limit_bytes)


def check_free_space(directory: Path, limits: ResolvedLimits) -> Optional[int]:
    """
    Warn when the export volume cannot hold a full-size export.

    Returns the free byte count, or None if it could not be determined.
    """
    try:
        free_bytes = psutil.disk_usage(str(directory)).free
    except OSError as e:
        logger.debug("Could not determine free space for %s: %s", directory, e)
        return None

    if limits.source_limited and free_bytes < limits.source_limit_bytes:
        logger.warning(
            "Only %.2f MB free in %s but the source limit allows %.2f MB",
            free_bytes / (1024 * 1024),
            directory,
            limits.source_limit_bytes / (1024 * 1024),
        )
    return free_bytes
