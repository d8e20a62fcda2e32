"""
Data model shared by the export pipeline.

Requests and event payloads are frozen; ArchiveStats and ExportContext are
the mutable state threaded through traversal, filtering and archiving for
one export.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from settings import ExportSettings

SUPPORTED_CHECKSUMS = ("md5", "sha1")
NOT_APPLICABLE = "N/A"


def _as_tuple(values: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        values = [values]
    return tuple(str(v).strip() for v in values if str(v).strip())


def normalize_mimetype(mimetype: Optional[str]) -> str:
    """Lower-case a MIME type and drop any parameters ("; charset=...")."""
    return (mimetype or "").split(";", 1)[0].strip().lower()


@dataclass(frozen=True)
class SizeLimits:
    """
    Size configuration as supplied by a job, in units of `scale_factor` bytes.

    A `source_limit` or `split_threshold` of 0 disables that constraint.
    """

    scale_factor: int = 1024 * 1024
    source_limit: float = 0
    split_threshold: float = 0
    split_utility: str = "split"

    @classmethod
    def from_dict(
        cls, data: Optional[Dict[str, Any]], defaults: Optional["SizeLimits"] = None
    ) -> "SizeLimits":
        base = defaults or cls()
        data = data or {}
        return cls(
            scale_factor=int(data.get("scale_factor", base.scale_factor)),
            source_limit=data.get("source_limit", base.source_limit),
            split_threshold=data.get("split_threshold", base.split_threshold),
            split_utility=str(data.get("split_utility", base.split_utility)),
        )


@dataclass(frozen=True)
class ResolvedLimits:
    """Size limits resolved once, at export start, into absolute byte counts."""

    source_limit_bytes: int
    split_threshold_bytes: int
    split_utility: str

    @property
    def source_limited(self) -> bool:
        return self.source_limit_bytes > 0

    @property
    def split_enabled(self) -> bool:
        return self.split_threshold_bytes > 0


@dataclass(frozen=True)
class ExportRequest:
    """One export job. Immutable for the duration of the export."""

    identity: str
    start_ids: Tuple[str, ...]
    mimetypes: Tuple[str, ...] = ()
    mimetypes_exclude: Tuple[str, ...] = ()
    dsid_exclude: Tuple[str, ...] = ()
    exclude_ids: Tuple[str, ...] = ()
    limits: SizeLimits = field(default_factory=SizeLimits)
    checksums: Tuple[Tuple[str, bool], ...] = (("md5", True), ("sha1", False))
    ttl_hours: float = 72
    base_url: str = ""

    @property
    def allowed_mimetypes(self) -> frozenset:
        """The allow-list minus the exclude-list, compared in normalized form."""
        allowed = {normalize_mimetype(m) for m in self.mimetypes}
        excluded = {normalize_mimetype(m) for m in self.mimetypes_exclude}
        return frozenset(allowed - excluded - {""})

    @property
    def enabled_checksums(self) -> List[str]:
        return [name for name, enabled in self.checksums if enabled]

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], settings: Optional["ExportSettings"] = None
    ) -> "ExportRequest":
        """
        Build a request from a job payload.

        Keys: identity, pids, pids_exclude, mimetypes, mimetypes_exclude,
        dsid_exclude, limits, checksums, ttl_hours, base_url. Anything
        missing falls back to `settings`.
        """
        if not data.get("identity"):
            raise ValueError("Export job is missing 'identity'")

        start_ids = _as_tuple(data.get("pids"))
        if not start_ids:
            raise ValueError("Export job has no start object ids ('pids')")

        default_limits = settings.size_limits if settings else None
        default_checksums = settings.checksums if settings else {"md5": True}
        checksum_flags = dict(default_checksums)
        checksum_flags.update(data.get("checksums") or {})
        unknown = set(checksum_flags) - set(SUPPORTED_CHECKSUMS)
        if unknown:
            raise ValueError(f"Unsupported checksum algorithm(s): {sorted(unknown)}")

        return cls(
            identity=str(data["identity"]),
            start_ids=start_ids,
            mimetypes=_as_tuple(data.get("mimetypes")),
            mimetypes_exclude=_as_tuple(data.get("mimetypes_exclude")),
            dsid_exclude=_as_tuple(data.get("dsid_exclude")),
            exclude_ids=_as_tuple(data.get("pids_exclude")),
            limits=SizeLimits.from_dict(data.get("limits"), default_limits),
            checksums=tuple(
                (name, bool(checksum_flags.get(name, False)))
                for name in SUPPORTED_CHECKSUMS
            ),
            ttl_hours=float(
                data.get("ttl_hours", settings.ttl_hours if settings else 72)
            ),
            base_url=str(
                data.get("base_url") or (settings.base_url if settings else "")
            ),
        )


@dataclass
class ArchiveStats:
    """Running totals kept by the archive builder."""

    count: int = 0
    source_bytes: int = 0
    container_bytes: int = 0

    def record_entry(self, source_bytes: int, container_bytes: int) -> None:
        self.count += 1
        self.source_bytes += source_bytes
        self.container_bytes = container_bytes

    def to_dict(self) -> Dict[str, int]:
        return {
            "count": self.count,
            "source_bytes": self.source_bytes,
            "container_bytes": self.container_bytes,
        }


@dataclass(frozen=True)
class ManifestEntry:
    filename: str
    digest: str
    algorithm: str

    def to_line(self) -> str:
        return f"{self.digest} *{self.filename}"


@dataclass(frozen=True)
class DeliverableFile:
    """
    A file listed in the export manifests.

    `sources` are the on-disk files whose concatenation forms the file; for a
    split container the whole is described by its parts even though it no
    longer exists on disk.
    """

    name: str
    sources: Tuple[Path, ...]
    downloadable: bool = True
    checksummed: bool = True

    @classmethod
    def on_disk(cls, path: Path, checksummed: bool = True) -> "DeliverableFile":
        return cls(name=path.name, sources=(path,), checksummed=checksummed)


@dataclass
class TrackingRecord:
    directory: str
    created_at: datetime
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


@dataclass
class ExportContext:
    """Mutable per-export state handed from stage to stage."""

    request: ExportRequest
    limits: ResolvedLimits
    export_dir: Path
    container_path: Path
    stats: ArchiveStats = field(default_factory=ArchiveStats)
    size_constrained: bool = False
    skipped_units: int = 0
    failed_units: int = 0
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def identity(self) -> str:
        return self.request.identity


@dataclass(frozen=True)
class EmptyExportEvent:
    request: ExportRequest
    size_constrained: bool


@dataclass(frozen=True)
class GeneratedExportEvent:
    stats: ArchiveStats
    deliverable_urls: Tuple[str, ...]
    manifest_urls: Tuple[Tuple[str, str], ...]
    size_constrained: bool
    ttl_hours: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stats": self.stats.to_dict(),
            "deliverable_urls": list(self.deliverable_urls),
            "manifest_urls": dict(self.manifest_urls),
            "size_constrained": self.size_constrained,
            "ttl_hours": self.ttl_hours,
        }
