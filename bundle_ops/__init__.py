from .archive_limits import (
    SizeLimitResolver,
    SourceLimitExceededError,
    check_source_limit,
    check_free_space,
)
from .archive_builder import ArchiveBuilder, build_entry_name
from .archive_splitter import (
    SplitPostProcessor,
    SplitResult,
    SplitError,
    ReassemblyScriptWriter,
)
from .manifest_generator import ManifestGenerator, ManifestResult
from .bundle_verifier import BundleVerifier
from .path_utils import ExportPathGenerator, build_file_url

__all__ = [
    # Limits
    "SizeLimitResolver",
    "SourceLimitExceededError",
    "check_source_limit",
    "check_free_space",
    # Container building
    "ArchiveBuilder",
    "build_entry_name",
    # Splitting
    "SplitPostProcessor",
    "SplitResult",
    "SplitError",
    "ReassemblyScriptWriter",
    # Manifests and verification
    "ManifestGenerator",
    "ManifestResult",
    "BundleVerifier",
    # Paths
    "ExportPathGenerator",
    "build_file_url",
]
