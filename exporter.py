"""
Export orchestrator.

Runs one export request end to end:

    Initializing -> Traversing -> (limit abort | empty | non-empty)
                 -> split decision -> manifests -> finalized

Per-item failures (an object or content unit that cannot be read) are logged
and skipped. Reaching the source-size limit stops the traversal but the export
still completes with what was written, flagged as size constrained. Any other
failure (filesystem, splitting utility) ends the export and propagates.
"""

import shutil
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Union

from api import IndexClient, RepositoryAccessError, RepositoryClient
from api.interfaces import ChildIndex, ContentUnit, Repository
from bundle_ops import (
    ArchiveBuilder,
    BundleVerifier,
    ExportPathGenerator,
    ManifestGenerator,
    SizeLimitResolver,
    SourceLimitExceededError,
    SplitPostProcessor,
    build_entry_name,
    check_free_space,
)
from colored_logger import EnhancedLogger, get_colored_logger
from events import ExportEventSink, LoggingEventSink
from filters import ContentFilter
from models import (
    ArchiveStats,
    EmptyExportEvent,
    ExportContext,
    ExportRequest,
    GeneratedExportEvent,
)
from settings import ExportSettings
from tracking import TrackingStore
from traversal import TraversalNode, TreeTraversal

logger = get_colored_logger(__name__)

ExportOutcome = Union[EmptyExportEvent, GeneratedExportEvent]


class ExportOrchestrator:
    """
    Coordinates traversal, filtering, archiving, splitting and manifests for
    export requests. One instance can run many requests sequentially; each
    run gets its own export directory and context.
    """

    def __init__(
        self,
        repository: Repository,
        index: ChildIndex,
        tracking_store: TrackingStore,
        export_root: str = "./exports",
        event_sink: Optional[ExportEventSink] = None,
        collection_model: str = "islandora:collectionCModel",
        progress_interval: int = 25,
        verify_container: bool = True,
    ):
        self.repository = repository
        self.index = index
        self.tracking_store = tracking_store
        self.event_sink = event_sink or LoggingEventSink()
        self.collection_model = collection_model
        self.progress_interval = max(1, progress_interval)
        self.verify_container = verify_container

        self.path_generator = ExportPathGenerator(export_root)
        self.limit_resolver = SizeLimitResolver()
        self.manifest_generator = ManifestGenerator()
        self.verifier = BundleVerifier(self.manifest_generator)

    @classmethod
    def from_settings(
        cls, settings: ExportSettings, event_sink: Optional[ExportEventSink] = None
    ) -> "ExportOrchestrator":
        return cls(
            RepositoryClient.from_settings(settings),
            IndexClient.from_settings(settings),
            TrackingStore(settings.tracking_db_path),
            export_root=settings.export_root,
            event_sink=event_sink,
            collection_model=settings.collection_content_model,
            progress_interval=settings.progress_interval,
        )

    # Initializing

    def _initialize(self, request: ExportRequest) -> ExportContext:
        limits = self.limit_resolver.resolve(request.limits)
        export_dir = self.path_generator.create_export_directory()
        check_free_space(export_dir, limits)

        context = ExportContext(
            request=request,
            limits=limits,
            export_dir=export_dir,
            container_path=export_dir / self.path_generator.container_name(),
        )
        self.tracking_store.create(str(export_dir), context.started_at)
        return context

    # Traversing

    def _archive_unit(
        self,
        context: ExportContext,
        unit: ContentUnit,
        node_path: str,
        content_filter: ContentFilter,
        builder: ArchiveBuilder,
        work_file: Path,
        log: EnhancedLogger,
    ) -> None:
        if not content_filter.include(unit):
            context.skipped_units += 1
            return

        arcname = build_entry_name(node_path, unit.id, unit.label, unit.mimetype)
        try:
            unit.retrieve_to(work_file)
            builder.add_entry(work_file, arcname)
        finally:
            if work_file.exists():
                work_file.unlink()

        if context.stats.count % self.progress_interval == 0:
            log.progress(
                "Archived %d entries (%.2f MB source, %.2f MB container)",
                context.stats.count,
                context.stats.source_bytes / (1024 * 1024),
                context.stats.container_bytes / (1024 * 1024),
            )

    def _archive_node(
        self,
        context: ExportContext,
        node: TraversalNode,
        content_filter: ContentFilter,
        builder: ArchiveBuilder,
        work_file: Path,
        log: EnhancedLogger,
    ) -> None:
        try:
            units = node.content_units()
            node_path = node.path
        except RepositoryAccessError as e:
            context.failed_units += 1
            log.warning("Skipping object %s: %s", node.object_id, e)
            return

        for unit in units:
            unit_id = getattr(unit, "id", "?")
            try:
                self._archive_unit(
                    context, unit, node_path, content_filter, builder, work_file, log
                )
            except (SourceLimitExceededError, OSError):
                raise
            except RepositoryAccessError as e:
                context.failed_units += 1
                log.warning("Skipping %s/%s: %s", node.object_id, unit_id, e)
            except Exception as e:
                context.failed_units += 1
                log.error(
                    "Unexpected error archiving %s/%s: %s",
                    node.object_id,
                    unit_id,
                    e,
                    exc_info=True,
                )

    def _traverse(self, context: ExportContext, log: EnhancedLogger) -> None:
        request = context.request
        traversal = TreeTraversal(
            request.start_ids,
            request.exclude_ids,
            self.repository,
            self.index,
            context.identity,
            collection_model=self.collection_model,
        )
        content_filter = ContentFilter.from_request(request)
        builder = ArchiveBuilder(context.container_path, context.limits, context.stats)

        visited = 0
        with tempfile.TemporaryDirectory(prefix="export_work_") as work_dir:
            work_file = Path(work_dir) / "content.bin"
            try:
                for node in traversal:
                    visited += 1
                    self._archive_node(
                        context, node, content_filter, builder, work_file, log
                    )
            except SourceLimitExceededError as e:
                context.size_constrained = True
                log.notice("Stopping traversal: %s", e)

        log.info(
            "Traversal finished: %d objects visited, %d entries archived, "
            "%d units filtered out, %d failures",
            visited,
            context.stats.count,
            context.skipped_units,
            context.failed_units,
        )

    # Completion

    def _finish_empty(self, context: ExportContext, log: EnhancedLogger) -> EmptyExportEvent:
        shutil.rmtree(context.export_dir, ignore_errors=True)
        event = EmptyExportEvent(
            request=context.request, size_constrained=context.size_constrained
        )
        log.notice("No content matched; export directory removed")
        self.event_sink.export_empty(event)
        return event

    def _finish_generated(
        self, context: ExportContext, log: EnhancedLogger
    ) -> GeneratedExportEvent:
        request = context.request

        if self.verify_container:
            if not self.verifier.verify_container(context.container_path):
                log.warning(
                    "Container integrity check failed: %s", context.container_path
                )
            else:
                info = self.verifier.get_container_info(context.container_path)
                if info["entry_count"] != context.stats.count:
                    log.warning(
                        "Container holds %d entries, expected %d",
                        info["entry_count"],
                        context.stats.count,
                    )

        split_result = SplitPostProcessor(context.limits).process(
            context.container_path, context.stats.container_bytes
        )
        manifests = self.manifest_generator.generate(
            context.export_dir,
            request.base_url,
            split_result.deliverables(),
            request.enabled_checksums,
        )

        event = GeneratedExportEvent(
            stats=ArchiveStats(**context.stats.to_dict()),
            deliverable_urls=tuple(manifests.deliverable_urls),
            manifest_urls=tuple(manifests.manifest_urls.items()),
            size_constrained=context.size_constrained,
            ttl_hours=request.ttl_hours,
        )
        self.event_sink.export_generated(event)

        expires_at = datetime.now() + timedelta(seconds=request.ttl_hours * 3600)
        self.tracking_store.set_expiry(str(context.export_dir), expires_at)
        log.success(
            "Export complete: %d entries, %.2f MB container%s",
            context.stats.count,
            context.stats.container_bytes / (1024 * 1024),
            ", split" if split_result.split else "",
        )
        return event

    def run(self, request: ExportRequest) -> ExportOutcome:
        """
        Execute one export request.

        Returns the event that was emitted. Unrecoverable failures are logged
        and re-raised; the partially written export directory is left for the
        cleanup process.
        """
        context = self._initialize(request)
        log = logger.with_context(export=context.export_dir.name)
        log.info(
            "Starting export for %s: %d start object(s), %d excluded",
            context.identity,
            len(request.start_ids),
            len(request.exclude_ids),
        )

        try:
            self._traverse(context, log)
            if context.stats.count == 0:
                return self._finish_empty(context, log)
            return self._finish_generated(context, log)
        except Exception as e:
            log.failure("Export failed: %s", e, exc_info=True)
            raise


def run_export(
    request: ExportRequest,
    settings: ExportSettings,
    event_sink: Optional[ExportEventSink] = None,
) -> ExportOutcome:
    """Convenience wrapper building HTTP-backed collaborators from settings."""
    orchestrator = ExportOrchestrator.from_settings(settings, event_sink)
    return orchestrator.run(request)
