"""
Completion signals emitted by the export orchestrator.

The orchestrator calls exactly one sink method per export, with a frozen
payload: `export_empty` when nothing was archived, `export_generated` when
files were produced.
"""

from typing import Protocol

from colored_logger import get_colored_logger
from models import EmptyExportEvent, GeneratedExportEvent

logger = get_colored_logger(__name__)


class ExportEventSink(Protocol):
    def export_empty(self, event: EmptyExportEvent) -> None: ...

    def export_generated(self, event: GeneratedExportEvent) -> None: ...


class LoggingEventSink:
    """Default sink: reports completion through the log only."""

    def export_empty(self, event: EmptyExportEvent) -> None:
        logger.notice(
            "Export for %s produced no content (size constrained: %s)",
            event.request.identity,
            event.size_constrained,
        )

    def export_generated(self, event: GeneratedExportEvent) -> None:
        logger.success(
            "Export generated: %d entries, %d source bytes, %d deliverable file(s), "
            "available for %.1f hours%s",
            event.stats.count,
            event.stats.source_bytes,
            len(event.deliverable_urls),
            event.ttl_hours,
            " (size constrained)" if event.size_constrained else "",
        )
        for url in event.deliverable_urls:
            logger.info("  %s", url)
