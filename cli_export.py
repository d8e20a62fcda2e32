#!/usr/bin/env python3
"""
Repository Export CLI Tool

Command-line interface for running repository exports and inspecting their
results.

Usage:
    python3 cli_export.py run job.json
    python3 cli_export.py --settings settings.json run job.json
    python3 cli_export.py verify /path/to/exports/<export-dir>
    python3 cli_export.py expired
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from bundle_ops import BundleVerifier
from colored_logger import get_colored_logger, parse_log_level, setup_colored_logging
from exporter import ExportOrchestrator
from models import ExportRequest, GeneratedExportEvent
from settings import ExportSettings
from tracking import TrackingStore

logger = get_colored_logger(__name__)


class ExportCLI:
    """Command-line interface for repository exports."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Export repository object trees as downloadable ZIP bundles",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Run one export described by a job file
  python3 cli_export.py --settings settings.json run job.json

  # Check the checksum manifests of a finished export
  python3 cli_export.py verify exports/3f2a9c...

  # List exports whose retention period has passed
  python3 cli_export.py expired
            """,
        )
        parser.add_argument(
            "--settings", "-s", help="Path to a JSON settings file (defaults built in)"
        )
        parser.add_argument("--log-level", help="Override the configured log level")

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        run_parser = subparsers.add_parser("run", help="Run one export job")
        run_parser.add_argument("job_file", help="JSON file describing the export job")
        run_parser.add_argument(
            "--json", action="store_true", help="Print the completion payload as JSON"
        )

        verify_parser = subparsers.add_parser(
            "verify", help="Verify the checksum manifests of an export directory"
        )
        verify_parser.add_argument("export_dir", help="Path to the export directory")

        expired_parser = subparsers.add_parser(
            "expired", help="List tracked exports past their expiry"
        )
        expired_parser.add_argument(
            "--purge",
            action="store_true",
            help="Also drop the listed tracking records",
        )

        return parser

    def run(self, args: Optional[list] = None) -> int:
        """Run the CLI with the given arguments."""
        parsed_args = self.parser.parse_args(args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        settings = ExportSettings(parsed_args.settings)
        setup_colored_logging(
            level=parse_log_level(parsed_args.log_level or settings.log_level),
            log_file=settings.log_file or None,
        )

        try:
            if parsed_args.command == "run":
                return self._handle_run(parsed_args, settings)
            elif parsed_args.command == "verify":
                return self._handle_verify(parsed_args)
            elif parsed_args.command == "expired":
                return self._handle_expired(parsed_args, settings)
            else:
                logger.error("Unknown command: %s", parsed_args.command)
                return 1

        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130
        except Exception as e:
            logger.error("Error: %s", e)
            logger.debug("Full error details:", exc_info=True)
            return 1

    def _handle_run(self, args, settings: ExportSettings) -> int:
        job_path = Path(args.job_file)
        if not job_path.is_file():
            logger.error("Job file does not exist: %s", job_path)
            return 1

        try:
            with open(job_path, "r", encoding="utf-8") as f:
                job = json.load(f)
            request = ExportRequest.from_dict(job, settings)
        except (json.JSONDecodeError, ValueError) as e:
            logger.error("Invalid job file %s: %s", job_path, e)
            return 1

        orchestrator = ExportOrchestrator.from_settings(settings)
        event = orchestrator.run(request)

        if not isinstance(event, GeneratedExportEvent):
            logger.notice("Nothing matched the export request")
            return 0

        if args.json:
            print(json.dumps(event.to_dict(), indent=2))
        else:
            for url in event.deliverable_urls:
                print(url)
        return 0

    def _handle_verify(self, args) -> int:
        export_dir = Path(args.export_dir)
        if not export_dir.is_dir():
            logger.error("Export directory does not exist: %s", export_dir)
            return 1

        logger.info("Verifying export: %s", export_dir)
        results = BundleVerifier().verify_export_directory(export_dir)
        if not results:
            logger.error("No checksum manifests found in %s", export_dir)
            return 1

        failed = False
        for algorithm, mismatches in results.items():
            if mismatches:
                failed = True
                logger.error(
                    "%s check failed for: %s", algorithm, ", ".join(mismatches)
                )
            else:
                logger.success("%s check passed", algorithm)

        return 1 if failed else 0

    def _handle_expired(self, args, settings: ExportSettings) -> int:
        store = TrackingStore(settings.tracking_db_path)
        records = store.list_expired(datetime.now())

        if not records:
            logger.info("No expired exports")
            return 0

        for record in records:
            print(f"{record.expires_at.isoformat()}  {record.directory}")
            if args.purge:
                store.delete(record.directory)

        logger.info(
            "%d expired export(s)%s", len(records), " purged" if args.purge else ""
        )
        return 0


def main():
    """Main entry point for the CLI."""
    cli = ExportCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
