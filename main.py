"""CLI entry point for the NSW Government jobs ETL pipeline."""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from collections.abc import Mapping
from contextlib import AsyncExitStack
from pathlib import Path

from jobs_etl.core.config import PipelineOptions, Settings
from jobs_etl.pipeline.orchestrator import PipelineOrchestrator
from jobs_etl.pipeline.state import PipelineRun, PipelineStatus
from jobs_etl.processor.service import ProcessorService
from jobs_etl.spider.base import JobSpider
from jobs_etl.spider.fixture import FixtureSpider
from jobs_etl.storage.service import StorageService

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "config/settings.yaml"

_TRUTHY = {"1", "true", "yes", "on"}


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to settings YAML file (default: {DEFAULT_CONFIG} if present)",
    )
    parser.add_argument(
        "--max-records",
        type=int,
        default=None,
        help="Process at most this many listings (default: $MAX_RECORDS or unlimited)",
    )
    parser.add_argument(
        "--agency",
        action="append",
        default=[],
        help="Only keep listings from this agency (repeatable)",
    )
    parser.add_argument(
        "--location",
        action="append",
        default=[],
        help="Only keep listings in this location (repeatable)",
    )
    parser.add_argument("--start-date", help="Earliest posted date, YYYY-MM-DD")
    parser.add_argument("--end-date", help="Latest posted date, YYYY-MM-DD")
    parser.add_argument(
        "--scrape-only",
        action="store_true",
        default=None,
        help="Scrape details without processing or storing (default: $SCRAPE_ONLY)",
    )
    parser.add_argument(
        "--skip-storage",
        action="store_true",
        help="Scrape and process but do not write to any database",
    )
    parser.add_argument(
        "--migrate-to-live",
        action="store_true",
        help="Copy each stored batch to the live database",
    )
    parser.add_argument(
        "--stop-on-error",
        action="store_true",
        help="Abort the run on the first failed job instead of continuing",
    )
    parser.add_argument(
        "--fixtures",
        help="Replay listings and details from a JSON fixture instead of the live site",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show resolved settings and options without running the pipeline",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="NSW Government jobs ETL - scrape, analyze and store job postings",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- run subcommand (default) ---
    run_parser = subparsers.add_parser("run", help="Run the ETL pipeline")
    _add_run_arguments(run_parser)

    # --- jobs subcommand ---
    jobs_parser = subparsers.add_parser("jobs", help="List stored jobs as JSON")
    jobs_parser.add_argument(
        "--config",
        default=None,
        help=f"Path to settings YAML file (default: {DEFAULT_CONFIG} if present)",
    )
    jobs_parser.add_argument("--live", action="store_true", help="Read the live database instead of staging")
    jobs_parser.add_argument("--agency", help="Only list jobs from this agency")
    jobs_parser.add_argument("--limit", type=int, default=20, help="Maximum jobs to list (default: 20)")
    jobs_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    argv = sys.argv[1:] if argv is None else argv
    # Default to run when no subcommand given
    if not argv or (argv[0] not in subparsers.choices and argv[0] not in ("-h", "--help")):
        argv = ["run", *argv]
    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(config_path: str | None, environ: Mapping[str, str]) -> Settings:
    """Load YAML settings (if any) and apply environment overrides.

    An explicit --config path must exist; the default path is optional.
    """
    if config_path is not None:
        settings = Settings.from_yaml(config_path)
    elif Path(DEFAULT_CONFIG).exists():
        settings = Settings.from_yaml(DEFAULT_CONFIG)
    else:
        logger.debug("No %s found, using built-in defaults", DEFAULT_CONFIG)
        settings = Settings()
    return settings.apply_env(environ)


def build_options(args: argparse.Namespace, environ: Mapping[str, str]) -> PipelineOptions:
    """Merge CLI flags with MAX_RECORDS / SCRAPE_ONLY environment defaults."""
    max_records = args.max_records
    if max_records is None:
        raw = environ.get("MAX_RECORDS", "")
        try:
            max_records = int(raw) if raw else 0
        except ValueError as e:
            msg = f"Invalid value for MAX_RECORDS: {raw!r}"
            raise ValueError(msg) from e

    scrape_only = args.scrape_only
    if scrape_only is None:
        scrape_only = environ.get("SCRAPE_ONLY", "").strip().lower() in _TRUTHY

    return PipelineOptions(
        max_records=max_records,
        continue_on_error=not args.stop_on_error,
        agencies=args.agency,
        locations=args.location,
        start_date=args.start_date,
        end_date=args.end_date,
        scrape_only=scrape_only,
        skip_storage=args.skip_storage,
        migrate_to_live=args.migrate_to_live,
    )


def dry_run(settings: Settings, options: PipelineOptions, fixtures: str | None) -> None:
    """Print what would happen without launching a browser or calling any API."""
    print("[DRY RUN] Settings:")
    print(json.dumps(settings.model_dump(mode="json"), indent=2))
    print("[DRY RUN] Options:")
    print(json.dumps(options.model_dump(mode="json"), indent=2))
    source = f"fixture {fixtures}" if fixtures else settings.spider.base_url
    print(f"[DRY RUN] Would scrape from {source}")


def install_stop_handlers(orchestrator: PipelineOrchestrator) -> None:
    """Turn SIGINT/SIGTERM into a cooperative stop request."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.stop_pipeline)
        except (NotImplementedError, RuntimeError):
            logger.debug("Signal handlers not supported here, Ctrl+C will abort immediately")
            return


async def run(settings: Settings, options: PipelineOptions, fixtures: str | None = None) -> PipelineRun:
    """Wire up collaborators and run the pipeline once."""
    async with AsyncExitStack() as stack:
        spider: JobSpider
        if fixtures:
            spider = FixtureSpider(fixtures)
        else:
            from jobs_etl.browser.session import BrowserSession
            from jobs_etl.spider.nsw import NswJobsSpider

            session = await stack.enter_async_context(BrowserSession(settings.spider))
            spider = NswJobsSpider(settings.spider, session)

        storage = stack.enter_context(StorageService(settings.storage))
        processor = ProcessorService(settings.processor)
        orchestrator = PipelineOrchestrator(settings.orchestrator, spider, processor, storage)
        install_stop_handlers(orchestrator)

        result = await orchestrator.run_pipeline(options)

    print(f"\nPipeline {result.summary()}")
    for err in result.metrics.errors:
        job = f" [{err.job_id}]" if err.job_id else ""
        print(f"  {err.stage.value}{job}: {err.message}")
    return result


def cmd_jobs(args: argparse.Namespace, settings: Settings) -> None:
    """Handle the jobs subcommand."""
    filters = {"agency": args.agency} if args.agency else {}
    with StorageService(settings.storage) as storage:
        records = asyncio.run(
            storage.get_jobs_by_filter(
                filters, limit=args.limit, order_by="stored_at", descending=True, live=args.live,
            )
        )
    print(json.dumps([r.model_dump() for r in records], indent=2))


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)
    environ = os.environ

    try:
        settings = load_settings(args.config, environ)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "jobs":
        try:
            cmd_jobs(args, settings)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        return

    # run (default)
    try:
        options = build_options(args, environ)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.dry_run:
        dry_run(settings, options, args.fixtures)
        return

    try:
        result = asyncio.run(run(settings, options, args.fixtures))
    except Exception as e:
        logger.error("Pipeline run failed: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if result.status not in (PipelineStatus.COMPLETED, PipelineStatus.STOPPED):
        sys.exit(1)


if __name__ == "__main__":
    main()
