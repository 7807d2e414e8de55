"""Command-line entry point for one pipeline run.

Usage:
  newsroom-pipeline --categories "technology,science" --limit 8
  python -m pipeline.cli --dry-run
  python -m pipeline.cli --skip-fetch --mode local

종료 코드는 치명적 실패(PipelineAbort, ConfigurationError)에서만 1이다.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import List

from ingestion.db.session import dispose_engines
from ingestion.settings import ConfigurationError, get_settings, parse_run_mode
from ingestion.utils.logging import configure_logging, get_logger
from pipeline.orchestrator import PipelineAbort, PipelineMetrics, PipelineOptions, run_pipeline

logger = get_logger("pipeline.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsroom-pipeline", description="Run the news content pipeline once")
    parser.add_argument("--dry-run", action="store_true", help="Fetch and rank in memory only; no writes")
    parser.add_argument("--skip-fetch", action="store_true", help="Skip fetching; process stored sources")
    parser.add_argument("--only-rank", action="store_true", help="Stop after ranking")
    parser.add_argument("--categories", default=None, help='Comma separated categories, e.g. "technology,science"')
    parser.add_argument("--locale", default=None, help="Country/locale override (e.g. us)")
    parser.add_argument("--language", default=None, help="Language override (e.g. en)")
    parser.add_argument("--limit", type=int, default=None, help="Max items to fetch")
    parser.add_argument("--mode", default=None, help="Storage credentials to use: local | production")
    return parser


def parse_options(argv: List[str] | None = None) -> PipelineOptions:
    args = build_parser().parse_args(argv)
    categories = tuple(c.strip() for c in (args.categories or "").split(",") if c.strip())
    return PipelineOptions(
        dry_run=args.dry_run,
        skip_fetch=args.skip_fetch,
        only_rank=args.only_rank,
        categories=categories,
        locale=args.locale,
        language=args.language,
        limit=args.limit,
        mode=parse_run_mode(args.mode),
    )


async def _run(options: PipelineOptions) -> PipelineMetrics:
    try:
        return await run_pipeline(options)
    finally:
        await dispose_engines()


def main(argv: List[str] | None = None) -> int:
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        configure_logging("INFO")
        logger.error("pipeline.configuration_error", extra={"error": str(exc)})
        return 1
    configure_logging(settings.log_level, json_enabled=settings.log_json)
    options = parse_options(argv)
    try:
        asyncio.run(_run(options))
    except PipelineAbort as exc:
        logger.error("pipeline.aborted", extra={"stage": exc.stage, "error": str(exc)})
        return 1
    except ConfigurationError as exc:
        logger.error("pipeline.configuration_error", extra={"error": str(exc)})
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
