import argparse
import asyncio
import json
import logging
import sys
from datetime import timedelta
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from gaslib_catalog.application.ingestion_service import IngestionService
from gaslib_catalog.application.scraper_service import ScraperService
from gaslib_catalog.config import Settings
from gaslib_catalog.infrastructure.client_factory import create_github_client
from gaslib_catalog.infrastructure.database import PostgresLibraryRepository

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gaslib-catalog",
        description="Ingest Google Apps Script libraries from GitHub into the catalog.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Dry run: scrape one repository without writing")
    scrape.add_argument("reference", help="owner/repo or GitHub URL")

    ingest = subparsers.add_parser("ingest", help="Ingest one or more repositories")
    ingest.add_argument("references", nargs="+", help="owner/repo or GitHub URLs")
    ingest.add_argument("--include-stale", action="store_true", help="Do not skip repositories with old commits")

    refresh = subparsers.add_parser("refresh", help="Re-fetch a stored library from GitHub")
    refresh.add_argument("library_id")
    refresh.add_argument("--force", action="store_true", help="Update even if the commit is unchanged")

    discover = subparsers.add_parser("discover", help="Search GitHub topics and ingest the results")
    discover.add_argument("--topic", dest="topics", action="append", help="Topic to search (repeatable)")
    discover.add_argument("--start-page", type=int, default=1)
    discover.add_argument("--end-page", type=int, default=1)
    discover.add_argument("--per-page", type=int, default=30)

    subparsers.add_parser("validate-all", help="Re-scan all non-rejected libraries and reject invalid ones")
    subparsers.add_parser("init-db", help="Create the library table")

    return parser


# README bodies are stored but too long for terminal output
OUTCOME_EXCLUDE = {"library": {"readme"}, "candidate": {"readme"}}
SCRAPE_EXCLUDE = {"data": {"readme"}}
REPORT_EXCLUDE = {"failures": {"__all__": OUTCOME_EXCLUDE}}


def _print(model: BaseModel, exclude: Optional[dict] = None) -> None:
    print(json.dumps(model.model_dump(mode="json", exclude=exclude), indent=2, ensure_ascii=False))


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    github_client = create_github_client(settings)
    scraper = ScraperService(github_client)

    if args.command == "scrape":
        async with github_client:
            result = await scraper.scrape(args.reference)
        _print(result, SCRAPE_EXCLUDE)
        return 0 if result.success else 1

    if not settings.database_url:
        logger.error("DATABASE_URL is not set in the environment.")
        return 1

    db_repository = PostgresLibraryRepository(db_url=settings.database_url)
    try:
        if args.command == "init-db":
            await db_repository.create_schema()
            logger.info("Library table is ready.")
            return 0

        max_commit_age = timedelta(days=settings.max_commit_age_days) if settings.max_commit_age_days else None
        service = IngestionService(
            scraper=scraper,
            library_store=db_repository,
            concurrency=settings.batch_concurrency,
            batch_delay=settings.batch_delay,
            max_commit_age=max_commit_age,
        )

        async with github_client:
            if args.command == "ingest" and len(args.references) == 1:
                outcome = await service.ingest(args.references[0])
                _print(outcome, OUTCOME_EXCLUDE)
                return 0 if outcome.success else 1

            if args.command == "refresh":
                outcome = await service.refresh(args.library_id, force=args.force)
                _print(outcome, OUTCOME_EXCLUDE)
                return 0 if outcome.success else 1

            if args.command == "validate-all":
                _print(await service.validate_all())
                return 0

            if args.command == "ingest":
                report = await service.ingest_many(args.references, skip_stale=not args.include_stale)
            else:
                report = await service.discover(args.topics, args.start_page, args.end_page, args.per_page)

        _print(report, REPORT_EXCLUDE)
        return 0
    finally:
        await db_repository.dispose()


def run(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        settings = Settings.from_env()
    except ValidationError as e:
        configure_logging("INFO")
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    configure_logging(settings.log_level)

    try:
        exit_code = asyncio.run(run_command(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user. Exiting gracefully.")
        exit_code = 130
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
