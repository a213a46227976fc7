import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from gaslib_catalog.application.commit_status_service import CommitStatusService, commit_changed
from gaslib_catalog.application.scraper_service import ScraperService
from gaslib_catalog.application.uniqueness_service import UniquenessService
from gaslib_catalog.domain.exceptions import (
    CatalogException,
    FailureReason,
    LibraryNotFound,
    MissingCommitData,
)
from gaslib_catalog.domain.models import (
    BulkIngestReport,
    IngestAction,
    IngestOutcome,
    LibraryRecord,
    LibraryStatus,
    RejectedLibrary,
    RepositoryReference,
    ScrapedLibrary,
    ValidationReport,
)
from gaslib_catalog.infrastructure.database import PostgresLibraryRepository
from gaslib_catalog.infrastructure.rate_limit import DEFAULT_BATCH_DELAY, DEFAULT_CONCURRENCY, map_in_chunks

logger = logging.getLogger(__name__)

# Scrape failures that mean a stored library no longer qualifies for the catalog.
# Anything else (GitHub outages, unexpected errors) is counted as an error instead.
REJECTABLE_REASONS = frozenset({
    FailureReason.NO_SCRIPT_ID,
    FailureReason.MISSING_COMMIT_DATA,
    FailureReason.NOT_FOUND,
    FailureReason.INVALID_REFERENCE,
})


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _update_fields(candidate: ScrapedLibrary) -> Dict[str, Any]:
    return {
        'name': candidate.name,
        'repository_url': candidate.repository_url,
        'author_name': candidate.author_name,
        'author_url': candidate.author_url,
        'description': candidate.description,
        'readme': candidate.readme,
        'license_type': candidate.license_type,
        'license_url': candidate.license_url,
        'star_count': candidate.star_count,
        'last_commit_at': candidate.last_commit_at,
    }


class IngestionService:
    """
    Entry point for admin endpoints and CLI jobs: scrape a repository, then create,
    update or leave its catalog record depending on what is already stored.

    Batch operations never abort on a single repository; they report per-outcome counts.
    """

    def __init__(
        self,
        scraper: ScraperService,
        library_store: PostgresLibraryRepository,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        max_commit_age: Optional[timedelta] = None,
    ):
        self.scraper = scraper
        self.library_store = library_store
        self.commit_status = CommitStatusService(library_store)
        self.uniqueness = UniquenessService(library_store)
        self.concurrency = concurrency
        self.batch_delay = batch_delay
        self.max_commit_age = max_commit_age

    async def ingest(
        self,
        reference: Union[str, RepositoryReference],
        min_last_commit_at: Optional[datetime] = None,
    ) -> IngestOutcome:
        """
        Ingests one repository.

        Args:
            reference: `owner/repo` or a GitHub URL.
            min_last_commit_at: Candidates whose last commit is older are skipped.

        Returns:
            IngestOutcome: created / updated / unchanged / skipped, or failed with a reason.
        """
        label = reference.full_name if isinstance(reference, RepositoryReference) else str(reference)

        result = await self.scraper.scrape(reference)
        if not result.success:
            return IngestOutcome(reference=label, action=IngestAction.FAILED, reason=result.reason, error=result.error)

        candidate = result.data
        if min_last_commit_at is not None and _as_utc(candidate.last_commit_at) < _as_utc(min_last_commit_at):
            logger.info(f"Skipping stale repository {label} (last commit {candidate.last_commit_at.isoformat()}).")
            return IngestOutcome(reference=label, action=IngestAction.SKIPPED, candidate=candidate)

        try:
            status = await self.commit_status.check(candidate.repository_url, candidate.last_commit_at)

            if status.is_new:
                await self.uniqueness.ensure_unique(candidate.script_id, candidate.repository_url)
                library = await self.library_store.create(LibraryRecord.from_scraped(candidate))
                logger.info(f"Created library {library.id} for {candidate.repository_url}.")
                return IngestOutcome(reference=label, action=IngestAction.CREATED, library=library, candidate=candidate)

            if status.should_update:
                library = await self.library_store.update(status.library_id, _update_fields(candidate))
                logger.info(f"Updated library {library.id}: new commit at {candidate.last_commit_at.isoformat()}.")
                return IngestOutcome(reference=label, action=IngestAction.UPDATED, library=library, candidate=candidate)

            logger.info(f"No upstream changes for {candidate.repository_url}.")
            return IngestOutcome(reference=label, action=IngestAction.UNCHANGED, candidate=candidate)

        except CatalogException as e:
            logger.warning(f"Ingestion of {label} failed: {e.message}")
            return IngestOutcome(
                reference=label, action=IngestAction.FAILED, candidate=candidate, reason=e.reason, error=e.message
            )
        except Exception as e:
            logger.error(f"Unexpected error ingesting {label}: {e!r}")
            return IngestOutcome(
                reference=label,
                action=IngestAction.FAILED,
                candidate=candidate,
                reason=FailureReason.UNEXPECTED,
                error=str(e) or FailureReason.UNEXPECTED.value,
            )

    async def ingest_many(
        self,
        references: Iterable[Union[str, RepositoryReference]],
        skip_stale: bool = True,
    ) -> BulkIngestReport:
        """Ingests repositories in chunks of `concurrency`, pausing `batch_delay` between chunks."""
        references = list(references)
        cutoff = None
        if skip_stale and self.max_commit_age is not None:
            cutoff = datetime.now(timezone.utc) - self.max_commit_age

        logger.info(f"Starting bulk ingestion of {len(references)} repositories.")
        results = await map_in_chunks(
            references,
            lambda ref: self.ingest(ref, min_last_commit_at=cutoff),
            concurrency=self.concurrency,
            delay=self.batch_delay,
        )

        outcomes: List[IngestOutcome] = []
        for reference, result in zip(references, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(f"Unexpected error ingesting {reference}: {result!r}")
                outcomes.append(IngestOutcome(
                    reference=str(reference),
                    action=IngestAction.FAILED,
                    reason=FailureReason.UNEXPECTED,
                    error=str(result) or FailureReason.UNEXPECTED.value,
                ))
            else:
                outcomes.append(result)

        report = BulkIngestReport.from_outcomes(outcomes)
        logger.info(
            f"Bulk ingestion completed: created {report.created} / updated {report.updated} / "
            f"unchanged {report.unchanged} / skipped {report.skipped} / failed {report.failed}."
        )
        return report

    async def refresh(self, library_id: str, force: bool = False) -> IngestOutcome:
        """
        Re-fetches metadata, license and latest commit for a stored library.
        Writes only when the commit changed, unless `force` is set.
        """
        library = await self.library_store.find_by_id(library_id)
        if library is None:
            error = LibraryNotFound(f"Library not found: {library_id}")
            return IngestOutcome(reference=library_id, action=IngestAction.FAILED, reason=error.reason, error=error.message)

        label = library.repository_url
        client = self.scraper.github_client
        try:
            ref = RepositoryReference.parse(library.repository_url)
            metadata, license_info, last_commit_at = await asyncio.gather(
                client.fetch_repository(ref.owner, ref.repo),
                client.fetch_license(ref.owner, ref.repo),
                client.fetch_last_commit_at(ref.owner, ref.repo),
            )
            if last_commit_at is None:
                raise MissingCommitData()

            if not force and not commit_changed(library.last_commit_at, last_commit_at):
                logger.info(f"Library {library_id} is up to date.")
                return IngestOutcome(reference=label, action=IngestAction.UNCHANGED, library=library)

            updated = await self.library_store.update(library_id, {
                'name': metadata.name,
                'repository_url': metadata.html_url,
                'author_name': metadata.owner_login,
                'author_url': metadata.owner_url,
                'description': metadata.description,
                'star_count': metadata.stars,
                'license_type': license_info.type,
                'license_url': license_info.url,
                'last_commit_at': last_commit_at,
            })
        except CatalogException as e:
            logger.warning(f"Refresh of library {library_id} failed: {e.message}")
            return IngestOutcome(reference=label, action=IngestAction.FAILED, library=library, reason=e.reason, error=e.message)

        logger.info(f"Refreshed library {library_id} from {label}.")
        return IngestOutcome(reference=label, action=IngestAction.UPDATED, library=updated)

    async def discover(
        self,
        topics: Optional[Sequence[str]] = None,
        start_page: int = 1,
        end_page: int = 1,
        per_page: int = 30,
    ) -> BulkIngestReport:
        """Searches GitHub by topic over a page range and bulk-ingests every hit."""
        client = self.scraper.github_client
        urls: List[str] = []

        for page in range(start_page, end_page + 1):
            try:
                search_page = await client.search_repositories(topics, page=page, per_page=per_page)
            except CatalogException as e:
                logger.error(f"Search page {page} failed: {e.message}")
                continue

            logger.info(f"Search page {page}: {len(search_page.repository_urls)} of {search_page.total_count} repositories.")
            if not search_page.repository_urls:
                break
            urls.extend(url for url in search_page.repository_urls if url not in urls)

        return await self.ingest_many(urls)

    async def validate_all(self) -> ValidationReport:
        """
        Re-scrapes every non-rejected library and rejects those that no longer yield
        a script ID (or no longer exist). GitHub outages are counted as errors and
        leave the record untouched.
        """
        libraries = await self.library_store.list_active()
        logger.info(f"Validating {len(libraries)} libraries against current extraction patterns.")

        results = await map_in_chunks(
            libraries,
            lambda library: self.scraper.scrape(library.repository_url),
            concurrency=self.concurrency,
            delay=self.batch_delay,
        )

        report = ValidationReport(total=len(libraries))
        for library, result in zip(libraries, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                report.errors += 1
                logger.error(f"Validation error for {library.name}: {result!r}")
                continue

            if result.success:
                report.valid += 1
                report.processed += 1
                continue

            if result.reason not in REJECTABLE_REASONS:
                report.errors += 1
                logger.error(f"Validation error for {library.name}: {result.error}")
                continue

            try:
                await self.library_store.set_status(library.id, LibraryStatus.REJECTED)
            except CatalogException as e:
                report.errors += 1
                logger.error(f"Could not reject {library.name}: {e.message}")
                continue

            report.rejected += 1
            report.processed += 1
            report.rejected_libraries.append(RejectedLibrary(id=library.id, name=library.name, reason=result.error))
            logger.info(f"Rejected {library.name}: {result.error}")

        logger.info(
            f"Validation completed. processed {report.processed}, valid {report.valid}, "
            f"rejected {report.rejected}, errors {report.errors}."
        )
        return report
