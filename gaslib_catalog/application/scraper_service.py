import asyncio
import logging
from typing import Sequence, Union

from gaslib_catalog.domain.exceptions import (
    CatalogException,
    FailureReason,
    InvalidReference,
    MissingCommitData,
    NoScriptId,
)
from gaslib_catalog.domain.models import RepositoryReference, ScrapedLibrary, ScrapeResult
from gaslib_catalog.domain.script_id import DEFAULT_SCRIPT_ID_PATTERNS, ScriptIdPattern, find_script_id
from gaslib_catalog.infrastructure.github_client import GitHubApiClient

logger = logging.getLogger(__name__)


class ScraperService:
    """
    Turns one repository reference into a normalized, `pending` library candidate.

    The scraper never touches storage, so it can be run as a dry run (for example to
    re-validate stored libraries against the current extraction patterns).
    """

    def __init__(
        self,
        github_client: GitHubApiClient,
        patterns: Sequence[ScriptIdPattern] = DEFAULT_SCRIPT_ID_PATTERNS,
    ):
        self.github_client = github_client
        self.patterns = patterns

    async def scrape(self, reference: Union[str, RepositoryReference]) -> ScrapeResult:
        """
        Fetches metadata, README and latest commit concurrently and extracts the script ID.

        Returns:
            ScrapeResult: The candidate on success, otherwise a typed failure reason.
        """
        try:
            ref = reference if isinstance(reference, RepositoryReference) else RepositoryReference.parse(reference)
        except InvalidReference as e:
            logger.warning(f"Rejected repository reference {reference!r}.")
            return ScrapeResult.fail(e.reason, e.message)

        # Partial failures are interpreted per field, so wait for all three to settle.
        metadata, readme, last_commit_at = await asyncio.gather(
            self.github_client.fetch_repository(ref.owner, ref.repo),
            self.github_client.fetch_readme(ref.owner, ref.repo),
            self.github_client.fetch_last_commit_at(ref.owner, ref.repo),
            return_exceptions=True,
        )

        if isinstance(metadata, BaseException):
            return self._failure(ref, metadata)
        if isinstance(last_commit_at, BaseException):
            return self._failure(ref, last_commit_at)
        if last_commit_at is None:
            return self._failure(ref, MissingCommitData())

        if isinstance(readme, BaseException):
            logger.warning(f"README unavailable for {ref.full_name}: {readme}")
            readme = ""

        match = find_script_id(readme, self.patterns)
        if match is None:
            return self._failure(ref, NoScriptId())

        candidate = ScrapedLibrary(
            name=metadata.name,
            script_id=match.script_id,
            repository_url=metadata.html_url,
            author_name=metadata.owner_login,
            author_url=metadata.owner_url,
            description=metadata.description,
            readme=readme,
            license_type=metadata.license.type,
            license_url=metadata.license.url or metadata.html_url,
            star_count=metadata.stars,
            last_commit_at=last_commit_at,
            script_type=match.script_type,
        )

        logger.info(
            f"Scraped {ref.full_name}: script ID {match.script_id} "
            f"({match.script_type.value}, pattern {match.pattern})."
        )
        return ScrapeResult.ok(candidate)

    @staticmethod
    def _failure(ref: RepositoryReference, error: BaseException) -> ScrapeResult:
        if isinstance(error, CatalogException):
            logger.info(f"Scrape of {ref.full_name} failed: {error.message}")
            return ScrapeResult.fail(error.reason, error.message)
        if isinstance(error, Exception):
            logger.error(f"Unexpected error while scraping {ref.full_name}: {error!r}")
            return ScrapeResult.fail(FailureReason.UNEXPECTED, f"Scraping failed: {error}")
        # Cancellation and interpreter exits are not ingestion failures
        raise error
