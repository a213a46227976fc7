import unittest
from datetime import datetime, timezone
from typing import Optional

from gaslib_catalog.application.scraper_service import ScraperService
from gaslib_catalog.domain.exceptions import ExternalServiceUnavailable, FailureReason
from gaslib_catalog.domain.models import (
    LibraryStatus,
    LicenseInfo,
    RepositoryMetadata,
    RepositoryReference,
    ScriptType,
)
from gaslib_catalog.infrastructure.fixture_client import (
    MISSING_REPOSITORY,
    OAUTH2_REPOSITORY,
    OAUTH2_SCRIPT_ID,
    FixtureGitHubClient,
    RepositoryFixture,
)

from fakes import OTHER_LEGACY_ID, WEB_APP_ID

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _fixture(
    repo: str,
    readme: str,
    last_commit_at: Optional[datetime] = NOW,
    license_info: Optional[LicenseInfo] = None,
) -> RepositoryFixture:
    metadata = RepositoryMetadata(
        name=repo,
        description=None,
        html_url=f"https://github.com/octocat/{repo}",
        owner_login="octocat",
        owner_url="https://github.com/octocat",
        stars=3,
        license=license_info or LicenseInfo(),
    )
    return RepositoryFixture(metadata=metadata, readme=readme, last_commit_at=last_commit_at)


class _FailingCommitsClient(FixtureGitHubClient):
    async def fetch_last_commit_at(self, owner: str, repo: str) -> Optional[datetime]:
        raise ExternalServiceUnavailable()


class _FailingReadmeClient(FixtureGitHubClient):
    async def fetch_readme(self, owner: str, repo: str) -> str:
        raise ExternalServiceUnavailable()


class _BrokenMetadataClient(FixtureGitHubClient):
    async def fetch_repository(self, owner: str, repo: str) -> RepositoryMetadata:
        raise KeyError("owner")


class TestScraperService(unittest.IsolatedAsyncioTestCase):
    async def test_scrapes_oauth2_library(self) -> None:
        client = FixtureGitHubClient(now=NOW)
        scraper = ScraperService(client)

        result = await scraper.scrape(f"https://github.com/{OAUTH2_REPOSITORY}")

        self.assertTrue(result.success)
        library = result.data
        self.assertEqual(library.script_id, OAUTH2_SCRIPT_ID)
        self.assertEqual(library.status, LibraryStatus.PENDING)
        self.assertEqual(library.script_type, ScriptType.LIBRARY)
        self.assertEqual(library.last_commit_at, client.commit_at)
        self.assertEqual(library.repository_url, f"https://github.com/{OAUTH2_REPOSITORY}")
        self.assertEqual(library.author_name, "googleworkspace")
        self.assertEqual(library.license_type, "Apache License 2.0")
        self.assertEqual(library.star_count, 1500)
        self.assertIn(OAUTH2_SCRIPT_ID, library.readme)

    async def test_accepts_parsed_reference(self) -> None:
        scraper = ScraperService(FixtureGitHubClient(now=NOW))

        result = await scraper.scrape(RepositoryReference.parse(OAUTH2_REPOSITORY))

        self.assertTrue(result.success)

    async def test_missing_repository(self) -> None:
        scraper = ScraperService(FixtureGitHubClient(now=NOW))

        result = await scraper.scrape(MISSING_REPOSITORY)

        self.assertFalse(result.success)
        self.assertEqual(result.reason, FailureReason.NOT_FOUND)
        self.assertIsNone(result.data)

    async def test_invalid_reference_makes_no_calls(self) -> None:
        client = FixtureGitHubClient(now=NOW)
        scraper = ScraperService(client)

        result = await scraper.scrape("https://gitlab.com/octocat/gas-lib")

        self.assertEqual(result.reason, FailureReason.INVALID_REFERENCE)
        self.assertEqual(client.calls, {})

    async def test_missing_commit_data(self) -> None:
        client = FixtureGitHubClient(
            fixtures={"octocat/empty": _fixture("empty", f"Script ID: {OTHER_LEGACY_ID}", last_commit_at=None)},
            now=NOW,
        )

        result = await ScraperService(client).scrape("octocat/empty")

        self.assertEqual(result.reason, FailureReason.MISSING_COMMIT_DATA)

    async def test_commit_failure_is_reported(self) -> None:
        client = _FailingCommitsClient(now=NOW)

        result = await ScraperService(client).scrape(OAUTH2_REPOSITORY)

        self.assertEqual(result.reason, FailureReason.EXTERNAL_SERVICE_UNAVAILABLE)

    async def test_readme_without_script_id(self) -> None:
        result = await ScraperService(FixtureGitHubClient(now=NOW)).scrape("octocat/plain-js")

        self.assertFalse(result.success)
        self.assertEqual(result.reason, FailureReason.NO_SCRIPT_ID)

    async def test_unavailable_readme_counts_as_empty(self) -> None:
        result = await ScraperService(_FailingReadmeClient(now=NOW)).scrape(OAUTH2_REPOSITORY)

        self.assertEqual(result.reason, FailureReason.NO_SCRIPT_ID)

    async def test_unexpected_error_is_wrapped(self) -> None:
        result = await ScraperService(_BrokenMetadataClient(now=NOW)).scrape(OAUTH2_REPOSITORY)

        self.assertEqual(result.reason, FailureReason.UNEXPECTED)
        self.assertIn("Scraping failed", result.error)

    async def test_web_app_deployment(self) -> None:
        readme = f"Open the app: https://script.google.com/macros/s/{WEB_APP_ID}/exec"
        client = FixtureGitHubClient(fixtures={"octocat/gas-app": _fixture("gas-app", readme)}, now=NOW)

        result = await ScraperService(client).scrape("octocat/gas-app")

        self.assertTrue(result.success)
        self.assertEqual(result.data.script_id, WEB_APP_ID)
        self.assertEqual(result.data.script_type, ScriptType.WEB_APP)

    async def test_unlicensed_repository(self) -> None:
        client = FixtureGitHubClient(
            fixtures={"octocat/no-license": _fixture("no-license", f"Script ID: {OTHER_LEGACY_ID}")},
            now=NOW,
        )

        result = await ScraperService(client).scrape("octocat/no-license")

        self.assertEqual(result.data.license_type, "Unknown")
        self.assertEqual(result.data.license_url, "https://github.com/octocat/no-license")
        self.assertEqual(result.data.description, "")
        self.assertEqual(result.data.last_commit_at, NOW)
