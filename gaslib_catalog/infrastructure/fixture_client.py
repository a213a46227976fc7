import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Sequence

from pydantic import BaseModel, ConfigDict

from gaslib_catalog.domain.exceptions import RepositoryNotFound
from gaslib_catalog.domain.models import LicenseInfo, RepositoryMetadata, SearchPage
from gaslib_catalog.infrastructure.github_client import GitHubApiClient

logger = logging.getLogger(__name__)

MISSING_REPOSITORY = "nonexistent-user-999999/nonexistent-repo-999999"
OAUTH2_REPOSITORY = "googleworkspace/apps-script-oauth2"
OAUTH2_SCRIPT_ID = "1B7FSrk5Zi6L1rSxxTDgDEUsPzlukDsi4KGuTMorsTQHhGBzBkMun4iDF"

OAUTH2_README = f"""# OAuth2 for Apps Script

OAuth2 for Apps Script is a library for Google Apps Script that provides the
ability to create and authorize OAuth2 tokens as well as refresh them when they expire.

## Setup

This library is already published as an Apps Script, making it easy to include in your project.
To add it to your script, do the following in the Apps Script code editor:

1. Click on the menu item "Resources > Libraries..."
2. In the "Find a Library" text box, enter the Script ID: {OAUTH2_SCRIPT_ID}
3. Choose a version in the dropdown box (usually best to pick the latest version).
"""

DEFAULT_README = """# {repo}

Fixture README without any Apps Script identifier.

## Usage

```javascript
const lib = new FixtureLibrary();
lib.doSomething();
```
"""


class RepositoryFixture(BaseModel):
    """Canned responses for one repository."""
    model_config = ConfigDict(frozen=True)

    metadata: RepositoryMetadata
    readme: str = ""
    license: Optional[LicenseInfo] = None
    last_commit_at: Optional[datetime] = None


class FixtureGitHubClient(GitHubApiClient):
    """
    Deterministic stand-in for the GitHub API used by tests and offline runs.
    Unknown repositories get a generic fixture whose README carries no script ID.
    """

    def __init__(self, fixtures: Optional[Dict[str, RepositoryFixture]] = None, now: Optional[datetime] = None):
        self.now = now or datetime.now(timezone.utc)
        self.commit_at = self.now - timedelta(days=3)
        self.fixtures: Dict[str, RepositoryFixture] = {
            OAUTH2_REPOSITORY: RepositoryFixture(
                metadata=RepositoryMetadata(
                    name="apps-script-oauth2",
                    description="An OAuth2 library for Google Apps Script.",
                    html_url=f"https://github.com/{OAUTH2_REPOSITORY}",
                    owner_login="googleworkspace",
                    owner_url="https://github.com/googleworkspace",
                    stars=1500,
                    license=LicenseInfo(type="Apache License 2.0", url="https://www.apache.org/licenses/LICENSE-2.0"),
                ),
                readme=OAUTH2_README,
                license=LicenseInfo(type="Apache License 2.0", url="https://www.apache.org/licenses/LICENSE-2.0"),
                last_commit_at=self.commit_at,
            ),
        }
        if fixtures:
            self.fixtures.update({name.lower(): fixture for name, fixture in fixtures.items()})
        self.calls: Dict[str, int] = {}

    def _record(self, operation: str) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1

    def _fixture(self, owner: str, repo: str) -> Optional[RepositoryFixture]:
        full_name = f"{owner}/{repo}".lower()
        if full_name == MISSING_REPOSITORY:
            return None
        fixture = self.fixtures.get(full_name)
        if fixture is not None:
            return fixture
        return RepositoryFixture(
            metadata=RepositoryMetadata(
                name=repo,
                description=f"Fixture description for {repo}",
                html_url=f"https://github.com/{owner}/{repo}",
                owner_login=owner,
                owner_url=f"https://github.com/{owner}",
                stars=42,
                license=LicenseInfo(type="MIT License", url="https://opensource.org/licenses/MIT"),
            ),
            readme=DEFAULT_README.format(repo=repo),
            license=LicenseInfo(type="MIT License", url="https://opensource.org/licenses/MIT"),
            last_commit_at=self.commit_at,
        )

    async def fetch_repository(self, owner: str, repo: str) -> RepositoryMetadata:
        self._record("fetch_repository")
        logger.debug(f"[fixture] Repository metadata for {owner}/{repo}")
        fixture = self._fixture(owner, repo)
        if fixture is None:
            raise RepositoryNotFound()
        return fixture.metadata

    async def fetch_readme(self, owner: str, repo: str) -> str:
        self._record("fetch_readme")
        fixture = self._fixture(owner, repo)
        return fixture.readme if fixture else ""

    async def fetch_license(self, owner: str, repo: str) -> LicenseInfo:
        self._record("fetch_license")
        fixture = self._fixture(owner, repo)
        if fixture is None or fixture.license is None:
            return LicenseInfo(url=f"https://github.com/{owner}/{repo}")
        return fixture.license

    async def fetch_last_commit_at(self, owner: str, repo: str) -> Optional[datetime]:
        self._record("fetch_last_commit_at")
        fixture = self._fixture(owner, repo)
        return fixture.last_commit_at if fixture else None

    async def search_repositories(
        self, topics: Optional[Sequence[str]] = None, page: int = 1, per_page: int = 30
    ) -> SearchPage:
        self._record("search_repositories")
        urls = sorted(f.metadata.html_url for f in self.fixtures.values())
        start = (max(page, 1) - 1) * per_page
        return SearchPage(total_count=len(urls), repository_urls=urls[start:start + per_page])
