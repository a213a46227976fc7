import aiohttp
import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, FrozenSet, Mapping, Optional, Sequence

from gaslib_catalog.domain.exceptions import (
    CatalogException,
    ExternalServiceUnavailable,
    RateLimited,
    RepositoryNotFound,
    TransientNetworkError,
)
from gaslib_catalog.domain.licenses import UNKNOWN_LICENSE
from gaslib_catalog.domain.models import LicenseInfo, RepositoryMetadata, SearchPage
from gaslib_catalog.infrastructure.acl import GitHubTranslator
from gaslib_catalog.infrastructure.rate_limit import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_MAX,
    RequestThrottle,
    sleep_with_backoff,
)

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)
MAX_RETRIES = 3
# Limit concurrent connections to avoid overwhelming GitHub's servers
CONNECTOR_LIMIT = 10
RATE_LIMIT_STATUSES = {403, 429}
DEFAULT_SEARCH_TOPICS = ("google-apps-script", "apps-script")
# GitHub rejects search queries with too many OR terms
MAX_SEARCH_TOPICS = 5
MAX_PER_PAGE = 100


class GitHubApiClient(ABC):
    """
    The subset of the GitHub API consumed by ingestion.

    README and license lookups degrade to empty/default values; repository metadata
    failures raise, and a missing commit listing is reported as None.
    """

    async def __aenter__(self) -> "GitHubApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        return None

    @abstractmethod
    async def fetch_repository(self, owner: str, repo: str) -> RepositoryMetadata:
        ...

    @abstractmethod
    async def fetch_readme(self, owner: str, repo: str) -> str:
        ...

    @abstractmethod
    async def fetch_license(self, owner: str, repo: str) -> LicenseInfo:
        ...

    @abstractmethod
    async def fetch_last_commit_at(self, owner: str, repo: str) -> Optional[datetime]:
        ...

    @abstractmethod
    async def search_repositories(
        self, topics: Optional[Sequence[str]] = None, page: int = 1, per_page: int = 30
    ) -> SearchPage:
        ...


def _retry_after_seconds(headers: Mapping[str, str]) -> Optional[float]:
    retry_after = headers.get('Retry-After')
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            return None

    if headers.get('X-RateLimit-Remaining') == '0' and headers.get('X-RateLimit-Reset'):
        try:
            return max(float(headers['X-RateLimit-Reset']) - time.time(), 0.0)
        except ValueError:
            return None
    return None


class GitHubRestClient(GitHubApiClient):
    """
    Client for the GitHub REST API.
    Handles authentication, request throttling, retry classification and backoff.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        request_delay: float = 1.0,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        backoff_max: float = DEFAULT_BACKOFF_MAX,
        api_url: str = GITHUB_API_BASE,
    ):
        self.headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "gaslib-catalog",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"
        else:
            logger.warning("No GitHub token provided, rate limits will be strict.")

        self.api_url = api_url.rstrip('/')
        self.session = session
        self._owns_session = False
        self.max_retries = max(max_retries, 1)
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.throttle = RequestThrottle(request_delay)

    async def __aenter__(self) -> "GitHubRestClient":
        if self.session is None:
            self.session = aiohttp.ClientSession(connector=aiohttp.TCPConnector(limit=CONNECTOR_LIMIT))
            self._owns_session = True
        return self

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
        if self._owns_session:
            self.session = None
            self._owns_session = False

    async def _get_json(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        missing_statuses: FrozenSet[int] = frozenset(),
    ) -> Any:
        """
        Issues a throttled GET and returns the decoded JSON body.

        Statuses in `missing_statuses` return None. Any other 404 raises RepositoryNotFound
        without retrying. 403/429 and every other failure are retried with exponential
        backoff; once attempts are exhausted ExternalServiceUnavailable is raised.
        """
        if self.session is None:
            raise RuntimeError("GitHubRestClient must be used inside 'async with'.")

        url = f"{self.api_url}{path}"
        last_error: Optional[CatalogException] = None

        for attempt in range(self.max_retries):
            await self.throttle.wait()
            retry_after = None
            try:
                async with self.session.get(url, params=params, headers=self.headers, timeout=REQUEST_TIMEOUT) as response:
                    if response.status in missing_statuses:
                        return None

                    if response.status == 404:
                        raise RepositoryNotFound()

                    if response.status in RATE_LIMIT_STATUSES:
                        retry_after = _retry_after_seconds(response.headers)
                        last_error = RateLimited(retry_after=retry_after)
                        logger.warning(
                            f"Rate limited ({response.status}) on {path} "
                            f"(attempt {attempt + 1}/{self.max_retries})."
                        )
                    elif not 200 <= response.status < 300:
                        last_error = TransientNetworkError(f"GitHub API error: {response.status} on {path}")
                        logger.warning(
                            f"Server responded {response.status} on {path} "
                            f"(attempt {attempt + 1}/{self.max_retries})."
                        )
                    else:
                        return await response.json()

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = TransientNetworkError(f"Request to {path} failed: {e}")
                logger.warning(f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}")

            if attempt < self.max_retries - 1:
                sleep_time = await sleep_with_backoff(attempt, self.backoff_base, self.backoff_max, retry_after)
                logger.info(f"Retrying {path} after {sleep_time:.1f}s.")

        raise ExternalServiceUnavailable(
            f"GitHub API unavailable after {self.max_retries} attempts: {last_error.message if last_error else path}"
        ) from last_error

    async def fetch_repository(self, owner: str, repo: str) -> RepositoryMetadata:
        raw_repo = await self._get_json(f"/repos/{owner}/{repo}")
        return GitHubTranslator.to_metadata(raw_repo)

    async def fetch_readme(self, owner: str, repo: str) -> str:
        try:
            raw_readme = await self._get_json(f"/repos/{owner}/{repo}/readme", missing_statuses=frozenset({404}))
        except CatalogException as e:
            logger.warning(f"README fetch failed for {owner}/{repo}: {e}")
            return ""

        if not raw_readme:
            return ""
        return GitHubTranslator.decode_content(raw_readme)

    async def fetch_license(self, owner: str, repo: str) -> LicenseInfo:
        fallback_url = f"https://github.com/{owner}/{repo}"
        try:
            raw_license = await self._get_json(f"/repos/{owner}/{repo}/license", missing_statuses=frozenset({404}))
        except CatalogException as e:
            logger.warning(f"License fetch failed for {owner}/{repo}: {e}")
            return LicenseInfo(type=UNKNOWN_LICENSE, url=fallback_url)

        if not raw_license:
            return LicenseInfo(type=UNKNOWN_LICENSE, url=fallback_url)
        return GitHubTranslator.to_license(raw_license, fallback_url)

    async def fetch_last_commit_at(self, owner: str, repo: str) -> Optional[datetime]:
        # 409 is GitHub's answer for a repository without any commits
        raw_commits = await self._get_json(
            f"/repos/{owner}/{repo}/commits",
            params={"per_page": "1"},
            missing_statuses=frozenset({404, 409}),
        )
        if not raw_commits:
            return None
        return GitHubTranslator.to_last_commit_at(raw_commits)

    async def search_repositories(
        self, topics: Optional[Sequence[str]] = None, page: int = 1, per_page: int = 30
    ) -> SearchPage:
        valid_topics = [t.strip() for t in (topics or DEFAULT_SEARCH_TOPICS) if t and t.strip()]
        if not valid_topics:
            valid_topics = list(DEFAULT_SEARCH_TOPICS)
        query = f"{' OR '.join(valid_topics[:MAX_SEARCH_TOPICS])} in:topics"

        raw_search = await self._get_json(
            "/search/repositories",
            params={
                "q": query,
                "sort": "stars",
                "order": "desc",
                "per_page": str(min(max(per_page, 1), MAX_PER_PAGE)),
                "page": str(max(page, 1)),
            },
        )
        return GitHubTranslator.to_search_page(raw_search or {})
