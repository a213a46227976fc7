import logging

from gaslib_catalog.config import ClientMode, Settings
from gaslib_catalog.infrastructure.fixture_client import FixtureGitHubClient
from gaslib_catalog.infrastructure.github_client import GitHubApiClient, GitHubRestClient

logger = logging.getLogger(__name__)


def create_github_client(settings: Settings) -> GitHubApiClient:
    """Builds the GitHub client selected by `GITHUB_CLIENT_MODE`."""
    if settings.github_client_mode == ClientMode.FIXTURE:
        logger.info("Using fixture GitHub client; no network calls will be made.")
        return FixtureGitHubClient()

    return GitHubRestClient(
        token=settings.github_token,
        request_delay=settings.request_delay,
        max_retries=settings.max_retries,
        backoff_base=settings.backoff_base,
        backoff_max=settings.backoff_max,
    )
