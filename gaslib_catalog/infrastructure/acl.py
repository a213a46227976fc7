import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from gaslib_catalog.domain.licenses import UNKNOWN_LICENSE, normalize_license_name
from gaslib_catalog.domain.models import LicenseInfo, RepositoryMetadata, SearchPage

logger = logging.getLogger(__name__)


def parse_github_datetime(raw: str) -> datetime:
    """Parses GitHub's ISO-8601 timestamps, which use a trailing `Z` for UTC."""
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST JSON responses into domain models.
    """

    @staticmethod
    def to_metadata(raw_repo: Dict[str, Any]) -> RepositoryMetadata:
        """
        Transforms a `/repos/{owner}/{repo}` response into RepositoryMetadata.

        Args:
            raw_repo (Dict[str, Any]): The raw JSON body from GitHub.

        Returns:
            RepositoryMetadata: The consumed subset of repository fields.
        """
        owner_data = raw_repo.get('owner') or {}
        license_data = raw_repo.get('license') or {}

        html_url = raw_repo.get('html_url')
        if not html_url:
            raise ValueError("html_url is required to build RepositoryMetadata.")

        license_type = normalize_license_name(license_data.get('name'))
        license_url = license_data.get('url') if license_type != UNKNOWN_LICENSE else None

        return RepositoryMetadata(
            name=raw_repo.get('name', ''),
            description=raw_repo.get('description'),
            html_url=html_url,
            owner_login=owner_data.get('login', ''),
            owner_url=owner_data.get('html_url', ''),
            stars=raw_repo.get('stargazers_count') or 0,
            license=LicenseInfo(type=license_type, url=license_url or html_url),
        )

    @staticmethod
    def decode_content(raw_file: Dict[str, Any]) -> str:
        """Decodes the `content` of a README/license response, base64 or plain."""
        content = raw_file.get('content') or ''
        if raw_file.get('encoding') != 'base64':
            return content
        try:
            return base64.b64decode(content.replace('\n', '')).decode('utf-8', errors='replace')
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Could not decode base64 content: {e}")
            return ''

    @staticmethod
    def to_license(raw_license: Dict[str, Any], fallback_url: str) -> LicenseInfo:
        """Transforms a `/repos/{owner}/{repo}/license` response into LicenseInfo."""
        license_data = raw_license.get('license') or {}
        license_type = normalize_license_name(license_data.get('name'))
        return LicenseInfo(type=license_type, url=raw_license.get('html_url') or fallback_url)

    @staticmethod
    def to_last_commit_at(raw_commits: List[Dict[str, Any]]) -> Optional[datetime]:
        """Returns the committer date of the newest commit, or None for an empty listing."""
        if not raw_commits:
            return None
        commit = (raw_commits[0] or {}).get('commit') or {}
        raw_date = (commit.get('committer') or {}).get('date') or (commit.get('author') or {}).get('date')
        if not raw_date:
            return None
        return parse_github_datetime(raw_date)

    @staticmethod
    def to_search_page(raw_search: Dict[str, Any]) -> SearchPage:
        items = raw_search.get('items') or []
        return SearchPage(
            total_count=raw_search.get('total_count', 0),
            repository_urls=[item['html_url'] for item in items if item and item.get('html_url')],
        )
