import base64
import unittest
from datetime import datetime, timezone

from gaslib_catalog.infrastructure.acl import GitHubTranslator


class TestGitHubTranslator(unittest.TestCase):
    def test_to_metadata_parses_owner_stars_and_license(self) -> None:
        raw_repo = {
            "name": "apps-script-oauth2",
            "description": "An OAuth2 library for Google Apps Script.",
            "html_url": "https://github.com/googleworkspace/apps-script-oauth2",
            "owner": {"login": "googleworkspace", "html_url": "https://github.com/googleworkspace"},
            "stargazers_count": 1500,
            "license": {"name": "Apache License 2.0", "url": "https://api.github.com/licenses/apache-2.0"},
        }

        metadata = GitHubTranslator.to_metadata(raw_repo)

        self.assertEqual(metadata.stars, 1500)
        self.assertEqual(metadata.owner_login, "googleworkspace")
        self.assertEqual(metadata.owner_url, "https://github.com/googleworkspace")
        self.assertEqual(metadata.license.type, "Apache License 2.0")
        self.assertEqual(metadata.license.url, "https://api.github.com/licenses/apache-2.0")

    def test_missing_license_defaults_to_unknown(self) -> None:
        raw_repo = {
            "name": "example",
            "description": None,
            "html_url": "https://github.com/octocat/example",
            "owner": {"login": "octocat", "html_url": "https://github.com/octocat"},
            "stargazers_count": None,
            "license": None,
        }

        metadata = GitHubTranslator.to_metadata(raw_repo)

        self.assertEqual(metadata.description, "")
        self.assertEqual(metadata.stars, 0)
        self.assertEqual(metadata.license.type, "Unknown")
        self.assertEqual(metadata.license.url, "https://github.com/octocat/example")

    def test_unlisted_license_name_is_unknown(self) -> None:
        raw_repo = {
            "name": "example",
            "html_url": "https://github.com/octocat/example",
            "owner": {"login": "octocat"},
            "license": {"name": "Other", "url": None},
        }
        self.assertEqual(GitHubTranslator.to_metadata(raw_repo).license.type, "Unknown")

    def test_missing_html_url_raises(self) -> None:
        with self.assertRaises(ValueError):
            GitHubTranslator.to_metadata({"name": "example", "owner": {"login": "octocat"}})

    def test_decode_base64_content_with_line_breaks(self) -> None:
        text = "# Title\n\nスクリプトID: 1abc\n"
        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        wrapped = "\n".join(encoded[i:i + 10] for i in range(0, len(encoded), 10))

        decoded = GitHubTranslator.decode_content({"content": wrapped, "encoding": "base64"})

        self.assertEqual(decoded, text)

    def test_decode_plain_content(self) -> None:
        self.assertEqual(GitHubTranslator.decode_content({"content": "plain", "encoding": "utf-8"}), "plain")

    def test_to_license_uses_fallback_url(self) -> None:
        license_info = GitHubTranslator.to_license(
            {"license": {"name": "MIT License"}}, "https://github.com/octocat/example"
        )

        self.assertEqual(license_info.type, "MIT License")
        self.assertEqual(license_info.url, "https://github.com/octocat/example")

    def test_to_last_commit_at_parses_committer_date(self) -> None:
        raw_commits = [{"commit": {"committer": {"date": "2024-01-02T03:04:05Z"}}}]

        self.assertEqual(
            GitHubTranslator.to_last_commit_at(raw_commits),
            datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        )

    def test_empty_commit_listing_is_none(self) -> None:
        self.assertIsNone(GitHubTranslator.to_last_commit_at([]))

    def test_to_search_page(self) -> None:
        page = GitHubTranslator.to_search_page({
            "total_count": 2,
            "items": [{"html_url": "https://github.com/a/b"}, {"name": "no-url"}],
        })

        self.assertEqual(page.total_count, 2)
        self.assertEqual(page.repository_urls, ["https://github.com/a/b"])
