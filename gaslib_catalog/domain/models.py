import re
import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gaslib_catalog.domain.exceptions import FailureReason, InvalidReference
from gaslib_catalog.domain.licenses import UNKNOWN_LICENSE

GITHUB_HOSTS = {"github.com", "www.github.com"}
OWNER_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")
REPO_RE = re.compile(r"^[A-Za-z0-9._-]{1,100}$")


class LibraryStatus(str, Enum):
    PENDING = "pending"
    PUBLISHED = "published"
    REJECTED = "rejected"


class ScriptType(str, Enum):
    LIBRARY = "library"
    WEB_APP = "web_app"


class RepositoryReference(BaseModel):
    """
    An (owner, repo) pair identifying a GitHub repository.
    Always built through `parse`, which rejects malformed input before any network call.
    """
    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str

    @classmethod
    def parse(cls, raw: str) -> "RepositoryReference":
        """
        Resolves `owner/repo`, `github.com/owner/repo` or a full GitHub URL.

        Raises:
            InvalidReference: If the input does not name exactly one repository.
        """
        if not raw or not raw.strip():
            raise InvalidReference()
        value = raw.strip()

        if "://" in value or value.lower().startswith(("github.com/", "www.github.com/")):
            if "://" not in value:
                value = f"https://{value}"
            parsed = urlparse(value)
            if parsed.scheme not in ("http", "https") or (parsed.hostname or "").lower() not in GITHUB_HOSTS:
                raise InvalidReference()
            parts = [part for part in parsed.path.split("/") if part]
        else:
            parts = [part for part in value.split("/") if part]
            if len(parts) != 2:
                raise InvalidReference()

        if len(parts) < 2:
            raise InvalidReference()

        owner = parts[0]
        repo = parts[1]
        if repo.endswith(".git"):
            repo = repo[:-4]

        if not OWNER_RE.match(owner) or not REPO_RE.match(repo) or repo in (".", ".."):
            raise InvalidReference()

        return cls(owner=owner, repo=repo)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}"


class LicenseInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = Field(default=UNKNOWN_LICENSE, description="Normalized license name")
    url: str = Field(default="", description="Link to the license text or the repository page")


class RepositoryMetadata(BaseModel):
    """
    Repository fields consumed from GitHub. Fetched fresh for every ingestion.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    html_url: str
    owner_login: str
    owner_url: str
    stars: int = Field(default=0, ge=0)
    license: LicenseInfo = Field(default_factory=LicenseInfo)

    @field_validator("description", mode="before")
    @classmethod
    def _null_description(cls, value):
        return value or ""


class ScriptIdMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    script_id: str
    pattern: str = Field(..., description="Name of the pattern that produced the match")
    script_type: ScriptType = ScriptType.LIBRARY


class SearchPage(BaseModel):
    total_count: int = 0
    repository_urls: List[str] = Field(default_factory=list)


class ScrapedLibrary(BaseModel):
    """
    Normalized candidate produced by one ingestion. Never persisted by the scraper itself.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    script_id: str
    repository_url: str
    author_name: str
    author_url: str
    description: str = ""
    readme: str = ""
    license_type: str = UNKNOWN_LICENSE
    license_url: str = ""
    star_count: int = Field(default=0, ge=0)
    last_commit_at: datetime
    status: LibraryStatus = LibraryStatus.PENDING
    script_type: ScriptType = ScriptType.LIBRARY


class LibraryRecord(BaseModel):
    """
    Persisted catalog entry. `script_id` and `repository_url` are each unique across all records.
    """
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str
    script_id: str
    repository_url: str
    author_name: str
    author_url: str
    description: str = ""
    readme: str = ""
    license_type: str = UNKNOWN_LICENSE
    license_url: str = ""
    star_count: int = Field(default=0, ge=0)
    copy_count: int = Field(default=0, ge=0)
    status: LibraryStatus = LibraryStatus.PENDING
    script_type: ScriptType = ScriptType.LIBRARY
    last_commit_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_scraped(cls, scraped: ScrapedLibrary) -> "LibraryRecord":
        return cls(**scraped.model_dump())


class ScrapeResult(BaseModel):
    success: bool
    data: Optional[ScrapedLibrary] = None
    reason: Optional[FailureReason] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: ScrapedLibrary) -> "ScrapeResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, reason: FailureReason, error: str) -> "ScrapeResult":
        return cls(success=False, reason=reason, error=error)


class CommitStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_new: bool
    should_update: bool
    library_id: Optional[str] = None


class IngestAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


class IngestOutcome(BaseModel):
    reference: str
    action: IngestAction
    library: Optional[LibraryRecord] = None
    candidate: Optional[ScrapedLibrary] = None
    reason: Optional[FailureReason] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.action != IngestAction.FAILED


class BulkIngestReport(BaseModel):
    total: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    failures: List[IngestOutcome] = Field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: List[IngestOutcome]) -> "BulkIngestReport":
        counts = {action: 0 for action in IngestAction}
        for outcome in outcomes:
            counts[outcome.action] += 1
        return cls(
            total=len(outcomes),
            created=counts[IngestAction.CREATED],
            updated=counts[IngestAction.UPDATED],
            unchanged=counts[IngestAction.UNCHANGED],
            skipped=counts[IngestAction.SKIPPED],
            failed=counts[IngestAction.FAILED],
            failures=[o for o in outcomes if o.action == IngestAction.FAILED],
        )


class RejectedLibrary(BaseModel):
    id: str
    name: str
    reason: str


class ValidationReport(BaseModel):
    total: int = 0
    processed: int = 0
    valid: int = 0
    rejected: int = 0
    errors: int = 0
    rejected_libraries: List[RejectedLibrary] = Field(default_factory=list)
