import logging
from datetime import datetime, timedelta, timezone

from gaslib_catalog.domain.models import CommitStatus
from gaslib_catalog.infrastructure.database import PostgresLibraryRepository

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_millis(value: datetime) -> int:
    """Milliseconds since the epoch; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // timedelta(milliseconds=1)


def commit_changed(stored: datetime, fetched: datetime) -> bool:
    return to_millis(stored) != to_millis(fetched)


class CommitStatusService:
    """
    Decides whether a freshly scraped repository needs a write.
    This is the only gate for re-scrapes, so unchanged repositories cause no update.
    """

    def __init__(self, library_store: PostgresLibraryRepository):
        self.library_store = library_store

    async def check(self, repository_url: str, last_commit_at: datetime) -> CommitStatus:
        existing = await self.library_store.find_by_repository_url(repository_url)
        if existing is None:
            return CommitStatus(is_new=True, should_update=True)

        should_update = commit_changed(existing.last_commit_at, last_commit_at)
        logger.debug(
            f"{repository_url}: stored commit {existing.last_commit_at.isoformat()}, "
            f"fetched {last_commit_at.isoformat()}, update={should_update}."
        )
        return CommitStatus(is_new=False, should_update=should_update, library_id=existing.id)
