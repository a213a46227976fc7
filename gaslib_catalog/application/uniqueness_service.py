import asyncio

from gaslib_catalog.domain.exceptions import DuplicateRepositoryUrl, DuplicateScriptId
from gaslib_catalog.infrastructure.database import PostgresLibraryRepository


class UniquenessService:
    """
    Application-level duplicate check run before a new library is created.
    The table's unique constraints remain the final authority for racing inserts.
    """

    def __init__(self, library_store: PostgresLibraryRepository):
        self.library_store = library_store

    async def ensure_unique(self, script_id: str, repository_url: str) -> None:
        """
        Raises:
            DuplicateScriptId: If any record already uses `script_id`.
            DuplicateRepositoryUrl: If any record already points at `repository_url`.
        """
        by_script_id, by_repository_url = await asyncio.gather(
            self.library_store.find_by_script_id(script_id),
            self.library_store.find_by_repository_url(repository_url),
        )

        if by_script_id is not None:
            raise DuplicateScriptId()
        if by_repository_url is not None:
            raise DuplicateRepositoryUrl()
