import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import create_async_engine

from gaslib_catalog.domain.exceptions import DuplicateRepositoryUrl, DuplicateScriptId, LibraryNotFound
from gaslib_catalog.domain.models import LibraryRecord, LibraryStatus

logger = logging.getLogger(__name__)

SCRIPT_ID_CONSTRAINT = "uq_library_script_id"
REPOSITORY_URL_CONSTRAINT = "uq_library_repository_url"

# SQLAlchemy core Table definition
metadata = MetaData()
library_table = Table(
    'library', metadata,
    Column('id', String, primary_key=True),
    Column('name', String, nullable=False),
    Column('script_id', String, nullable=False),
    Column('repository_url', String, nullable=False),
    Column('author_name', String, nullable=False),
    Column('author_url', String, nullable=False),
    Column('description', Text, nullable=False, server_default=text("''")),
    Column('readme', Text, nullable=False, server_default=text("''")),
    Column('license_type', String, nullable=False),
    Column('license_url', String, nullable=False),
    Column('star_count', Integer, nullable=False, server_default=text('0')),
    Column('copy_count', Integer, nullable=False, server_default=text('0')),
    Column('status', String, nullable=False, server_default=text("'pending'")),
    Column('script_type', String, nullable=False, server_default=text("'library'")),
    Column('last_commit_at', DateTime(timezone=True), nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False, server_default=text('NOW()')),
    Column('updated_at', DateTime(timezone=True), nullable=False, server_default=text('NOW()')),
    # Final authority on uniqueness: concurrent inserts of the same library cannot both succeed.
    UniqueConstraint('script_id', name=SCRIPT_ID_CONSTRAINT),
    UniqueConstraint('repository_url', name=REPOSITORY_URL_CONSTRAINT),
)

# Columns ingestion may overwrite on an existing record.
UPDATABLE_COLUMNS = frozenset({
    'name', 'repository_url', 'author_name', 'author_url', 'description', 'readme',
    'license_type', 'license_url', 'star_count', 'last_commit_at', 'status', 'script_type',
})


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _translate_integrity_error(error: IntegrityError) -> Optional[Exception]:
    detail = str(error.orig)
    if SCRIPT_ID_CONSTRAINT in detail:
        return DuplicateScriptId()
    if REPOSITORY_URL_CONSTRAINT in detail:
        return DuplicateRepositoryUrl()
    return None


class PostgresLibraryRepository:
    """
    Repository class for the `library` table in PostgreSQL.
    Every write is a single-row insert or update scoped by a unique key.
    """

    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url, echo=False)

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def _find_one(self, column, value: str) -> Optional[LibraryRecord]:
        stmt = select(library_table).where(column == value).limit(1)
        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
            row = result.mappings().first()
        return LibraryRecord.model_validate(dict(row)) if row else None

    async def find_by_id(self, library_id: str) -> Optional[LibraryRecord]:
        return await self._find_one(library_table.c.id, library_id)

    async def find_by_script_id(self, script_id: str) -> Optional[LibraryRecord]:
        return await self._find_one(library_table.c.script_id, script_id)

    async def find_by_repository_url(self, repository_url: str) -> Optional[LibraryRecord]:
        return await self._find_one(library_table.c.repository_url, repository_url)

    async def list_active(self) -> List[LibraryRecord]:
        """Returns every record that has not been rejected, oldest first."""
        stmt = (
            select(library_table)
            .where(library_table.c.status != LibraryStatus.REJECTED.value)
            .order_by(library_table.c.created_at)
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
            rows = result.mappings().all()
        return [LibraryRecord.model_validate(dict(row)) for row in rows]

    async def create(self, record: LibraryRecord) -> LibraryRecord:
        """
        Inserts a new record and returns the stored row with server-assigned timestamps.

        Raises:
            DuplicateScriptId / DuplicateRepositoryUrl: If a unique constraint rejects the row.
        """
        values = {
            key: _column_value(value)
            for key, value in record.model_dump(exclude={'created_at', 'updated_at'}).items()
        }
        stmt = insert(library_table).values(values).returning(library_table)

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
                row = result.mappings().one()
        except IntegrityError as e:
            translated = _translate_integrity_error(e)
            if translated is None:
                raise
            logger.warning(f"Unique constraint rejected {record.repository_url}: {translated}")
            raise translated from e

        return LibraryRecord.model_validate(dict(row))

    async def update(self, library_id: str, changes: Dict[str, Any]) -> LibraryRecord:
        """
        Updates the given columns of one record and refreshes `updated_at`.

        Raises:
            LibraryNotFound: If no record has `library_id`.
        """
        values = {key: _column_value(value) for key, value in changes.items() if key in UPDATABLE_COLUMNS}
        stmt = (
            update(library_table)
            .where(library_table.c.id == library_id)
            .values(**values, updated_at=func.now())
            .returning(library_table)
        )

        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
                row = result.mappings().first()
        except IntegrityError as e:
            translated = _translate_integrity_error(e)
            if translated is None:
                raise
            raise translated from e

        if row is None:
            raise LibraryNotFound(f"Library not found for update: {library_id}")
        return LibraryRecord.model_validate(dict(row))

    async def set_status(self, library_id: str, status: LibraryStatus) -> LibraryRecord:
        return await self.update(library_id, {'status': status})
