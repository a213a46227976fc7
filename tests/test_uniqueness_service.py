import unittest

from gaslib_catalog.application.uniqueness_service import UniquenessService
from gaslib_catalog.domain.exceptions import DuplicateRepositoryUrl, DuplicateScriptId, FailureReason

from fakes import LEGACY_ID, OTHER_LEGACY_ID, FakeLibraryStore, make_record


class TestUniquenessService(unittest.IsolatedAsyncioTestCase):
    async def test_duplicate_script_id(self) -> None:
        service = UniquenessService(FakeLibraryStore([make_record()]))

        with self.assertRaises(DuplicateScriptId) as ctx:
            await service.ensure_unique(LEGACY_ID, "https://github.com/someone/fork")

        self.assertEqual(ctx.exception.reason, FailureReason.DUPLICATE_SCRIPT_ID)
        self.assertEqual(ctx.exception.message, "This script ID is already registered.")

    async def test_duplicate_repository_url(self) -> None:
        service = UniquenessService(FakeLibraryStore([make_record()]))

        with self.assertRaises(DuplicateRepositoryUrl):
            await service.ensure_unique(OTHER_LEGACY_ID, "https://github.com/octocat/gas-lib")

    async def test_script_id_is_reported_first(self) -> None:
        service = UniquenessService(FakeLibraryStore([make_record()]))

        with self.assertRaises(DuplicateScriptId):
            await service.ensure_unique(LEGACY_ID, "https://github.com/octocat/gas-lib")

    async def test_unique_pair_passes(self) -> None:
        store = FakeLibraryStore([make_record()])

        await UniquenessService(store).ensure_unique(OTHER_LEGACY_ID, "https://github.com/someone/other")

        self.assertEqual(store.lookups, 2)
