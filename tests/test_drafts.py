"""
Tests for the local draft store (in-memory SQLite through aiosqlite).
Run from project root: python -m pytest tests/test_drafts.py -v
Or: python -m unittest tests.test_drafts -v
"""
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database import init_db
from exceptions import DraftNotFoundError
from services.drafts import DraftStore, generate_draft_name
from tests.factories import make_file, valid_draft


class StepClock:
    """Deterministic clock: each call is one second after the previous one."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class DraftStoreTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        await init_db(self.engine)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)
        self.clock = StepClock()
        self.store = self.make_store()

    async def asyncTearDown(self):
        await self.engine.dispose()

    def make_store(self, **kwargs) -> DraftStore:
        kwargs.setdefault("clock", self.clock)
        kwargs.setdefault("owner_id", "STF001")
        return DraftStore(self.session_factory, **kwargs)


class TestDraftStore(DraftStoreTestCase):
    async def test_round_trip_restores_draft_and_step(self):
        """Loading a saved draft yields an equal draft and the saved step."""
        draft = valid_draft(documents={"Guardian NIC": make_file("guardian.png", "image/png", size=300)})
        saved = await self.store.save(draft, 2, name="Nimal Perera")
        self.assertTrue(saved.success)
        self.assertEqual(saved.message, "Draft saved successfully")
        self.assertTrue(saved.draft.id.startswith("draft-"))

        loaded = await self.store.load(saved.draft.id)
        self.assertTrue(loaded.success)
        self.assertEqual(loaded.message, 'Draft "Nimal Perera" loaded')
        self.assertEqual(loaded.draft.current_step, 2)
        self.assertEqual(loaded.draft.snapshot, draft)
        self.assertEqual(loaded.draft.snapshot.documents["Guardian NIC"].size, 300)
        self.assertEqual(loaded.draft.snapshot.guarantor2.name, "Kamal Silva")
        self.assertEqual(loaded.draft.snapshot.approved_amount, Decimal(100_000))

    async def test_saving_same_id_twice_keeps_one_entry(self):
        draft = valid_draft()
        first = await self.store.save(draft, 2, name="Nimal Perera")
        second = await self.store.save(draft, 2, name="Nimal Perera", draft_id=first.draft.id)
        third = await self.store.save(draft, 2, name="Nimal Perera", draft_id=first.draft.id)

        self.assertEqual(second.draft.id, first.draft.id)
        self.assertEqual(third.draft, second.draft)
        drafts = await self.store.list()
        self.assertEqual(len(drafts), 1)
        self.assertEqual(drafts[0].snapshot, draft)

    async def test_update_replaces_content(self):
        first = await self.store.save(valid_draft(), 1, name="Nimal Perera")
        changed = valid_draft(bank_branch="Matara")
        updated = await self.store.save(changed, 3, name="Nimal Perera", draft_id=first.draft.id)

        self.assertEqual(updated.draft.current_step, 3)
        drafts = await self.store.list()
        self.assertEqual(len(drafts), 1)
        self.assertEqual(drafts[0].snapshot.bank_branch, "Matara")
        self.assertEqual(drafts[0].current_step, 3)

    async def test_list_is_newest_first(self):
        for name in ("first", "second", "third"):
            await self.store.save(valid_draft(), 1, name=name)
        self.assertEqual([d.name for d in await self.store.list()], ["third", "second", "first"])

    async def test_oldest_drafts_pruned_beyond_cap(self):
        store = self.make_store(max_drafts=3)
        for i in range(5):
            await store.save(valid_draft(), 1, name=f"draft {i}")
        self.assertEqual([d.name for d in await store.list()], ["draft 4", "draft 3", "draft 2"])

    async def test_resaving_moves_draft_to_front(self):
        oldest = await self.store.save(valid_draft(), 1, name="oldest")
        await self.store.save(valid_draft(), 1, name="newer")
        await self.store.save(valid_draft(), 2, name="oldest", draft_id=oldest.draft.id)
        self.assertEqual([d.name for d in await self.store.list()], ["oldest", "newer"])

    async def test_delete(self):
        saved = await self.store.save(valid_draft(), 1, name="Nimal Perera")
        deleted = await self.store.delete(saved.draft.id)
        self.assertTrue(deleted.success)
        self.assertEqual(deleted.message, "Draft deleted")

        missing = await self.store.load(saved.draft.id)
        self.assertFalse(missing.success)
        self.assertEqual(missing.message, "Draft not found")
        again = await self.store.delete(saved.draft.id)
        self.assertFalse(again.success)
        self.assertEqual(again.message, "Draft not found")

    async def test_get_unknown_raises(self):
        with self.assertRaises(DraftNotFoundError):
            await self.store.get("draft-missing")

    async def test_namespaces_are_isolated(self):
        other = self.make_store(namespace="customerCreation")
        saved = await self.store.save(valid_draft(), 1, name="loan draft")
        self.assertEqual(await other.list(), [])
        self.assertFalse((await other.load(saved.draft.id)).success)
        self.assertEqual(len(await self.store.list()), 1)

    async def test_owners_do_not_see_or_prune_each_others_drafts(self):
        mine = await self.store.save(valid_draft(), 2, name="mine")
        theirs = self.make_store(owner_id="STF777", max_drafts=3)

        self.assertEqual(await theirs.list(), [])
        self.assertFalse((await theirs.load(mine.draft.id)).success)
        self.assertFalse((await theirs.delete(mine.draft.id)).success)

        for i in range(5):
            await theirs.save(valid_draft(), 1, name=f"theirs {i}")
        self.assertEqual(len(await theirs.list()), 3)
        self.assertEqual([d.name for d in await self.store.list()], ["mine"])
        self.assertEqual((await self.store.get(mine.draft.id)).owner_id, "STF001")

    async def test_foreign_draft_id_starts_a_new_entry(self):
        mine = await self.store.save(valid_draft(), 2, name="mine")
        theirs = self.make_store(owner_id="STF777")
        saved = await theirs.save(valid_draft(bank_branch="Matara"), 1, name="theirs", draft_id=mine.draft.id)

        self.assertTrue(saved.success)
        self.assertNotEqual(saved.draft.id, mine.draft.id)
        self.assertEqual((await self.store.get(mine.draft.id)).snapshot.bank_branch, valid_draft().bank_branch)

    async def test_default_name(self):
        saved = await self.store.save(valid_draft(), 1)
        self.assertEqual(saved.draft.name, "NIC 198812345678")


class TestDraftNames(unittest.TestCase):
    def test_name_fallbacks(self):
        self.assertEqual(generate_draft_name("Nimal Perera - 1988", "198812345678", "C1"), "Nimal Perera - 1988")
        self.assertEqual(generate_draft_name(None, "198812345678", "C1"), "NIC 198812345678")
        self.assertEqual(generate_draft_name("", "", "C1"), "C1")
        self.assertEqual(generate_draft_name(None, "", ""), "Untitled draft")


if __name__ == "__main__":
    unittest.main()
