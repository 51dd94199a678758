"""
Local store for partially completed loan applications.

Drafts live in this service's own database, scoped to the staff member who saved them
and namespaced per application type, and are never sent to the core banking backend.
The store keeps at most ``max_drafts`` per owner and namespace (oldest pruned first)
and only writes when explicitly asked to.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from exceptions import DraftNotFoundError
from models import SavedDraftRecord
from schemas.application import LoanApplicationDraft
from schemas.draft import DraftResult, SavedDraft
from utils.log import get_logger

logger = get_logger(__name__)

DEFAULT_NAMESPACE = "loanCreation"
DEFAULT_MAX_DRAFTS = 10


def generate_draft_name(display_name: Optional[str], nic: str, customer_id: str) -> str:
    if display_name:
        return display_name
    if nic:
        return f"NIC {nic}"
    return customer_id or "Untitled draft"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_saved_draft(row: SavedDraftRecord) -> SavedDraft:
    return SavedDraft(
        id=row.id,
        name=row.name,
        saved_at=row.saved_at,
        current_step=row.current_step,
        namespace=row.namespace,
        owner_id=row.owner_id,
        snapshot=LoanApplicationDraft.model_validate_json(row.snapshot),
    )


class DraftStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        namespace: str = DEFAULT_NAMESPACE,
        max_drafts: int = DEFAULT_MAX_DRAFTS,
        clock: Callable[[], datetime] = _utcnow,
        owner_id: str = "",
    ) -> None:
        self._session_factory = session_factory
        self.owner_id = owner_id
        self.namespace = namespace
        self.max_drafts = max_drafts
        self._clock = clock

    async def list(self) -> list[SavedDraft]:
        """The owner's saved drafts in this namespace, newest first. Unreadable snapshots are skipped."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(SavedDraftRecord)
                .where(*self._scope())
                .order_by(SavedDraftRecord.saved_at.desc())
            )
            rows = result.scalars().all()

        drafts = []
        for row in rows:
            try:
                drafts.append(_to_saved_draft(row))
            except ValidationError:
                logger.warning("Skipping unreadable draft %s", row.id)
        return drafts

    async def get(self, draft_id: str) -> SavedDraft:
        async with self._session_factory() as session:
            row = await self._find(session, draft_id)
        if row is None:
            raise DraftNotFoundError(f"Draft {draft_id} not found")
        return _to_saved_draft(row)

    async def save(
        self,
        draft: LoanApplicationDraft,
        step: int,
        name: Optional[str] = None,
        draft_id: Optional[str] = None,
    ) -> DraftResult:
        """
        Persist ``draft`` at ``step``. Without ``draft_id`` a new entry is created;
        with one, that entry is replaced (left untouched when nothing changed). An id
        that does not belong to this owner starts a new entry.
        """
        name = name or generate_draft_name(None, draft.nic, draft.customer_id)
        snapshot = draft.model_dump_json()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await self._find(session, draft_id) if draft_id else None
                    if row is None:
                        row = SavedDraftRecord(
                            id=f"draft-{uuid.uuid4().hex[:12]}",
                            owner_id=self.owner_id,
                            namespace=self.namespace,
                            name=name,
                            current_step=int(step),
                            snapshot=snapshot,
                            saved_at=self._clock(),
                        )
                        session.add(row)
                    elif (row.snapshot, row.name, row.current_step) != (snapshot, name, int(step)):
                        row.snapshot = snapshot
                        row.name = name
                        row.current_step = int(step)
                        row.saved_at = self._clock()
                    await session.flush()
                    await self._prune(session)
                    saved = _to_saved_draft(row)
        except SQLAlchemyError:
            logger.exception("Failed to save draft %s", draft_id or "(new)")
            return DraftResult(success=False, message="Could not save draft. Please try again.")

        logger.info("Draft %s saved at step %s (%s)", saved.id, saved.current_step, self.namespace)
        return DraftResult(success=True, message="Draft saved successfully", draft=saved)

    async def load(self, draft_id: str) -> DraftResult:
        try:
            saved = await self.get(draft_id)
        except DraftNotFoundError:
            return DraftResult(success=False, message="Draft not found")
        except ValidationError:
            logger.warning("Draft %s has an unreadable snapshot", draft_id)
            return DraftResult(success=False, message="Draft could not be read")
        return DraftResult(success=True, message=f'Draft "{saved.name}" loaded', draft=saved)

    async def delete(self, draft_id: str) -> DraftResult:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(SavedDraftRecord).where(SavedDraftRecord.id == draft_id, *self._scope())
                    )
        except SQLAlchemyError:
            logger.exception("Failed to delete draft %s", draft_id)
            return DraftResult(success=False, message="Could not delete draft. Please try again.")

        if not result.rowcount:
            return DraftResult(success=False, message="Draft not found")
        logger.info("Draft %s deleted", draft_id)
        return DraftResult(success=True, message="Draft deleted")

    async def _find(self, session: AsyncSession, draft_id: str) -> Optional[SavedDraftRecord]:
        result = await session.execute(
            select(SavedDraftRecord).where(SavedDraftRecord.id == draft_id, *self._scope())
        )
        return result.scalar_one_or_none()

    def _scope(self) -> tuple:
        return (
            SavedDraftRecord.owner_id == self.owner_id,
            SavedDraftRecord.namespace == self.namespace,
        )

    async def _prune(self, session: AsyncSession) -> None:
        result = await session.execute(
            select(SavedDraftRecord.id)
            .where(*self._scope())
            .order_by(SavedDraftRecord.saved_at.desc())
            .offset(self.max_drafts)
        )
        stale = list(result.scalars().all())
        if stale:
            await session.execute(delete(SavedDraftRecord).where(SavedDraftRecord.id.in_(stale)))
            logger.info("Pruned %d old draft(s) of %s from %s", len(stale), self.owner_id, self.namespace)
