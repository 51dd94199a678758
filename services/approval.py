"""
Two-tier approval state machine and the reviewer-facing session around it.

Stage 1 is decided by a manager-tier reviewer. Loans at or above the threshold need a
stage 2 decision by a final approver; below it the second stage does not exist and
the loan is approved as soon as stage 1 is. A decided stage is never re-opened: a sent
back loan comes back through resubmit() as a fresh pass through both stages.
"""
from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

from pydantic import ValidationError

from exceptions import AuthorizationError, InvalidTransitionError, SubmissionError
from schemas.approval import (
    DEFAULT_SECOND_APPROVAL_THRESHOLD,
    ActionOutcome,
    ApprovalAction,
    ApprovalStage,
    LoanApprovalItem,
    LoanStatus,
    StageStatus,
)
from schemas.loan import (
    LOAN_STATUS_APPROVED,
    LOAN_STATUS_PENDING_1ST,
    LOAN_STATUS_PENDING_2ND,
    LOAN_STATUS_SENT_BACK,
    RESUBMITTED_LOAN_STEP,
    LoanRecord,
)
from services.permissions import PermissionSet
from utils.log import get_logger

logger = get_logger(__name__)

DEFAULT_OVERDUE_AFTER = timedelta(hours=1)

_PENDING_STATUS = {
    ApprovalStage.FIRST: LoanStatus.PENDING_1ST,
    ApprovalStage.SECOND: LoanStatus.PENDING_2ND,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def approval_item_from_record(
    record: LoanRecord,
    threshold: Decimal | int = DEFAULT_SECOND_APPROVAL_THRESHOLD,
) -> LoanApprovalItem:
    """Project a backend loan (status, approval_level, approve_history) into an approval item."""
    amount = Decimal(record.approved_amount or 0)
    needs_second = amount >= Decimal(threshold)
    level = record.approval_level or 0
    second: Optional[StageStatus] = StageStatus.PENDING if needs_second else None

    if record.status == LOAN_STATUS_APPROVED:
        status = LoanStatus.APPROVED
        first = StageStatus.APPROVED
        if needs_second:
            second = StageStatus.APPROVED
    elif record.status == LOAN_STATUS_PENDING_2ND:
        status = LoanStatus.PENDING_2ND
        first = StageStatus.APPROVED
    elif record.status == LOAN_STATUS_SENT_BACK:
        status = LoanStatus.SENT_BACK
        if level >= 1 and needs_second:
            first = StageStatus.APPROVED
            second = StageStatus.SENT_BACK
        else:
            first = StageStatus.SENT_BACK
    else:
        status = LoanStatus.PENDING_1ST
        first = StageStatus.PENDING

    history = record.approve_history
    first_mark = history.first if history else None
    second_mark = history.second if history else None
    sent_back_mark = None
    if status is LoanStatus.SENT_BACK:
        sent_back_mark = second_mark if second is StageStatus.SENT_BACK else first_mark
    customer = record.customer
    staff = record.staff

    return LoanApprovalItem.build(
        threshold,
        id=str(record.id),
        serial_no=int(record.id) if str(record.id).isdigit() else 0,
        contract_no=record.loan_id or "",
        customer_name=(customer.full_name if customer else None) or "N/A",
        nic=(customer.customer_code if customer else None) or "N/A",
        loan_amount=amount,
        staff=(staff.full_name or staff.user_name if staff else None) or "N/A",
        submitted_at=record.created_at,
        status=status,
        first_approval=first,
        second_approval=second,
        first_approval_by=first_mark.name if first_mark else None,
        first_approval_at=first_mark.at if first_mark else None,
        second_approval_by=second_mark.name if second_mark else None,
        second_approval_at=second_mark.at if second_mark else None,
        sent_back_by=sent_back_mark.name if sent_back_mark else None,
        sent_back_at=sent_back_mark.at if sent_back_mark else None,
        rejection_reason=record.rejection_reason,
        submission_round=2 if record.loan_step == RESUBMITTED_LOAN_STEP else 1,
        loan_details=record,
    )


class ApprovalStateMachine:
    def __init__(
        self,
        capabilities: PermissionSet,
        threshold: Decimal | int = DEFAULT_SECOND_APPROVAL_THRESHOLD,
        clock: Callable[[], datetime] = _utcnow,
        overdue_after: timedelta = DEFAULT_OVERDUE_AFTER,
    ) -> None:
        self.capabilities = capabilities
        self.threshold = Decimal(threshold)
        self.clock = clock
        self.overdue_after = overdue_after

    def requires_second_approval(self, amount: Decimal | int | float) -> bool:
        return Decimal(str(amount)) >= self.threshold

    def open_item(self, id: str, loan_amount: Decimal | int, **fields: Any) -> LoanApprovalItem:
        """A freshly submitted loan: stage 1 pending, stage 2 pending only above the threshold."""
        amount = Decimal(loan_amount)
        fields.setdefault("submitted_at", self.clock())
        return LoanApprovalItem.build(
            self.threshold,
            id=str(id),
            loan_amount=amount,
            status=LoanStatus.PENDING_1ST,
            first_approval=StageStatus.PENDING,
            second_approval=StageStatus.PENDING if self.requires_second_approval(amount) else None,
            **fields,
        )

    def can_decide(self, stage: ApprovalStage) -> bool:
        if ApprovalStage(stage) is ApprovalStage.FIRST:
            return self.capabilities.is_manager
        return self.capabilities.is_final_approver

    def available_actions(self, item: LoanApprovalItem) -> list[tuple[ApprovalStage, ApprovalAction]]:
        """Decisions the current reviewer may take on ``item``; empty when none apply."""
        for stage, pending in _PENDING_STATUS.items():
            if item.status is pending and item.stage_status(stage) is StageStatus.PENDING and self.can_decide(stage):
                return [(stage, ApprovalAction.APPROVE), (stage, ApprovalAction.SEND_BACK)]
        return []

    def _check(self, item: LoanApprovalItem, stage: ApprovalStage) -> ApprovalStage:
        stage = ApprovalStage(stage)
        if not self.can_decide(stage):
            raise AuthorizationError(f"You are not allowed to take the {stage.value} approval decision")
        if item.stage_status(stage) is None:
            raise InvalidTransitionError(f"Loan {item.id} has no second approval stage")
        if item.stage_status(stage) is not StageStatus.PENDING:
            raise InvalidTransitionError(f"The {stage.value} approval of loan {item.id} has already been decided")
        if item.status is not _PENDING_STATUS[stage]:
            raise InvalidTransitionError(f"Loan {item.id} is {item.status.value}, not awaiting its {stage.value} approval")
        return stage

    def approve(self, item: LoanApprovalItem, stage: ApprovalStage, actor: str) -> LoanApprovalItem:
        stage = self._check(item, stage)
        now = self.clock()
        if stage is ApprovalStage.FIRST:
            status = LoanStatus.APPROVED if item.second_approval is None else LoanStatus.PENDING_2ND
            updated = item.evolve(
                self.threshold,
                first_approval=StageStatus.APPROVED,
                first_approval_by=actor,
                first_approval_at=now,
                status=status,
            )
        else:
            updated = item.evolve(
                self.threshold,
                second_approval=StageStatus.APPROVED,
                second_approval_by=actor,
                second_approval_at=now,
                status=LoanStatus.APPROVED,
            )
        logger.info("Loan %s %s approval by %s -> %s", item.id, stage.value, actor, updated.status.value)
        return updated

    def send_back(self, item: LoanApprovalItem, stage: ApprovalStage, actor: str, reason: str) -> LoanApprovalItem:
        stage = self._check(item, stage)
        if not (reason or "").strip():
            raise InvalidTransitionError("A reason is required to send a loan back")
        now = self.clock()
        stage_field = "first_approval" if stage is ApprovalStage.FIRST else "second_approval"
        updated = item.evolve(
            self.threshold,
            **{stage_field: StageStatus.SENT_BACK},
            status=LoanStatus.SENT_BACK,
            sent_back_by=actor,
            sent_back_at=now,
            rejection_reason=reason.strip(),
        )
        logger.info("Loan %s sent back at %s approval by %s", item.id, stage.value, actor)
        return updated

    def resubmit(self, item: LoanApprovalItem, loan_amount: Optional[Decimal | int] = None) -> LoanApprovalItem:
        """Start a new pass through both stages for a corrected, sent-back loan."""
        if item.status is not LoanStatus.SENT_BACK:
            raise InvalidTransitionError(f"Only sent back loans can be resubmitted (loan {item.id} is {item.status.value})")
        amount = Decimal(loan_amount) if loan_amount is not None else item.loan_amount
        updated = item.evolve(
            self.threshold,
            loan_amount=amount,
            status=LoanStatus.PENDING_1ST,
            first_approval=StageStatus.PENDING,
            second_approval=StageStatus.PENDING if self.requires_second_approval(amount) else None,
            first_approval_by=None,
            first_approval_at=None,
            second_approval_by=None,
            second_approval_at=None,
            submitted_at=self.clock(),
            submission_round=item.submission_round + 1,
        )
        logger.info("Loan %s resubmitted (round %d)", item.id, updated.submission_round)
        return updated

    def is_overdue(self, item: LoanApprovalItem, now: Optional[datetime] = None) -> bool:
        """Advisory only: a pending item waiting longer than the overdue window."""
        if item.status not in (LoanStatus.PENDING_1ST, LoanStatus.PENDING_2ND) or item.submitted_at is None:
            return False
        now = now or self.clock()
        submitted = item.submitted_at
        if submitted.tzinfo is None and now.tzinfo is not None:
            submitted = submitted.replace(tzinfo=timezone.utc)
        return now - submitted > self.overdue_after


class ApprovalReviewSession:
    """A reviewer's view of the approval queue, refreshed from the backend."""

    def __init__(self, gateway, machine: ApprovalStateMachine) -> None:
        self.gateway = gateway
        self.machine = machine
        self.items: list[LoanApprovalItem] = []
        self.error: Optional[str] = None
        self.is_processing = False
        self._poll_task: Optional[asyncio.Task] = None

    async def refresh(self) -> list[LoanApprovalItem]:
        try:
            records = await self.gateway.list_loans(status="all_statuses", per_page=100)
        except (SubmissionError, ValidationError) as exc:
            logger.warning("Failed to fetch loan approvals: %s", exc)
            self.error = "Failed to fetch loan approvals"
            return self.items

        items = []
        for record in records:
            if record.status not in (LOAN_STATUS_PENDING_1ST, LOAN_STATUS_PENDING_2ND):
                continue
            try:
                items.append(approval_item_from_record(record, self.machine.threshold))
            except ValidationError as exc:
                logger.warning("Skipping loan %s with inconsistent approval state: %s", record.id, exc)
        self.items = items
        self.error = None
        return items

    async def fetch_sent_back(self) -> list[LoanApprovalItem]:
        """Loans returned for correction, with the reason and who sent them back."""
        try:
            records = await self.gateway.list_loans(status=LOAN_STATUS_SENT_BACK, per_page=100)
        except ValidationError as exc:
            logger.warning("Unreadable sent back loans from the backend: %s", exc)
            raise SubmissionError("Failed to fetch sent back loans") from exc

        items = []
        for record in records:
            if record.status != LOAN_STATUS_SENT_BACK:
                continue
            try:
                items.append(approval_item_from_record(record, self.machine.threshold))
            except ValidationError as exc:
                logger.warning("Skipping sent back loan %s with inconsistent approval state: %s", record.id, exc)
        return items

    def filtered(self, search: str = "", status: str = "all") -> list[LoanApprovalItem]:
        term = (search or "").lower()
        return [
            item for item in self.items
            if (
                term in item.contract_no.lower()
                or term in item.customer_name.lower()
                or term in item.nic.lower()
            )
            and (status == "all" or item.status.value == status)
        ]

    def view(self, loan_id: str) -> Optional[LoanApprovalItem]:
        return next((item for item in self.items if item.id == str(loan_id)), None)

    async def decide(
        self,
        loan_id: str,
        stage: ApprovalStage,
        action: ApprovalAction,
        reason: str = "",
        actor: str = "",
    ) -> ActionOutcome:
        if self.is_processing:
            return ActionOutcome(success=False, message="Another decision is still being processed.")
        item = self.view(loan_id)
        if item is None:
            return ActionOutcome(success=False, message=f"Loan {loan_id} is not awaiting approval.")

        action = ApprovalAction(action)
        stage = ApprovalStage(stage)
        try:
            if action is ApprovalAction.APPROVE:
                expected = self.machine.approve(item, stage, actor)
            else:
                expected = self.machine.send_back(item, stage, actor, reason)
        except InvalidTransitionError as exc:
            return ActionOutcome(success=False, message=str(exc))

        self.is_processing = True
        try:
            await self.gateway.approve_loan(item.id, action, reason or None)
        except SubmissionError as exc:
            return ActionOutcome(success=False, message=f"Failed to process approval: {exc}", retryable=True)
        finally:
            self.is_processing = False

        await self.refresh()
        if action is ApprovalAction.SEND_BACK:
            message = "Loan sent back for correction"
        elif stage is ApprovalStage.SECOND:
            message = "Final approval successful"
        else:
            message = "Loan approved successfully"
        return ActionOutcome(success=True, message=message, item=expected)

    def start_polling(self, interval: float) -> asyncio.Task:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll(interval))
        return self._poll_task

    async def _poll(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            await self.refresh()

    async def close(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
