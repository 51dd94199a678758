"""
Approval-facing projection of a submitted loan.

The backend owns the canonical record; LoanApprovalItem is the read model a reviewer
session holds. Its validator rejects any combination of stage states that the
two-tier workflow can never produce.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationInfo, model_validator

from schemas.loan import LoanRecord

DEFAULT_SECOND_APPROVAL_THRESHOLD = Decimal(200_000)


class LoanStatus(str, Enum):
    PENDING_1ST = "Pending 1st"
    PENDING_2ND = "Pending 2nd"
    APPROVED = "Approved"
    SENT_BACK = "Sent Back"


class StageStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    SENT_BACK = "Sent Back"


class ApprovalStage(str, Enum):
    FIRST = "first"
    SECOND = "second"


class ApprovalAction(str, Enum):
    APPROVE = "approve"
    SEND_BACK = "send_back"


class LoanApprovalItem(BaseModel):
    id: str
    serial_no: int = 0
    contract_no: str = ""
    customer_name: str = ""
    nic: str = ""
    loan_amount: Decimal
    staff: str = ""
    submitted_at: Optional[datetime] = None
    status: LoanStatus = LoanStatus.PENDING_1ST
    first_approval: StageStatus = StageStatus.PENDING
    second_approval: Optional[StageStatus] = None
    first_approval_by: Optional[str] = None
    first_approval_at: Optional[datetime] = None
    second_approval_by: Optional[str] = None
    second_approval_at: Optional[datetime] = None
    sent_back_by: Optional[str] = None
    sent_back_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    submission_round: int = 1
    loan_details: Optional[LoanRecord] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_stage_consistency(self, info: ValidationInfo) -> "LoanApprovalItem":
        context = info.context or {}
        threshold = Decimal(context.get("second_approval_threshold", DEFAULT_SECOND_APPROVAL_THRESHOLD))
        needs_second = self.loan_amount >= threshold
        if needs_second and self.second_approval is None:
            raise ValueError(f"Loans of {threshold} or more need a second approval stage")
        if not needs_second and self.second_approval is not None:
            raise ValueError(f"Loans below {threshold} have no second approval stage")

        if self.status is LoanStatus.APPROVED:
            if self.first_approval is not StageStatus.APPROVED:
                raise ValueError("An approved loan must have its first approval")
            if self.second_approval not in (StageStatus.APPROVED, None):
                raise ValueError("An approved loan must have its second approval when one applies")
        elif self.status is LoanStatus.PENDING_2ND:
            if self.first_approval is not StageStatus.APPROVED or self.second_approval is not StageStatus.PENDING:
                raise ValueError("Pending 2nd requires an approved first stage and a pending second stage")
        elif self.status is LoanStatus.PENDING_1ST:
            if self.first_approval is not StageStatus.PENDING:
                raise ValueError("Pending 1st requires a pending first stage")
        elif self.status is LoanStatus.SENT_BACK:
            if StageStatus.SENT_BACK not in (self.first_approval, self.second_approval):
                raise ValueError("A sent back loan must have a sent back stage")
        return self

    @classmethod
    def build(cls, threshold: Decimal | int, **data: Any) -> "LoanApprovalItem":
        return cls.model_validate(data, context={"second_approval_threshold": threshold})

    def evolve(self, threshold: Decimal | int, **changes: Any) -> "LoanApprovalItem":
        """Return a revalidated copy with ``changes`` applied."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self).build(threshold, **data)

    def stage_status(self, stage: ApprovalStage) -> Optional[StageStatus]:
        return self.first_approval if stage is ApprovalStage.FIRST else self.second_approval


class ActionOutcome(BaseModel):
    success: bool
    message: str = ""
    item: Optional[LoanApprovalItem] = None
    # The backend failed; the same decision may be tried again
    retryable: bool = False
