from __future__ import annotations

from enum import IntEnum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from schemas.application import LoanApplicationDraft
from schemas.validation import EligibilityBlocked, StepError

__all__ = [
    "DocumentOutcome",
    "EligibilityBlocked",
    "NavigationResult",
    "StepError",
    "SubmissionResult",
    "WizardState",
    "WizardStep",
]


class WizardStep(IntEnum):
    CUSTOMER_SELECTION = 1
    LOAN_DETAILS = 2
    DOCUMENTS = 3
    REVIEW_SUBMIT = 4


STEP_TITLES = {
    WizardStep.CUSTOMER_SELECTION: "Customer Selection",
    WizardStep.LOAN_DETAILS: "Loan Details",
    WizardStep.DOCUMENTS: "Documents",
    WizardStep.REVIEW_SUBMIT: "Review & Submit",
}


class NavigationResult(BaseModel):
    moved: bool
    step: WizardStep
    error: Optional[StepError] = None


class DocumentOutcome(BaseModel):
    type: str
    success: bool
    message: str = ""


class SubmissionResult(BaseModel):
    success: bool
    message: str = ""
    loan_id: Optional[str] = None
    error: Optional[StepError] = None
    documents: list[DocumentOutcome] = Field(default_factory=list)

    @property
    def failed_documents(self) -> list[str]:
        return [d.type for d in self.documents if not d.success]


class WizardState(BaseModel):
    """Serializable view of a wizard session."""

    step: WizardStep
    step_title: str
    mode: Literal["create", "edit"]
    edit_id: Optional[str] = None
    draft: LoanApplicationDraft
    is_dirty: bool
    is_submitting: bool
    show_step3_errors: bool
    reloan_blocked: bool
    eligibility: Optional[EligibilityBlocked] = None
    locked_fields: list[str] = Field(default_factory=list)
    active_draft_id: Optional[str] = None
    created_loan_id: Optional[str] = None
    offer_draft_deletion: Optional[str] = None
    can_submit: bool = False
    submitted: bool = False
    # Leaving now would discard unsaved edits; off while a submission is running
    confirm_unload: bool = False
