"""
Wire contract of the core banking loan endpoints.

The draft and the backend payload are separate types joined by LoanPayload.from_draft()
(and draft_from_loan_record() for the way back), so a payload change cannot leak into
the draft's invariants.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from schemas.application import LoanApplicationDraft
from schemas.documents import DocumentRef
from schemas.registry import GroupMember

NEW_LOAN_STEP = "New Loan Application"
RESUBMITTED_LOAN_STEP = "Resubmitted Loan Application"

# Backend status codes for the approval lifecycle
LOAN_STATUS_PENDING_1ST = "pending_1st"
LOAN_STATUS_PENDING_2ND = "pending_2nd"
LOAN_STATUS_APPROVED = "approved"
LOAN_STATUS_SENT_BACK = "sent_back"


class PartyRef(BaseModel):
    full_name: Optional[str] = None
    customer_code: Optional[str] = None
    user_name: Optional[str] = None


class BranchRef(BaseModel):
    branch_name: Optional[str] = None
    manager_name: Optional[str] = None


class CenterRef(BaseModel):
    id: Optional[int | str] = None
    center_name: Optional[str] = None
    branch: Optional[BranchRef] = None


class GroupRef(BaseModel):
    id: Optional[int | str] = None
    group_name: Optional[str] = None


class ApprovalMark(BaseModel):
    name: Optional[str] = None
    at: Optional[datetime] = None


class ApproveHistory(BaseModel):
    first: Optional[ApprovalMark] = None
    second: Optional[ApprovalMark] = None


class PersonDetails(BaseModel):
    name: Optional[str] = None
    nic: Optional[str] = None
    staff_id: Optional[str] = None


class BankDetails(BaseModel):
    bank_name: Optional[str] = None
    branch: Optional[str] = None
    account_number: Optional[str] = None


class LoanDocumentRecord(BaseModel):
    id: Optional[int | str] = None
    type: str
    url: Optional[str] = None
    file_path: Optional[str] = None
    file_name: Optional[str] = None


class LoanRecord(BaseModel):
    """Loan as returned by the backend (only the fields this service reads)."""

    id: Optional[int | str] = None
    loan_id: Optional[str] = None
    status: str = LOAN_STATUS_PENDING_1ST
    approval_level: int = 0
    approved_amount: Decimal = Decimal(0)
    request_amount: Optional[Decimal] = None
    interest_rate: Decimal = Decimal(0)
    terms: Optional[int] = None
    product_id: Optional[int] = None
    customer_id: Optional[int | str] = None
    customer: Optional[PartyRef] = None
    center: Optional[CenterRef] = None
    group_id: Optional[int | str] = None
    group: Optional[GroupRef] = None
    staff: Optional[PartyRef] = None
    created_at: Optional[datetime] = None
    approve_history: Optional[ApproveHistory] = None
    rejection_reason: Optional[str] = None
    loan_step: Optional[str] = None
    service_charge: Optional[Decimal] = None
    document_charge: Optional[Decimal] = None
    reloan_deduction_amount: Optional[Decimal] = None
    guardian_nic: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_relationship: Optional[str] = None
    guardian_address: Optional[str] = None
    guardian_phone: Optional[str] = None
    guardian_secondary_phone: Optional[str] = None
    guardian_dob: Optional[str] = None
    g1_details: Optional[PersonDetails] = None
    g2_details: Optional[PersonDetails] = None
    w1_details: Optional[PersonDetails] = None
    w2_details: Optional[PersonDetails] = None
    borrower_bank_details: Optional[BankDetails] = None
    monthly_income: Optional[Decimal] = None
    monthly_expenses: Optional[Decimal] = None
    documents: list[LoanDocumentRecord] = Field(default_factory=list)

    model_config = {"extra": "allow"}


class LoanPayload(BaseModel):
    """Body of POST /loans (create, or update when edit_id is set)."""

    product_id: Optional[int] = None
    csu_id: str = Field(..., alias="CSU_id")
    customer_id: str
    group_id: Optional[str] = None
    request_amount: Decimal
    approved_amount: Decimal
    terms: int
    interest_rate: Decimal
    loan_step: Literal["New Loan Application", "Resubmitted Loan Application"]
    service_charge: Decimal = Decimal(0)
    document_charge: Decimal = Decimal(0)
    guardian_nic: str
    guardian_name: str
    guardian_relationship: str
    guardian_address: str
    guardian_phone: str
    guardian_secondary_phone: str = ""
    reloan_deduction_amount: Decimal = Decimal(0)
    guarantor1_name: str
    guarantor1_nic: str
    guarantor2_name: str
    guarantor2_nic: str
    witness1_id: str
    witness2_id: str
    bank_name: str = Field(..., alias="bankName")
    bank_branch: str = Field(..., alias="bankBranch")
    account_number: str = Field(..., alias="accountNumber")
    monthly_income: Optional[Decimal] = None
    monthly_expenses: Optional[Decimal] = None
    edit_id: Optional[str] = None

    model_config = {"populate_by_name": True}

    @classmethod
    def from_draft(
        cls,
        draft: LoanApplicationDraft,
        *,
        edit_id: Optional[str] = None,
    ) -> "LoanPayload":
        """
        Map a gate-validated draft to the backend payload.
        Resubmission (edit_id set) changes the loan_step label and carries the id being edited.
        """
        g1 = draft.guarantor1
        g2 = draft.guarantor2
        return cls(
            product_id=draft.product_id,
            csu_id=draft.center_id,
            customer_id=draft.customer_id,
            group_id=draft.group_id or None,
            request_amount=draft.requested_amount or Decimal(0),
            approved_amount=draft.approved_amount or Decimal(0),
            terms=draft.tenure_weeks or 0,
            interest_rate=draft.interest_rate or Decimal(0),
            loan_step=RESUBMITTED_LOAN_STEP if edit_id else NEW_LOAN_STEP,
            service_charge=draft.processing_fee or Decimal(0),
            document_charge=draft.documentation_fee or Decimal(0),
            guardian_nic=draft.guardian_nic,
            guardian_name=draft.guardian_name,
            guardian_relationship=draft.guardian_relationship,
            guardian_address=draft.guardian_address,
            guardian_phone=draft.guardian_phone,
            guardian_secondary_phone=draft.guardian_secondary_phone,
            reloan_deduction_amount=draft.reloan_deduction_amount,
            guarantor1_name=g1.name if g1 else "",
            guarantor1_nic=g1.nic if g1 else "",
            guarantor2_name=g2.name if g2 else "",
            guarantor2_nic=g2.nic if g2 else "",
            witness1_id=draft.witness1_id,
            witness2_id=draft.witness2_id,
            bank_name=draft.bank_name,
            bank_branch=draft.bank_branch,
            account_number=draft.account_number,
            monthly_income=draft.monthly_income,
            monthly_expenses=draft.monthly_expenses,
            edit_id=edit_id,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _str(value: Any) -> str:
    return "" if value is None else str(value)


def draft_from_loan_record(
    record: LoanRecord,
    group_members: Sequence[GroupMember] = (),
) -> LoanApplicationDraft:
    """
    Rebuild a draft from a sent-back loan for edit mode.
    Without a group roster, the loan's own guarantors stand in as the group so the
    derived guarantors match what was originally submitted.
    """
    customer_id = _str(record.customer_id)
    members = tuple(group_members)
    if not members:
        members = tuple(
            GroupMember(customer_id=f"guarantor-{i}", name=g.name or "", nic=g.nic or "")
            for i, g in enumerate((record.g1_details, record.g2_details), start=1)
            if g is not None and g.name and g.nic
        )
    bank = record.borrower_bank_details or BankDetails()
    return LoanApplicationDraft(
        center_id=_str(record.center.id if record.center else None),
        group_id=_str(record.group_id),
        customer_id=customer_id,
        nic=(record.customer.customer_code if record.customer else None) or "",
        product_id=record.product_id,
        requested_amount=record.request_amount if record.request_amount is not None else record.approved_amount,
        approved_amount=record.approved_amount,
        interest_rate=record.interest_rate,
        tenure_weeks=record.terms,
        guardian_nic=record.guardian_nic or "",
        guardian_name=record.guardian_name or "",
        guardian_relationship=record.guardian_relationship or "",
        guardian_address=record.guardian_address or "",
        guardian_phone=record.guardian_phone or "",
        guardian_secondary_phone=record.guardian_secondary_phone or "",
        guardian_dob=record.guardian_dob or "",
        group_members=members,
        created_by=(record.w1_details.staff_id if record.w1_details else None) or "",
        witness2_id=(record.w2_details.staff_id if record.w2_details else None) or "",
        processing_fee=record.service_charge,
        documentation_fee=record.document_charge,
        reloan_deduction_amount=record.reloan_deduction_amount or Decimal(0),
        monthly_income=record.monthly_income,
        monthly_expenses=record.monthly_expenses,
        bank_name=bank.bank_name or "",
        bank_branch=bank.branch or "",
        account_number=bank.account_number or "",
        existing_documents=tuple(
            DocumentRef(
                id=_str(d.id) or None,
                type=d.type,
                url=d.url or d.file_path or "",
                file_name=d.file_name or "",
            )
            for d in record.documents
        ),
        remarks=record.loan_step or "",
    )


def to_loan_payload(
    draft: LoanApplicationDraft,
    *,
    resubmission: bool = False,
    edit_id: Optional[str] = None,
) -> LoanPayload:
    payload = LoanPayload.from_draft(draft, edit_id=edit_id)
    if resubmission and payload.loan_step != RESUBMITTED_LOAN_STEP:
        payload = payload.model_copy(update={"loan_step": RESUBMITTED_LOAN_STEP})
    return payload
