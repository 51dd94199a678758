from __future__ import annotations

from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from schemas.documents import AttachedFile, DocumentRef
from schemas.registry import GroupMember, Guarantor
from services.eligibility import derive_guarantors
from utils.fees import calculate_rental, total_fees

RentalType = Literal["Weekly", "Bi-Weekly", "Monthly"]

# Fields that are derived or fixed at creation; the wizard never lets callers set them directly
DERIVED_FIELDS = frozenset({
    "guarantor1",
    "guarantor2",
    "witness1_id",
    "created_by",
    "guardian_dob",
    "processing_fee",
    "reloan_deduction_amount",
    "rental",
})


class LoanApplicationDraft(BaseModel):
    """
    Working set of the application wizard.
    Frozen: every change goes through evolve(), which revalidates and returns a new draft.
    Guarantors and witness 01 are computed, not stored.
    """

    center_id: str = ""
    group_id: str = ""
    customer_id: str = ""
    nic: str = ""

    product_id: Optional[int] = None
    requested_amount: Optional[Decimal] = None
    approved_amount: Optional[Decimal] = None
    interest_rate: Optional[Decimal] = None
    tenure_weeks: Optional[int] = None
    rental_type: RentalType = "Weekly"

    guardian_nic: str = ""
    guardian_name: str = ""
    guardian_relationship: str = ""
    guardian_address: str = ""
    guardian_phone: str = ""
    guardian_secondary_phone: str = ""
    guardian_dob: str = ""
    guardian_source: Literal["auto", "manual"] = "manual"

    # Active members of the selected group, in membership order (guarantor source)
    group_members: tuple[GroupMember, ...] = ()
    created_by: str = ""
    witness2_id: str = ""

    processing_fee: Optional[Decimal] = None
    documentation_fee: Optional[Decimal] = Decimal(1000)
    insurance_fee: Optional[Decimal] = None
    reloan_deduction_amount: Decimal = Decimal(0)

    monthly_income: Optional[Decimal] = None
    monthly_expenses: Optional[Decimal] = None

    bank_name: str = ""
    bank_branch: str = ""
    account_number: str = ""

    documents: dict[str, AttachedFile] = Field(default_factory=dict)
    existing_documents: tuple[DocumentRef, ...] = ()

    remarks: str = ""

    model_config = ConfigDict(frozen=True)

    @field_validator(
        "requested_amount",
        "approved_amount",
        "interest_rate",
        "tenure_weeks",
        "processing_fee",
        "documentation_fee",
        "insurance_fee",
        "monthly_income",
        "monthly_expenses",
        "product_id",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @computed_field
    @property
    def guarantor1(self) -> Optional[Guarantor]:
        return derive_guarantors(self.group_members, self.customer_id)[0]

    @computed_field
    @property
    def guarantor2(self) -> Optional[Guarantor]:
        return derive_guarantors(self.group_members, self.customer_id)[1]

    @computed_field
    @property
    def witness1_id(self) -> str:
        return self.created_by

    @computed_field
    @property
    def rental(self) -> Optional[Decimal]:
        return calculate_rental(self.approved_amount, self.interest_rate, self.tenure_weeks)

    @property
    def total_fees(self) -> Decimal:
        return total_fees(self.processing_fee, self.documentation_fee, self.insurance_fee)

    @property
    def net_disbursement(self) -> Decimal:
        approved = self.approved_amount or Decimal(0)
        return approved - self.total_fees - self.reloan_deduction_amount

    def evolve(self, **changes: Any) -> "LoanApplicationDraft":
        """Return a new, fully revalidated draft with ``changes`` applied."""
        fields = type(self).model_fields
        unknown = sorted(set(changes) - set(fields))
        if unknown:
            raise ValueError(f"Unknown draft field(s): {', '.join(unknown)}")
        data = {name: getattr(self, name) for name in fields}
        data.update(changes)
        return type(self).model_validate(data)

    def has_document(self, doc_type: str) -> bool:
        return doc_type in self.documents or any(d.type == doc_type for d in self.existing_documents)
