"""
Read-only projections of the core banking registries (products, customers, groups, staff).
Field aliases follow the backend's wire names; Python code uses the snake_case names.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

# Backend loan statuses that no longer count as active exposure
LOAN_CLOSED_STATUSES = ("Completed", "Rejected")


class ReloanEligibility(BaseModel):
    is_eligible: bool = Field(..., alias="isEligible")
    progress: float = 0
    paid_weeks: Optional[int] = None
    total_weeks: Optional[int] = None
    balance: Decimal = Decimal(0)

    model_config = {"populate_by_name": True}


class LoanProduct(BaseModel):
    id: int
    product_name: str
    min_limit: Decimal = Field(Decimal(0), alias="loan_amount")
    max_limit: Optional[Decimal] = Field(None, alias="loan_limited_amount")
    interest_rate: Decimal = Decimal(0)
    loan_term: Optional[int] = None
    term_type: str = "Weekly"
    product_type: Optional[str] = None

    model_config = {"populate_by_name": True}


class GroupMember(BaseModel):
    customer_id: str
    name: str
    nic: str
    status: str = "Active"

    model_config = {"frozen": True}

    @property
    def is_active(self) -> bool:
        return self.status.lower() == "active"


class Guarantor(BaseModel):
    name: str
    nic: str

    model_config = {"frozen": True}


class ActiveLoan(BaseModel):
    """An existing loan of the selected customer, as listed on the customer profile."""

    id: Optional[int] = None
    product_id: int
    status: str
    approved_amount: Decimal = Decimal(0)
    interest_rate: Decimal = Decimal(0)
    fuil_amount: Optional[Decimal] = None  # backend spelling of "full amount"
    outstanding_amount: Decimal = Decimal(0)
    terms: Optional[int] = None
    reloan_eligibility: Optional[ReloanEligibility] = None

    @property
    def is_open(self) -> bool:
        return self.status not in LOAN_CLOSED_STATUSES


class CustomerRecord(BaseModel):
    id: str
    name: str
    display_name: str = ""
    nic: str = ""
    center_id: Optional[str] = None
    group_id: Optional[str] = None
    status: str = "Active"
    gender: Optional[str] = None
    phone: Optional[str] = None
    monthly_income: Optional[Decimal] = None
    nic_image: Optional[str] = None
    profile_image: Optional[str] = None
    reloan_eligibility: Optional[ReloanEligibility] = None

    def label(self) -> str:
        if self.display_name:
            return self.display_name
        return f"{self.name} - {self.nic}" if self.nic else self.name


class CustomerContext(BaseModel):
    """Everything the gates need besides the draft itself."""

    customer: Optional[CustomerRecord] = None
    products: list[LoanProduct] = Field(default_factory=list)
    active_loan_product_ids: list[int] = Field(default_factory=list)
    edit_mode: bool = False

    def product(self, product_id: Optional[int]) -> Optional[LoanProduct]:
        if product_id is None:
            return None
        return next((p for p in self.products if p.id == product_id), None)


class CustomerProfile(BaseModel):
    """Full customer record with its loan history (newest first)."""

    customer: CustomerRecord
    loans: list[ActiveLoan] = Field(default_factory=list)

    @property
    def open_loans(self) -> list[ActiveLoan]:
        return [loan for loan in self.loans if loan.is_open]


class JointBorrowerDetails(BaseModel):
    guardian_nic: str
    guardian_name: str = ""
    guardian_relationship: str = ""
    guardian_address: str = ""
    guardian_phone: str = ""
    guardian_secondary_phone: str = ""
    source: Optional[str] = None
    source_loan_id: Optional[str] = None
