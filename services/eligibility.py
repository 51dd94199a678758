"""
Reloan eligibility and guarantor derivation for the application wizard.

A customer who already holds an open loan of the selected product may only take another
one when the server-declared reloan eligibility says so (at least 70% of the committed
repayment progress). Guarantors are never typed in: they are the first two other active
members of the applicant's group, in membership order.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from schemas.documents import DocumentRef
from schemas.registry import (
    ActiveLoan,
    CustomerContext,
    CustomerRecord,
    GroupMember,
    Guarantor,
    ReloanEligibility,
)
from schemas.validation import EligibilityBlocked

DEFAULT_MIN_PROGRESS = 0.70

# Step 1/2 inputs that become read-only while a reloan is blocked.
# Product, center, group and customer selection stay editable so the block can be resolved.
RELOAN_LOCKED_FIELDS = frozenset({
    "guardian_nic",
    "guardian_name",
    "guardian_relationship",
    "guardian_address",
    "guardian_phone",
    "guardian_secondary_phone",
    "witness2_id",
    "monthly_income",
    "monthly_expenses",
    "requested_amount",
    "approved_amount",
    "interest_rate",
    "tenure_weeks",
    "rental_type",
    "documentation_fee",
    "insurance_fee",
    "bank_name",
    "bank_branch",
    "account_number",
})


def is_already_taken(product_id: Optional[int], active_loan_product_ids: Iterable[int]) -> bool:
    return product_id is not None and product_id in set(active_loan_product_ids)


def is_reloan_blocked(context: CustomerContext, product_id: Optional[int]) -> bool:
    """True when a new loan of this product must not proceed for the selected customer.

    Edit mode never blocks: the active loan found is the application being corrected.
    """
    if context.edit_mode:
        return False
    if not is_already_taken(product_id, context.active_loan_product_ids):
        return False
    eligibility = context.customer.reloan_eligibility if context.customer else None
    return not (eligibility is not None and eligibility.is_eligible)


def reloan_block(
    context: CustomerContext,
    product_id: Optional[int],
    *,
    step: int = 2,
    min_progress: float = DEFAULT_MIN_PROGRESS,
) -> Optional[EligibilityBlocked]:
    if not is_reloan_blocked(context, product_id):
        return None
    product = context.product(product_id)
    product_name = product.product_name if product else "selected"
    required = round(min_progress * 100)
    eligibility = context.customer.reloan_eligibility if context.customer else None
    return EligibilityBlocked(
        step=step,
        message=(
            f"Customer already has an active {product_name} loan and is not yet eligible "
            f"for a reloan (min. {required}% payment progress required)."
        ),
        product_id=product_id,
        product_name=product_name,
        progress=eligibility.progress if eligibility else 0,
        paid_weeks=eligibility.paid_weeks if eligibility else None,
        total_weeks=eligibility.total_weeks if eligibility else None,
        balance=eligibility.balance if eligibility else Decimal(0),
        required_progress=required,
    )


def estimate_reloan_eligibility(
    loan: ActiveLoan,
    min_progress: float = DEFAULT_MIN_PROGRESS,
) -> ReloanEligibility:
    """Server eligibility when attached to the loan; otherwise an amount-based estimate."""
    if loan.reloan_eligibility is not None:
        return loan.reloan_eligibility

    principal = loan.approved_amount
    if loan.fuil_amount and loan.fuil_amount > 0:
        total = loan.fuil_amount
    else:
        total = principal + principal * loan.interest_rate / Decimal(100)
    paid = max(Decimal(0), total - loan.outstanding_amount)
    progress = paid / total if total > 0 else Decimal(0)

    return ReloanEligibility(
        is_eligible=progress >= Decimal(str(min_progress)),
        progress=min(100, round(float(progress) * 100)),
        balance=loan.outstanding_amount,
        paid_weeks=0,
        total_weeks=loan.terms,
    )


def latest_reloan_eligibility(
    loans: Sequence[ActiveLoan],
    min_progress: float = DEFAULT_MIN_PROGRESS,
) -> Optional[ReloanEligibility]:
    """Eligibility of the most recent open loan (loans are listed newest first)."""
    open_loans = [loan for loan in loans if loan.is_open]
    if not open_loans:
        return None
    return estimate_reloan_eligibility(open_loans[0], min_progress)


def active_product_ids(loans: Sequence[ActiveLoan]) -> list[int]:
    return [loan.product_id for loan in loans if loan.is_open]


def reloan_deduction(eligibility: Optional[ReloanEligibility]) -> Decimal:
    """Outstanding balance to settle from the new disbursement, when a reloan is allowed."""
    if eligibility is not None and eligibility.is_eligible:
        return eligibility.balance
    return Decimal(0)


def _other_active_members(members: Sequence[GroupMember], applicant_id: str) -> list[GroupMember]:
    return [m for m in members if m.customer_id != applicant_id and m.is_active]


def derive_guarantors(
    members: Sequence[GroupMember],
    applicant_id: str,
) -> tuple[Optional[Guarantor], Optional[Guarantor]]:
    if not applicant_id:
        return None, None
    others = _other_active_members(members, applicant_id)
    picked = [Guarantor(name=m.name, nic=m.nic) for m in others[:2]]
    picked += [None] * (2 - len(picked))
    return picked[0], picked[1]


def guarantor_shortfall(members: Sequence[GroupMember], applicant_id: str) -> int:
    """How many guarantor slots the group cannot fill (0, 1 or 2)."""
    if not applicant_id:
        return 2
    return max(0, 2 - len(_other_active_members(members, applicant_id)))


def locked_fields(context: CustomerContext, product_id: Optional[int]) -> frozenset[str]:
    return RELOAN_LOCKED_FIELDS if is_reloan_blocked(context, product_id) else frozenset()


def profile_documents(customer: CustomerRecord) -> list[DocumentRef]:
    docs: list[DocumentRef] = []
    if customer.nic_image:
        docs.append(DocumentRef(
            id=f"profile-nic-{customer.id}",
            type="NIC Copy",
            url=customer.nic_image,
            file_name="NIC Copy from Profile",
            from_profile=True,
        ))
    if customer.profile_image:
        docs.append(DocumentRef(
            id=f"profile-photo-{customer.id}",
            type="Customer Photo",
            url=customer.profile_image,
            file_name="Profile Photo from Profile",
            from_profile=True,
        ))
    return docs


def merge_profile_documents(
    existing: Sequence[DocumentRef],
    customer: Optional[CustomerRecord],
) -> tuple[DocumentRef, ...]:
    """Replace previously inherited profile documents with the new customer's."""
    kept = [d for d in existing if not d.from_profile]
    inherited = profile_documents(customer) if customer else []
    return tuple(kept + inherited)
