"""
Per-step validation gates of the loan application wizard.

Each gate is a pure function of (draft, context) returning the first violated rule,
in a fixed priority order, or None. Gates never raise: a failure is a StepError value
the caller surfaces to the user. Step 4 (review) has no gate.
"""
from __future__ import annotations

import re
from decimal import Decimal
from typing import Callable, Optional

from schemas.application import LoanApplicationDraft
from schemas.documents import REQUIRED_DOCUMENTS
from schemas.registry import CustomerContext
from schemas.validation import StepError
from services.eligibility import DEFAULT_MIN_PROGRESS, reloan_block
from utils.bank_accounts import account_number_error
from utils.fees import format_lkr
from utils.nic import extract_gender, is_valid_nic

DEFAULT_MAX_LOAN_AMOUNT = Decimal(500_000)
REVIEW_STEP = 4

_PHONE_RE = re.compile(r"^\d{10}$")


def _step1(draft: LoanApplicationDraft, context: CustomerContext, **_) -> Optional[str]:
    if not draft.center_id:
        return "Please select a Center."
    if not draft.group_id:
        return "Please select a Group."
    if not draft.customer_id:
        return "Please select a Customer."
    if context.customer is None or context.customer.id != draft.customer_id:
        return "Invalid Customer selected."

    if not draft.guardian_nic:
        return "Joint Borrower NIC is required."
    if not is_valid_nic(draft.guardian_nic):
        return "Invalid Joint Borrower NIC format."
    if extract_gender(draft.guardian_nic) != "Male":
        return "Joint Borrower must be a male."

    if not draft.guardian_name:
        return "Joint Borrower Name is required."
    if not draft.guardian_relationship:
        return "Relationship to Joint Borrower is required."
    if not draft.guardian_address:
        return "Joint Borrower Address is required."
    if not draft.guardian_phone:
        return "Joint Borrower Phone is required."
    if not _PHONE_RE.match(draft.guardian_phone):
        return "Joint Borrower Phone must be 10 digits."

    if not draft.witness1_id:
        return "Witness 01 is required."
    if not draft.witness2_id:
        return "Witness 02 is required."
    if draft.witness1_id == draft.witness2_id:
        return "Witness 01 and 02 cannot be the same person."

    # A sent-back application keeps whatever household figures it was filed with
    if not context.edit_mode:
        if draft.monthly_income is None or draft.monthly_income <= 0:
            return "Please provide a valid Monthly Income."
        if draft.monthly_expenses is None or draft.monthly_expenses < 0:
            return "Please provide valid Monthly Expenses."
    return None


def _step2(
    draft: LoanApplicationDraft,
    context: CustomerContext,
    *,
    max_loan_amount: Decimal = DEFAULT_MAX_LOAN_AMOUNT,
    min_progress: float = DEFAULT_MIN_PROGRESS,
) -> Optional[str | StepError]:
    if draft.product_id is None:
        return "Please select a Loan Product."
    product = context.product(draft.product_id)
    min_limit = (product.min_limit if product else None) or Decimal(0)
    max_limit = (product.max_limit if product else None) or Decimal(max_loan_amount)
    band = f"between {format_lkr(min_limit)} and {format_lkr(max_limit)}"

    requested = draft.requested_amount
    if requested is None or requested <= 0:
        return "Valid Requested Amount is required."
    if requested < min_limit or requested > max_limit:
        return f"Requested Amount must be {band}."

    approved = draft.approved_amount
    if approved is None or approved <= 0:
        return "Valid Approved Amount is required."
    if approved < min_limit or approved > max_limit:
        return f"Approved Amount must be {band}."
    if approved > requested:
        return "Approved Amount cannot exceed Requested Amount."
    if (draft.documentation_fee or Decimal(0)) > approved:
        return "Documentation Fee cannot be greater than the Approved Loan Amount."

    if draft.interest_rate is None or draft.interest_rate < 0:
        return "Valid Interest Rate is required."
    if draft.tenure_weeks is None or draft.tenure_weeks <= 0:
        return "Valid Tenure is required."

    blocked = reloan_block(context, draft.product_id, step=2, min_progress=min_progress)
    if blocked is not None:
        return blocked

    g1, g2 = draft.guarantor1, draft.guarantor2
    if g1 is None or not g1.name or not g1.nic:
        return "Guarantor 01 is missing. Ensure the selected group has other active members."
    if g2 is None or not g2.name or not g2.nic:
        return "Guarantor 02 is missing. Ensure the selected group has at least 3 members."

    if not draft.bank_name:
        return "Bank selection is mandatory."
    if not draft.bank_branch:
        return "Bank Branch is mandatory."
    if not draft.account_number:
        return "Account Number is mandatory."
    return account_number_error(draft.bank_name, draft.account_number)


def missing_documents(draft: LoanApplicationDraft) -> list[str]:
    return [doc_type for doc_type in REQUIRED_DOCUMENTS if not draft.has_document(doc_type)]


def _step3(draft: LoanApplicationDraft, context: CustomerContext, **_) -> Optional[str]:
    missing = missing_documents(draft)
    if missing:
        return f"The following documents are mandatory: {', '.join(missing)}"
    return None


_GATES: dict[int, Callable[..., Optional[str | StepError]]] = {
    1: _step1,
    2: _step2,
    3: _step3,
}


def validate_step(
    step: int,
    draft: LoanApplicationDraft,
    context: CustomerContext,
    *,
    max_loan_amount: Decimal | int = DEFAULT_MAX_LOAN_AMOUNT,
    min_progress: float = DEFAULT_MIN_PROGRESS,
) -> Optional[StepError]:
    """First violated rule of ``step`` or None. Steps without a gate always pass."""
    gate = _GATES.get(int(step))
    if gate is None:
        return None
    result = gate(draft, context, max_loan_amount=Decimal(max_loan_amount), min_progress=min_progress)
    if result is None or isinstance(result, StepError):
        return result
    return StepError(step=int(step), message=result)


def validate_through(
    target: int,
    draft: LoanApplicationDraft,
    context: CustomerContext,
    **limits,
) -> Optional[StepError]:
    """
    Step-jump protocol: validate every step before ``target`` in order and stop at the
    first failure. The returned error's ``step`` is where the wizard must land.
    """
    for step in range(1, int(target)):
        error = validate_step(step, draft, context, **limits)
        if error is not None:
            return error
    return None
