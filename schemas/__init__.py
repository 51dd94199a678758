from schemas.documents import (
    ALLOWED_CONTENT_TYPES,
    DOCUMENT_TYPES,
    REQUIRED_DOCUMENTS,
    AttachedFile,
    DocumentRef,
)
from schemas.registry import (
    ActiveLoan,
    CustomerContext,
    CustomerProfile,
    CustomerRecord,
    GroupMember,
    Guarantor,
    JointBorrowerDetails,
    LoanProduct,
    ReloanEligibility,
)
from schemas.validation import EligibilityBlocked, StepError

# Draft, payload, approval and wizard models import services.eligibility; import them
# from their own modules (schemas.application, schemas.loan, ...) to avoid a cycle.

__all__ = [
    "ALLOWED_CONTENT_TYPES",
    "DOCUMENT_TYPES",
    "REQUIRED_DOCUMENTS",
    "AttachedFile",
    "DocumentRef",
    "ActiveLoan",
    "CustomerContext",
    "CustomerProfile",
    "CustomerRecord",
    "GroupMember",
    "Guarantor",
    "JointBorrowerDetails",
    "LoanProduct",
    "ReloanEligibility",
    "EligibilityBlocked",
    "StepError",
]
