"""
Application wizard controller.

Owns one in-progress loan application: the current step, the draft, the customer
context the gates read, and the submission protocol (create or update once, then
upload each new document). Edit mode re-enters the same wizard for a sent-back loan;
it disables the duplicate-loan block and the local draft store.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Literal, Optional, Sequence

from exceptions import (
    AuthorizationError,
    DocumentRejectedError,
    DocumentTooLargeError,
    FieldLockedError,
    InvalidTransitionError,
    SubmissionError,
)
from schemas.application import DERIVED_FIELDS, LoanApplicationDraft
from schemas.documents import ALLOWED_CONTENT_TYPES, DOCUMENT_TYPES, AttachedFile
from schemas.draft import DraftResult
from schemas.loan import LoanRecord, draft_from_loan_record, to_loan_payload
from schemas.registry import ActiveLoan, CustomerContext, CustomerRecord, GroupMember, LoanProduct
from schemas.wizard import (
    STEP_TITLES,
    DocumentOutcome,
    NavigationResult,
    StepError,
    SubmissionResult,
    WizardState,
    WizardStep,
)
from services.drafts import DraftStore, generate_draft_name
from services.eligibility import (
    DEFAULT_MIN_PROGRESS,
    active_product_ids,
    is_reloan_blocked,
    latest_reloan_eligibility,
    locked_fields,
    merge_profile_documents,
    reloan_block,
    reloan_deduction,
)
from services.permissions import PermissionSet
from services.validation_gates import DEFAULT_MAX_LOAN_AMOUNT, validate_step
from utils.fees import processing_fee_for
from utils.log import get_logger
from utils.nic import extract_birthday, normalize_nic_input

logger = get_logger(__name__)

DEFAULT_MAX_DOCUMENT_BYTES = 5 * 1024 * 1024

# Set only through select_* / attach_document / set_guardian_nic
MANAGED_FIELDS = frozenset({
    "center_id",
    "group_id",
    "customer_id",
    "nic",
    "product_id",
    "group_members",
    "guardian_nic",
    "documents",
    "existing_documents",
})

GUARDIAN_DETAIL_FIELDS = (
    "guardian_name",
    "guardian_relationship",
    "guardian_address",
    "guardian_phone",
    "guardian_secondary_phone",
)

RENTAL_TYPES = ("Weekly", "Bi-Weekly", "Monthly")

ALREADY_SUBMITTED_MESSAGE = "This application has already been submitted. Open a new application to make further changes."
LOAN_SAVED_MESSAGE = "The loan has already been saved. Only documents can be changed before submitting again."


class WizardController:
    def __init__(
        self,
        gateway,
        draft_store: Optional[DraftStore],
        capabilities: PermissionSet,
        *,
        creator_id: str,
        mode: Literal["create", "edit"] = "create",
        edit_id: Optional[str] = None,
        products: Sequence[LoanProduct] = (),
        max_document_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES,
        max_loan_amount: Decimal | int = DEFAULT_MAX_LOAN_AMOUNT,
        min_progress: float = DEFAULT_MIN_PROGRESS,
        documentation_fee: Decimal | int = Decimal(1000),
    ) -> None:
        if mode not in ("create", "edit"):
            raise ValueError(f"Unknown wizard mode: {mode}")
        self.gateway = gateway
        self.draft_store = draft_store
        self.capabilities = capabilities
        self.creator_id = creator_id
        self.mode = mode
        self.edit_id = edit_id
        self.max_document_bytes = max_document_bytes
        self.max_loan_amount = Decimal(max_loan_amount)
        self.min_progress = min_progress

        self.draft = LoanApplicationDraft(created_by=creator_id, documentation_fee=Decimal(documentation_fee))
        self.context = CustomerContext(products=list(products), edit_mode=mode == "edit")
        self.step = WizardStep.CUSTOMER_SELECTION
        self.is_dirty = False
        self.is_submitting = False
        self.show_step3_errors = False
        self.active_draft_id: Optional[str] = None
        self.created_loan_id: Optional[str] = None
        self.submitted = False
        self.offer_draft_deletion: Optional[str] = None
        self._uploaded_documents: set[str] = set()

    # -- derived state -------------------------------------------------

    @property
    def is_edit_mode(self) -> bool:
        return self.mode == "edit"

    @property
    def reloan_blocked(self) -> bool:
        return is_reloan_blocked(self.context, self.draft.product_id)

    @property
    def eligibility(self):
        return reloan_block(self.context, self.draft.product_id, min_progress=self.min_progress)

    @property
    def locked_fields(self) -> frozenset[str]:
        return locked_fields(self.context, self.draft.product_id)

    @property
    def can_submit(self) -> bool:
        if self.is_edit_mode:
            return self.capabilities.can_edit
        return self.capabilities.can_create

    def should_confirm_unload(self) -> bool:
        return self.is_dirty and not self.is_submitting

    def snapshot(self) -> WizardState:
        return WizardState(
            step=self.step,
            step_title=STEP_TITLES[self.step],
            mode=self.mode,
            edit_id=self.edit_id,
            draft=self.draft,
            is_dirty=self.is_dirty,
            is_submitting=self.is_submitting,
            show_step3_errors=self.show_step3_errors,
            reloan_blocked=self.reloan_blocked,
            eligibility=self.eligibility,
            locked_fields=sorted(self.locked_fields),
            active_draft_id=self.active_draft_id,
            created_loan_id=self.created_loan_id,
            offer_draft_deletion=self.offer_draft_deletion,
            can_submit=self.can_submit,
            submitted=self.submitted,
            confirm_unload=self.should_confirm_unload(),
        )

    def _apply(self, **changes: Any) -> None:
        self.draft = self.draft.evolve(**changes)
        self.is_dirty = True

    def _check_open(self, documents_only: bool = False) -> None:
        """
        A submitted application is closed. Once the loan exists but some documents are
        still missing, only the documents may change until the retry succeeds.
        """
        if self.submitted:
            raise InvalidTransitionError(ALREADY_SUBMITTED_MESSAGE)
        if self.created_loan_id is not None and not documents_only:
            raise FieldLockedError(LOAN_SAVED_MESSAGE)

    def _check_editable(self, names) -> None:
        locked = self.locked_fields
        for name in names:
            if name in DERIVED_FIELDS:
                raise FieldLockedError(f"{name} is derived and cannot be edited")
            if name in locked:
                raise FieldLockedError(f"{name} is locked until the reloan eligibility issue is resolved")

    # -- field operations ----------------------------------------------

    def update_fields(self, **changes: Any) -> LoanApplicationDraft:
        """
        Apply plain field edits. Center, group and joint-borrower NIC edits are routed
        to their dedicated operations so their resets and derivations still happen.
        """
        self._check_open()
        if "center_id" in changes:
            self.select_center(changes.pop("center_id"))
        if "group_id" in changes:
            self.select_group(changes.pop("group_id"))
        if "guardian_nic" in changes:
            self.set_guardian_nic(changes.pop("guardian_nic"))
        if not changes:
            return self.draft

        self._check_editable(changes)
        managed = sorted(set(changes) & MANAGED_FIELDS)
        if managed:
            raise FieldLockedError(f"{', '.join(managed)} must be changed through the wizard's selection operations")

        if any(name in GUARDIAN_DETAIL_FIELDS for name in changes):
            changes["guardian_source"] = "manual"
        draft = self.draft.evolve(**changes)
        if "tenure_weeks" in changes or "approved_amount" in changes:
            draft = draft.evolve(processing_fee=processing_fee_for(
                draft.approved_amount, draft.tenure_weeks, draft.processing_fee,
            ))
        self.draft = draft
        self.is_dirty = True
        return self.draft

    def _reset_customer(self, **changes: Any) -> None:
        self._apply(
            customer_id="",
            nic="",
            group_members=(),
            reloan_deduction_amount=Decimal(0),
            existing_documents=merge_profile_documents(self.draft.existing_documents, None),
            **changes,
        )
        self.context = self.context.model_copy(update={"customer": None, "active_loan_product_ids": []})

    def select_center(self, center_id: Any) -> None:
        self._check_open()
        center = "" if center_id is None else str(center_id)
        self._reset_customer(center_id=center, group_id="")

    def select_group(self, group_id: Any) -> None:
        self._check_open()
        group = "" if group_id is None else str(group_id)
        self._reset_customer(group_id=group)

    def select_customer(
        self,
        customer: CustomerRecord,
        group_members: Sequence[GroupMember] = (),
        active_loans: Sequence[ActiveLoan] = (),
    ) -> None:
        """Bind the applicant and derive everything that follows from them."""
        self._check_open()
        eligibility = customer.reloan_eligibility or latest_reloan_eligibility(active_loans, self.min_progress)
        customer = customer.model_copy(update={"reloan_eligibility": eligibility})
        self.context = self.context.model_copy(update={
            "customer": customer,
            "active_loan_product_ids": active_product_ids(active_loans),
        })
        self._apply(
            customer_id=customer.id,
            nic=customer.nic,
            center_id=customer.center_id or self.draft.center_id,
            group_id=customer.group_id or self.draft.group_id,
            group_members=tuple(group_members),
            reloan_deduction_amount=reloan_deduction(eligibility),
            existing_documents=merge_profile_documents(self.draft.existing_documents, customer),
        )
        logger.info(
            "Customer %s selected (%d open loan product(s), reloan eligible=%s)",
            customer.id,
            len(self.context.active_loan_product_ids),
            eligibility.is_eligible if eligibility else None,
        )

    async def load_customer(self, customer_id: str) -> None:
        """Fetch the customer profile and group roster, then select the customer."""
        self._check_open()
        profile = await self.gateway.get_customer(customer_id)
        customer = profile.customer
        center_id = customer.center_id or self.draft.center_id
        group_id = customer.group_id or self.draft.group_id
        members: list[GroupMember] = []
        if center_id and group_id:
            members = await self.gateway.list_group_members(center_id, group_id)
        self.select_customer(customer, members, profile.loans)

    async def load_products(self) -> list[LoanProduct]:
        products = await self.gateway.list_products()
        self.context = self.context.model_copy(update={"products": list(products)})
        return products

    def select_product(self, product_id: Optional[int]) -> None:
        self._check_open()
        product = self.context.product(product_id)
        if product is None:
            self._apply(
                product_id=product_id,
                requested_amount=None,
                approved_amount=None,
                interest_rate=None,
                tenure_weeks=None,
                rental_type="Weekly",
                processing_fee=None,
            )
            return

        draft = self.draft
        requested = draft.requested_amount if draft.requested_amount else product.min_limit
        approved = draft.approved_amount if draft.approved_amount else product.min_limit
        self._apply(
            product_id=product.id,
            requested_amount=requested,
            approved_amount=approved,
            interest_rate=product.interest_rate,
            tenure_weeks=product.loan_term,
            rental_type=product.term_type if product.term_type in RENTAL_TYPES else "Weekly",
            processing_fee=processing_fee_for(approved, product.loan_term, draft.processing_fee),
        )
        if self.reloan_blocked:
            logger.info("Product %s blocked for customer %s pending reloan eligibility", product.id, draft.customer_id)

    def set_guardian_nic(self, value: str) -> str:
        self._check_open()
        self._check_editable(["guardian_nic"])
        nic = normalize_nic_input(value)
        if not nic:
            self._apply(
                guardian_nic="",
                guardian_dob="",
                guardian_source="manual",
                **{name: "" for name in GUARDIAN_DETAIL_FIELDS},
            )
            return nic
        changes: dict[str, Any] = {"guardian_nic": nic}
        dob = extract_birthday(nic)
        if dob:
            changes["guardian_dob"] = dob
        self._apply(**changes)
        return nic

    async def autofill_joint_borrower(self) -> bool:
        """
        Look up a previously recorded joint borrower for the current NIC.
        The answer is dropped if the NIC was edited while the lookup was in flight.
        """
        self._check_open()
        nic = self.draft.guardian_nic
        if len(nic) < 9 or self.reloan_blocked:
            return False
        try:
            details = await self.gateway.lookup_joint_borrower(nic)
        except SubmissionError as exc:
            logger.warning("Joint borrower lookup for %s failed: %s", nic, exc)
            return False

        if self.draft.guardian_nic != nic:
            logger.debug("Discarding joint borrower lookup for stale NIC %s", nic)
            return False
        if details is None:
            self._apply(guardian_source="manual", **{name: "" for name in GUARDIAN_DETAIL_FIELDS})
            return False
        self._apply(
            guardian_source="auto",
            **{name: getattr(details, name) or "" for name in GUARDIAN_DETAIL_FIELDS},
        )
        return True

    def attach_document(self, doc_type: str, file: AttachedFile) -> None:
        self._check_open(documents_only=True)
        if doc_type not in DOCUMENT_TYPES:
            raise DocumentRejectedError(f"Unknown document type: {doc_type}")
        if file.size > self.max_document_bytes:
            limit_mb = self.max_document_bytes // (1024 * 1024)
            raise DocumentTooLargeError(f"{file.filename} is larger than {limit_mb} MB")
        if file.content_type not in ALLOWED_CONTENT_TYPES:
            raise DocumentRejectedError(f"{file.filename}: only image and PDF files are accepted")
        self._apply(documents={**self.draft.documents, doc_type: file})
        self._uploaded_documents.discard(doc_type)
        self.show_step3_errors = False

    def remove_document(self, doc_type: str) -> None:
        self._check_open(documents_only=True)
        if doc_type not in self.draft.documents:
            return
        documents = {k: v for k, v in self.draft.documents.items() if k != doc_type}
        self._apply(documents=documents)
        self._uploaded_documents.discard(doc_type)

    # -- navigation ----------------------------------------------------

    def _gate(self, step: int) -> Optional[StepError]:
        error = validate_step(
            step,
            self.draft,
            self.context,
            max_loan_amount=self.max_loan_amount,
            min_progress=self.min_progress,
        )
        if error is None and step == WizardStep.CUSTOMER_SELECTION:
            # Nothing on step 1 can be completed while the chosen product is blocked
            error = reloan_block(self.context, self.draft.product_id, step=1, min_progress=self.min_progress)
        if step == WizardStep.DOCUMENTS:
            self.show_step3_errors = error is not None
        return error

    def next(self) -> NavigationResult:
        error = self._gate(self.step)
        if error is not None:
            return NavigationResult(moved=False, step=self.step, error=error)
        if self.step == WizardStep.REVIEW_SUBMIT:
            return NavigationResult(moved=False, step=self.step)
        self.step = WizardStep(self.step + 1)
        logger.debug("Wizard advanced to step %d", self.step)
        return NavigationResult(moved=True, step=self.step)

    def previous(self) -> NavigationResult:
        if self.step == WizardStep.CUSTOMER_SELECTION:
            return NavigationResult(moved=False, step=self.step)
        self.step = WizardStep(self.step - 1)
        return NavigationResult(moved=True, step=self.step)

    def go_to(self, target: int) -> NavigationResult:
        """Backward jumps always succeed; forward jumps stop at the first failing step."""
        target = WizardStep(target)
        if target <= self.step:
            moved = target != self.step
            self.step = target
            return NavigationResult(moved=moved, step=self.step)
        for step in range(1, target):
            error = self._gate(step)
            if error is not None:
                moved = self.step != step
                self.step = WizardStep(step)
                return NavigationResult(moved=moved, step=self.step, error=error)
        self.step = target
        return NavigationResult(moved=True, step=self.step)

    # -- submission ----------------------------------------------------

    async def _upload(self, loan_id: str, doc_type: str, file: AttachedFile) -> DocumentOutcome:
        try:
            await self.gateway.upload_document(loan_id, doc_type, file)
        except SubmissionError as exc:
            logger.warning("Upload of %s for loan %s failed: %s", doc_type, loan_id, exc)
            return DocumentOutcome(type=doc_type, success=False, message=str(exc))
        self._uploaded_documents.add(doc_type)
        return DocumentOutcome(type=doc_type, success=True)

    async def submit(self) -> SubmissionResult:
        """
        Validate steps 1..3, create (or update) the loan once, then upload every new
        document concurrently. A retry after a partial failure only re-uploads the
        documents that failed.
        """
        if self.submitted:
            return SubmissionResult(success=False, message=ALREADY_SUBMITTED_MESSAGE, loan_id=self.created_loan_id)
        if self.is_submitting:
            return SubmissionResult(success=False, message="A submission is already in progress.")
        if not self.can_submit:
            raise AuthorizationError("You do not have permission to submit this loan application.")

        for step in (WizardStep.CUSTOMER_SELECTION, WizardStep.LOAN_DETAILS, WizardStep.DOCUMENTS):
            error = self._gate(step)
            if error is not None:
                self.step = step
                return SubmissionResult(success=False, message=f"Step {int(step)}: {error.message}", error=error)

        self.is_submitting = True
        try:
            loan_id = self.created_loan_id
            if loan_id is None:
                payload = to_loan_payload(self.draft, resubmission=self.is_edit_mode, edit_id=self.edit_id)
                try:
                    record = await self.gateway.create_loan(payload)
                except SubmissionError as exc:
                    verb = "update" if self.is_edit_mode else "submit"
                    return SubmissionResult(success=False, message=f"Failed to {verb} loan: {exc}")
                loan_id = str(record.id) if record.id is not None else self.edit_id
                if not loan_id:
                    return SubmissionResult(success=False, message="Valid Loan ID not found.")
                self.created_loan_id = loan_id
                logger.info("Loan %s %s", loan_id, "resubmitted" if self.is_edit_mode else "created")

            pending = [(t, f) for t, f in self.draft.documents.items() if t not in self._uploaded_documents]
            outcomes = list(await asyncio.gather(*(self._upload(loan_id, t, f) for t, f in pending)))
            failed = [o.type for o in outcomes if not o.success]
            if failed:
                return SubmissionResult(
                    success=False,
                    message=f"Loan saved, but these documents failed to upload: {', '.join(failed)}. Submit again to retry.",
                    loan_id=loan_id,
                    documents=outcomes,
                )
        finally:
            self.is_submitting = False

        self.is_dirty = False
        self.submitted = True
        if not self.is_edit_mode:
            self.offer_draft_deletion = self.active_draft_id
        message = (
            "Loan application updated and resubmitted successfully!"
            if self.is_edit_mode
            else "Loan application submitted for approval successfully!"
        )
        return SubmissionResult(success=True, message=message, loan_id=loan_id, documents=outcomes)

    # -- drafts ----------------------------------------------------------

    def _drafts_unavailable(self) -> Optional[DraftResult]:
        if self.is_edit_mode:
            return DraftResult(success=False, message="Drafts are not available while editing a sent-back loan.")
        if self.draft_store is None:
            return DraftResult(success=False, message="Draft storage is not configured.")
        return None

    async def save_draft(self, name: Optional[str] = None) -> DraftResult:
        unavailable = self._drafts_unavailable()
        if unavailable:
            return unavailable
        customer = self.context.customer
        name = name or generate_draft_name(
            customer.display_name if customer else None,
            self.draft.nic,
            self.draft.customer_id,
        )
        result = await self.draft_store.save(self.draft, int(self.step), name=name, draft_id=self.active_draft_id)
        if result.success and result.draft is not None:
            self.active_draft_id = result.draft.id
            self.is_dirty = False
        return result

    async def load_draft(self, draft_id: str) -> DraftResult:
        unavailable = self._drafts_unavailable()
        if unavailable:
            return unavailable
        if self.submitted or self.created_loan_id is not None:
            return DraftResult(
                success=False,
                message=ALREADY_SUBMITTED_MESSAGE if self.submitted else LOAN_SAVED_MESSAGE,
            )
        result = await self.draft_store.load(draft_id)
        if not result.success or result.draft is None:
            return result

        saved = result.draft
        # Witness 01 is whoever submits, not whoever saved
        snapshot = saved.snapshot.evolve(created_by=self.creator_id)
        self.draft = snapshot
        self.step = WizardStep(saved.current_step)
        self.active_draft_id = saved.id
        self.created_loan_id = None
        self.offer_draft_deletion = None
        self._uploaded_documents.clear()
        self.context = self.context.model_copy(update={"customer": None, "active_loan_product_ids": []})
        if snapshot.customer_id and self.gateway is not None:
            try:
                await self.load_customer(snapshot.customer_id)
            except SubmissionError as exc:
                logger.warning("Could not refresh customer %s for draft %s: %s", snapshot.customer_id, saved.id, exc)
        self.is_dirty = False
        return result

    async def delete_draft(self, draft_id: str) -> DraftResult:
        unavailable = self._drafts_unavailable()
        if unavailable:
            return unavailable
        result = await self.draft_store.delete(draft_id)
        if result.success:
            if self.active_draft_id == draft_id:
                self.active_draft_id = None
            if self.offer_draft_deletion == draft_id:
                self.offer_draft_deletion = None
        return result

    # -- edit mode -------------------------------------------------------

    def load_from_loan(self, record: LoanRecord, group_members: Sequence[GroupMember] = ()) -> None:
        """Enter edit mode for a sent-back loan."""
        draft = draft_from_loan_record(record, group_members)
        if not draft.created_by:
            draft = draft.evolve(created_by=self.creator_id)
        self.mode = "edit"
        self.edit_id = str(record.id) if record.id is not None else self.edit_id
        self.draft = draft
        self.context = self.context.model_copy(update={"edit_mode": True})
        self.step = WizardStep.CUSTOMER_SELECTION
        self.is_dirty = False
        self.created_loan_id = None
        self.submitted = False
        self.active_draft_id = None
        self._uploaded_documents.clear()

    async def open_for_edit(self, loan_id: str) -> None:
        record = await self.gateway.get_loan(loan_id)
        center_id = str(record.center.id) if record.center and record.center.id is not None else ""
        group_id = "" if record.group_id is None else str(record.group_id)
        members: list[GroupMember] = []
        if center_id and group_id:
            members = await self.gateway.list_group_members(center_id, group_id)
        self.load_from_loan(record, members)
        if record.customer_id is not None:
            profile = await self.gateway.get_customer(record.customer_id)
            self.context = self.context.model_copy(update={
                "customer": profile.customer,
                "active_loan_product_ids": active_product_ids(profile.loans),
            })
        logger.info("Loan %s opened for edit", self.edit_id)
