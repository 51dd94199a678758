"""
HTTP client for the core banking backend.

The backend owns loans, documents and the customer/group/product registries; this
service only consumes them. Every non-success response becomes a SubmissionError carrying
the backend's own message (plus its field errors), so callers can show it verbatim.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

import httpx

from exceptions import SubmissionError
from schemas.approval import ApprovalAction
from schemas.documents import AttachedFile
from schemas.loan import LoanPayload, LoanRecord
from schemas.registry import (
    ActiveLoan,
    CustomerProfile,
    CustomerRecord,
    GroupMember,
    JointBorrowerDetails,
    LoanProduct,
)
from utils.log import get_logger

logger = get_logger(__name__)

UNREACHABLE_MESSAGE = "Unable to reach the core banking service. Please try again."
STALE_STATE_MESSAGE = "This loan was changed by someone else. Reload it and try again."

# Products offered by the group-lending wizard
WIZARD_PRODUCT_TYPES = ("micro_loan",)


def _error_message(body: Any, fallback: str) -> str:
    if not isinstance(body, dict):
        return fallback
    message = body.get("message") or fallback
    errors = body.get("errors")
    if isinstance(errors, dict) and errors:
        details = []
        for value in errors.values():
            details.extend(value if isinstance(value, list) else [value])
        message += ": " + ", ".join(str(d) for d in details)
    return message


def customer_from_wire(data: dict[str, Any]) -> CustomerRecord:
    full_name = data.get("full_name") or data.get("name") or ""
    nic = data.get("customer_code") or data.get("nic") or ""
    return CustomerRecord(
        id=str(data["id"]),
        name=full_name,
        display_name=f"{full_name} - {nic}" if nic else full_name,
        nic=nic,
        center_id=str(data["center_id"]) if data.get("center_id") is not None else None,
        group_id=str(data["grp_id"]) if data.get("grp_id") is not None else None,
        status=data.get("status") or "Active",
        gender=data.get("gender"),
        phone=data.get("mobile_no_1"),
        monthly_income=data.get("monthly_income"),
        nic_image=data.get("nic_copy_image"),
        profile_image=data.get("customer_profile_image"),
    )


class CoreBankingGateway:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, *, fallback: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise SubmissionError(UNREACHABLE_MESSAGE) from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success:
            return body
        if response.status_code == 409:
            message = STALE_STATE_MESSAGE
        else:
            message = _error_message(body, fallback)
        logger.warning("%s %s returned %s: %s", method, path, response.status_code, message)
        raise SubmissionError(message, status_code=response.status_code)

    async def list_loans(
        self,
        status: Optional[str] = None,
        per_page: Optional[int] = None,
        search: Optional[str] = None,
    ) -> list[LoanRecord]:
        params: dict[str, Any] = {}
        if search:
            params["search"] = search
        if status:
            params["status"] = status
        if per_page:
            params["per_page"] = per_page
        body = await self._request("GET", "/loans", params=params, fallback="Failed to fetch loans")
        return [LoanRecord.model_validate(item) for item in (body or {}).get("data") or []]

    async def create_loan(self, payload: LoanPayload) -> LoanRecord:
        """Create a loan, or update the sent-back one named by ``payload.edit_id``."""
        body = await self._request(
            "POST",
            "/loans",
            json=payload.to_wire(),
            fallback="Failed to submit loan application",
        )
        return LoanRecord.model_validate((body or {}).get("data") or {})

    async def get_loan(self, loan_id: int | str) -> LoanRecord:
        body = await self._request("GET", f"/loans/{loan_id}", fallback="Failed to fetch loan details")
        return LoanRecord.model_validate((body or {}).get("data") or {})

    async def approve_loan(
        self,
        loan_id: int | str,
        action: ApprovalAction,
        reason: Optional[str] = None,
    ) -> LoanRecord:
        data: dict[str, Any] = {"action": ApprovalAction(action).value}
        if reason:
            data["reason"] = reason
        body = await self._request(
            "PATCH",
            f"/loans/{loan_id}/approve",
            json=data,
            fallback="Failed to approve loan",
        )
        return LoanRecord.model_validate((body or {}).get("data") or {"id": loan_id})

    async def upload_document(self, loan_id: int | str, doc_type: str, file: AttachedFile) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/loan-documents",
            data={"loan_id": str(loan_id), "type": doc_type},
            files={"file": (file.filename, file.content, file.content_type)},
            fallback="Failed to upload document",
        ) or {}

    async def lookup_joint_borrower(self, nic: str) -> Optional[JointBorrowerDetails]:
        """Previously recorded joint borrower for this NIC; None when unknown or the lookup fails."""
        try:
            body = await self._request(
                "GET",
                "/loans/lookup-joint-borrower",
                params={"nic": nic},
                fallback="Joint borrower lookup failed",
            )
        except SubmissionError as exc:
            if exc.status_code is None:
                raise
            return None
        if not body or not body.get("found") or not body.get("data"):
            return None
        return JointBorrowerDetails.model_validate({
            **body["data"],
            "source": body.get("source"),
            "source_loan_id": str(body["source_loan_id"]) if body.get("source_loan_id") else None,
        })

    async def get_customer(self, customer_id: int | str) -> CustomerProfile:
        body = await self._request("GET", f"/customers/{customer_id}", fallback="Failed to fetch customer")
        data = (body or {}).get("data") or {}
        loans = [ActiveLoan.model_validate(loan) for loan in data.get("loans") or []]
        return CustomerProfile(customer=customer_from_wire(data), loans=loans)

    async def list_customers(self, center_id: str, group_id: Optional[str] = None) -> list[CustomerRecord]:
        params = {"center_id": center_id}
        if group_id:
            params["grp_id"] = group_id
        body = await self._request("GET", "/customers", params=params, fallback="Failed to fetch customers")
        return [customer_from_wire(item) for item in (body or {}).get("data") or []]

    async def list_group_members(self, center_id: str, group_id: str) -> list[GroupMember]:
        """Members of a group in membership order (the order the backend lists them)."""
        customers = await self.list_customers(center_id, group_id)
        return [
            GroupMember(customer_id=c.id, name=c.name, nic=c.nic, status=c.status)
            for c in customers
        ]

    async def list_products(self) -> list[LoanProduct]:
        body = await self._request("GET", "/loan-products", fallback="Failed to fetch loan products")
        items = body.get("data") if isinstance(body, dict) else body
        products = []
        for item in items or []:
            if item.get("product_type") and item["product_type"] not in WIZARD_PRODUCT_TYPES:
                continue
            products.append(LoanProduct.model_validate({
                **item,
                "loan_amount": item.get("loan_amount") or Decimal(0),
            }))
        return products
