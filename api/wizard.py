from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from api.deps import get_actor, get_capabilities, get_draft_store, get_gateway, get_registry
from api.drafts import draft_to_response
from config import settings
from schemas.documents import DOCUMENT_TYPES, REQUIRED_DOCUMENTS, AttachedFile
from schemas.draft import DraftResult
from schemas.wizard import STEP_TITLES
from services.drafts import DraftStore
from services.permissions import PermissionSet
from services.sessions import WizardSessionRegistry
from services.wizard import WizardController
from utils.bank_accounts import SRI_LANKAN_BANKS, rule_for
from utils.fees import processing_fee_label

router = APIRouter(prefix="/api/wizard", tags=["wizard"])


class WizardCreate(BaseModel):
    mode: Literal["create", "edit"] = "create"
    edit_id: Optional[str] = None


class CustomerSelect(BaseModel):
    customer_id: str


class ProductSelect(BaseModel):
    product_id: Optional[int] = None


class DraftSave(BaseModel):
    name: Optional[str] = None


def _state_to_response(session_id: str, controller: WizardController) -> dict[str, Any]:
    state = controller.snapshot()
    out = state.model_dump(mode="json", exclude={"draft"})
    out["session_id"] = session_id
    out["draft"] = draft_to_response(state.draft)
    out["rental"] = out["draft"].get("rental")
    out["total_fees"] = str(state.draft.total_fees)
    out["net_disbursement"] = str(state.draft.net_disbursement)
    out["processing_fee_label"] = processing_fee_label(state.draft.tenure_weeks)
    return out


def get_wizard(
    session_id: str,
    actor: str = Depends(get_actor),
    sessions: WizardSessionRegistry = Depends(get_registry),
) -> WizardController:
    return sessions.get(session_id, actor)


def _draft_result_to_response(result: DraftResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "message": result.message,
        "draft_id": result.draft.id if result.draft else None,
    }


@router.post("", status_code=201)
async def open_wizard(
    body: WizardCreate,
    gateway=Depends(get_gateway),
    store: DraftStore = Depends(get_draft_store),
    capabilities: PermissionSet = Depends(get_capabilities),
    actor: str = Depends(get_actor),
    sessions: WizardSessionRegistry = Depends(get_registry),
):
    if body.mode == "edit" and not body.edit_id:
        raise HTTPException(status_code=422, detail="edit_id is required in edit mode")
    controller = WizardController(
        gateway,
        store,
        capabilities,
        creator_id=actor,
        mode=body.mode,
        edit_id=body.edit_id,
        max_document_bytes=settings.max_document_bytes,
        max_loan_amount=settings.default_max_loan_amount,
        min_progress=settings.reloan_min_progress,
        documentation_fee=settings.default_documentation_fee,
    )
    await controller.load_products()
    if body.mode == "edit":
        await controller.open_for_edit(body.edit_id)
    session_id = sessions.open(controller)
    return _state_to_response(session_id, controller)


@router.get("/options")
async def wizard_options():
    """Choices the wizard form offers: banks (with account number lengths), documents, steps."""
    return {
        "banks": [{"name": bank, "account_digits": rule_for(bank).digits} for bank in SRI_LANKAN_BANKS],
        "document_types": list(DOCUMENT_TYPES),
        "required_documents": list(REQUIRED_DOCUMENTS),
        "steps": [{"step": int(step), "title": title} for step, title in STEP_TITLES.items()],
    }


@router.get("/{session_id}")
async def read_wizard(session_id: str, controller: WizardController = Depends(get_wizard)):
    return _state_to_response(session_id, controller)


@router.patch("/{session_id}/fields")
async def update_fields(
    session_id: str,
    changes: dict[str, Any] = Body(...),
    controller: WizardController = Depends(get_wizard),
):
    try:
        controller.update_fields(**changes)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _state_to_response(session_id, controller)


@router.post("/{session_id}/customer")
async def select_customer(
    session_id: str,
    body: CustomerSelect,
    controller: WizardController = Depends(get_wizard),
):
    await controller.load_customer(body.customer_id)
    return _state_to_response(session_id, controller)


@router.post("/{session_id}/product")
async def select_product(
    session_id: str,
    body: ProductSelect,
    controller: WizardController = Depends(get_wizard),
):
    controller.select_product(body.product_id)
    return _state_to_response(session_id, controller)


@router.post("/{session_id}/guardian/autofill")
async def autofill_joint_borrower(session_id: str, controller: WizardController = Depends(get_wizard)):
    found = await controller.autofill_joint_borrower()
    return {"found": found, **_state_to_response(session_id, controller)}


@router.post("/{session_id}/next")
async def next_step(session_id: str, controller: WizardController = Depends(get_wizard)):
    result = controller.next()
    return {"navigation": result.model_dump(mode="json"), **_state_to_response(session_id, controller)}


@router.post("/{session_id}/previous")
async def previous_step(session_id: str, controller: WizardController = Depends(get_wizard)):
    result = controller.previous()
    return {"navigation": result.model_dump(mode="json"), **_state_to_response(session_id, controller)}


@router.post("/{session_id}/goto/{step}")
async def go_to_step(session_id: str, step: int, controller: WizardController = Depends(get_wizard)):
    if step < 1 or step > 4:
        raise HTTPException(status_code=422, detail="Step must be between 1 and 4")
    result = controller.go_to(step)
    return {"navigation": result.model_dump(mode="json"), **_state_to_response(session_id, controller)}


@router.post("/{session_id}/documents/{doc_type}")
async def attach_document(
    session_id: str,
    doc_type: str,
    file: UploadFile = File(...),
    controller: WizardController = Depends(get_wizard),
):
    content = await file.read()
    controller.attach_document(
        doc_type,
        AttachedFile(
            filename=file.filename or doc_type,
            content_type=file.content_type or "application/octet-stream",
            content=content,
        ),
    )
    return _state_to_response(session_id, controller)


@router.delete("/{session_id}/documents/{doc_type}")
async def remove_document(session_id: str, doc_type: str, controller: WizardController = Depends(get_wizard)):
    controller.remove_document(doc_type)
    return _state_to_response(session_id, controller)


@router.post("/{session_id}/drafts")
async def save_draft(
    session_id: str,
    body: Optional[DraftSave] = None,
    controller: WizardController = Depends(get_wizard),
):
    result = await controller.save_draft(body.name if body else None)
    return _draft_result_to_response(result)


@router.post("/{session_id}/drafts/{draft_id}/load")
async def load_draft(session_id: str, draft_id: str, controller: WizardController = Depends(get_wizard)):
    result = await controller.load_draft(draft_id)
    if not result.success:
        raise HTTPException(status_code=404 if result.message == "Draft not found" else 409, detail=result.message)
    return _state_to_response(session_id, controller)


@router.post("/{session_id}/submit")
async def submit(session_id: str, controller: WizardController = Depends(get_wizard)):
    result = await controller.submit()
    return {"result": result.model_dump(mode="json"), **_state_to_response(session_id, controller)}


@router.delete("/{session_id}")
async def close_wizard(
    session_id: str,
    confirm: bool = False,
    actor: str = Depends(get_actor),
    sessions: WizardSessionRegistry = Depends(get_registry),
):
    """Close the session; unsaved changes are only discarded with ``confirm=true``."""
    controller = sessions.close(session_id, actor, confirm=confirm)
    return {"closed": True, "unsaved_changes": controller.should_confirm_unload()}
