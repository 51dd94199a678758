from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.deps import build_approval_machine, get_actor, get_capabilities, get_gateway
from schemas.approval import ApprovalAction, ApprovalStage, LoanApprovalItem
from services.approval import ApprovalReviewSession, ApprovalStateMachine
from services.permissions import PermissionSet

router = APIRouter(prefix="/api/approvals", tags=["approvals"])


class DecisionRequest(BaseModel):
    action: ApprovalAction
    reason: str = ""


def item_to_response(item: LoanApprovalItem, machine: ApprovalStateMachine) -> dict[str, Any]:
    out = item.model_dump(mode="json", exclude={"loan_details"})
    out["is_overdue"] = machine.is_overdue(item)
    out["available_actions"] = [
        {"stage": stage.value, "action": action.value} for stage, action in machine.available_actions(item)
    ]
    return out


async def _open_session(gateway, capabilities: PermissionSet) -> ApprovalReviewSession:
    session = ApprovalReviewSession(gateway, build_approval_machine(capabilities))
    await session.refresh()
    if session.error:
        raise HTTPException(status_code=502, detail=session.error)
    return session


@router.get("")
async def list_approvals(
    search: str = "",
    status: str = "all",
    gateway=Depends(get_gateway),
    capabilities: PermissionSet = Depends(get_capabilities),
):
    session = await _open_session(gateway, capabilities)
    return [item_to_response(item, session.machine) for item in session.filtered(search, status)]


async def _decide(
    loan_id: str,
    stage: ApprovalStage,
    body: DecisionRequest,
    gateway,
    capabilities: PermissionSet,
    actor: str,
):
    session = await _open_session(gateway, capabilities)
    outcome = await session.decide(loan_id, stage, body.action, body.reason, actor)
    if not outcome.success:
        raise HTTPException(status_code=502 if outcome.retryable else 409, detail=outcome.message)
    return {
        "success": True,
        "message": outcome.message,
        "item": item_to_response(outcome.item, session.machine) if outcome.item else None,
    }


@router.post("/{loan_id}/first")
async def first_approval(
    loan_id: str,
    body: DecisionRequest,
    gateway=Depends(get_gateway),
    capabilities: PermissionSet = Depends(get_capabilities),
    actor: str = Depends(get_actor),
):
    return await _decide(loan_id, ApprovalStage.FIRST, body, gateway, capabilities, actor)


@router.post("/{loan_id}/second")
async def second_approval(
    loan_id: str,
    body: DecisionRequest,
    gateway=Depends(get_gateway),
    capabilities: PermissionSet = Depends(get_capabilities),
    actor: str = Depends(get_actor),
):
    return await _decide(loan_id, ApprovalStage.SECOND, body, gateway, capabilities, actor)
