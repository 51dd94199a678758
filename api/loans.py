from __future__ import annotations

from fastapi import APIRouter, Depends

from api.approvals import item_to_response
from api.deps import build_approval_machine, get_actor, get_capabilities, get_gateway
from services.approval import ApprovalReviewSession
from services.permissions import PermissionSet

router = APIRouter(prefix="/api/loans", tags=["loans"])


@router.get("/sent-back", dependencies=[Depends(get_actor)])
async def list_sent_back_loans(
    search: str = "",
    gateway=Depends(get_gateway),
    capabilities: PermissionSet = Depends(get_capabilities),
):
    """Loans returned for correction; each can be reopened in the wizard's edit mode."""
    session = ApprovalReviewSession(gateway, build_approval_machine(capabilities))
    session.items = await session.fetch_sent_back()
    out = []
    for item in session.filtered(search):
        row = item_to_response(item, session.machine)
        row["can_edit"] = capabilities.can_edit
        out.append(row)
    return out
