from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from config import settings
from database import AsyncSessionLocal
from services.approval import ApprovalStateMachine
from services.drafts import DraftStore
from services.gateway import CoreBankingGateway
from services.permissions import PermissionSet
from services.sessions import WizardSessionRegistry, registry


def get_gateway(request: Request) -> CoreBankingGateway:
    """The app-wide backend client created in the lifespan handler."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Core banking gateway is not configured")
    return gateway


def get_registry() -> WizardSessionRegistry:
    return registry


def get_capabilities(x_permissions: Optional[str] = Header(None)) -> PermissionSet:
    return PermissionSet.from_header(x_permissions)


def get_actor(x_staff_id: Optional[str] = Header(None)) -> str:
    if not x_staff_id:
        raise HTTPException(status_code=401, detail="X-Staff-Id header is required")
    return x_staff_id


def get_draft_store(actor: str = Depends(get_actor)) -> DraftStore:
    """Drafts are private to the staff member making the request."""
    return DraftStore(AsyncSessionLocal, settings.draft_namespace, settings.max_draft_count, owner_id=actor)


def build_approval_machine(capabilities: PermissionSet) -> ApprovalStateMachine:
    return ApprovalStateMachine(
        capabilities,
        threshold=settings.second_approval_threshold,
        overdue_after=timedelta(minutes=settings.approval_overdue_minutes),
    )
