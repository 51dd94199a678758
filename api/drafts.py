from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_draft_store
from schemas.application import LoanApplicationDraft
from schemas.draft import SavedDraft
from services.drafts import DraftStore

router = APIRouter(prefix="/api/drafts", tags=["drafts"])


def draft_to_response(draft: LoanApplicationDraft) -> dict[str, Any]:
    """Serialize a draft without attachment bytes (only name, type and size)."""
    data = draft.model_dump(mode="json", exclude={"documents"})
    data["documents"] = {
        doc_type: {"filename": f.filename, "content_type": f.content_type, "size": f.size}
        for doc_type, f in draft.documents.items()
    }
    return data


def _saved_draft_to_response(saved: SavedDraft, include_snapshot: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": saved.id,
        "name": saved.name,
        "saved_at": saved.saved_at.isoformat() if saved.saved_at else None,
        "current_step": saved.current_step,
    }
    if include_snapshot:
        out["snapshot"] = draft_to_response(saved.snapshot)
    return out


@router.get("")
async def list_drafts(store: DraftStore = Depends(get_draft_store)):
    drafts = await store.list()
    return [_saved_draft_to_response(d) for d in drafts]


@router.get("/{draft_id}")
async def get_draft(draft_id: str, store: DraftStore = Depends(get_draft_store)):
    saved = await store.get(draft_id)
    return _saved_draft_to_response(saved, include_snapshot=True)


@router.delete("/{draft_id}")
async def delete_draft(draft_id: str, store: DraftStore = Depends(get_draft_store)):
    result = await store.delete(draft_id)
    if not result.success:
        status_code = 404 if result.message == "Draft not found" else 500
        raise HTTPException(status_code=status_code, detail=result.message)
    return {"success": True, "message": result.message}
