from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from schemas.application import LoanApplicationDraft


class SavedDraft(BaseModel):
    id: str
    name: str
    saved_at: datetime
    current_step: int = 1
    namespace: str = "loanCreation"
    owner_id: str = ""
    snapshot: LoanApplicationDraft


class DraftResult(BaseModel):
    success: bool
    message: str = ""
    draft: Optional[SavedDraft] = None
