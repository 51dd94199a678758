from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class StepError(BaseModel):
    """First violated rule of a wizard step; returned, never raised."""

    step: int
    message: str

    def __str__(self) -> str:
        return self.message


class EligibilityBlocked(StepError):
    """Reloan gate failure with enough data to render a repayment progress indicator."""

    product_id: Optional[int] = None
    product_name: str = ""
    progress: float = 0
    paid_weeks: Optional[int] = None
    total_weeks: Optional[int] = None
    balance: Decimal = Decimal(0)
    required_progress: float = 70
