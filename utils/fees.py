"""Fee and rental arithmetic shared by the draft model and the wizard."""
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

# Processing fee as a share of the approved amount, keyed by tenure in weeks
PROCESSING_FEE_TIERS: dict[int, Decimal] = {
    48: Decimal("0.04"),
    72: Decimal("0.06"),
}

_CENTS = Decimal("0.01")


def processing_fee_for(
    approved_amount: Optional[Decimal],
    tenure: Optional[int],
    current: Optional[Decimal] = None,
) -> Optional[Decimal]:
    """Tiered processing fee; tenures outside the tier table keep the current fee."""
    if tenure is None or tenure not in PROCESSING_FEE_TIERS:
        return current
    amount = Decimal(approved_amount or 0)
    return (amount * PROCESSING_FEE_TIERS[tenure]).quantize(_CENTS, rounding=ROUND_HALF_UP)


def processing_fee_label(tenure: Optional[int]) -> str:
    rate = PROCESSING_FEE_TIERS.get(tenure or 0)
    return f"{int(rate * 100)}%" if rate is not None else "manual"


def calculate_rental(
    principal: Optional[Decimal],
    interest_rate: Optional[Decimal],
    tenure: Optional[int],
) -> Optional[Decimal]:
    """Flat-rate instalment: (principal + principal * rate%) / tenure, to the cent."""
    if principal is None or interest_rate is None or not tenure or tenure <= 0:
        return None
    principal = Decimal(principal)
    total = principal + principal * Decimal(interest_rate) / Decimal(100)
    return (total / Decimal(tenure)).quantize(_CENTS, rounding=ROUND_HALF_UP)


def total_fees(*fees: Optional[Decimal]) -> Decimal:
    return sum((Decimal(f) for f in fees if f is not None), Decimal(0))


def format_lkr(amount: Decimal | int | float) -> str:
    value = Decimal(amount)
    if value == value.to_integral_value():
        return f"LKR {int(value):,}"
    return f"LKR {value:,.2f}"
