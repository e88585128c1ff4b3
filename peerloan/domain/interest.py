"""Simple-interest arithmetic and balance rules for funded loans"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP

from peerloan.domain.exceptions import ValidationError
from peerloan.domain.models import LoanStatus

MIN_INTEREST_RATE = 0.0
MAX_INTEREST_RATE = 100.0


def check_interest_rate(interest_rate: float) -> float:
    """Reject annual rates outside [0, 100] percent"""
    if interest_rate is None or not MIN_INTEREST_RATE <= interest_rate <= MAX_INTEREST_RATE:
        raise ValidationError(
            f"Interest rate must be between {MIN_INTEREST_RATE:g} and {MAX_INTEREST_RATE:g}"
        )
    return interest_rate


def simple_interest_total_cents(amount_cents: int, interest_rate: float, duration_months: int) -> int:
    """
    Principal plus simple interest over the loan term.

    total = amount * (1 + rate/100 * months/12), rounded half-up to the cent.

    Example:
        1_000_000 cents at 12% for 6 months -> 1_060_000 cents
    """
    principal = Decimal(amount_cents)
    rate = Decimal(str(interest_rate)) / Decimal(100)
    years = Decimal(duration_months) / Decimal(12)
    total = principal * (Decimal(1) + rate * years)
    return int(total.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def remaining_cents(total_due_cents: int, total_repaid_cents: int, forgiven_cents: int = 0) -> int:
    """Outstanding balance, floored at zero"""
    return max(0, total_due_cents - total_repaid_cents - forgiven_cents)


def is_overdue(status: str, due_date: date | None, remaining: int, today: date) -> bool:
    """An ACTIVE loan past its due date with money still owed"""
    if status != LoanStatus.ACTIVE.value or due_date is None:
        return False
    return today > due_date and remaining > 0
