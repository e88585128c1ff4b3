"""Read-side loan aggregates, computed from loan records on every call"""

from datetime import date
from typing import Iterable, Protocol

from peerloan.domain.interest import is_overdue
from peerloan.domain.models import LoanMetrics, LoanStatus

OPEN_STATUSES = (LoanStatus.LOAN_RECEIVED_PENDING.value, LoanStatus.ACTIVE.value)


class LoanLike(Protocol):
    amount_cents: int
    remaining_cents: int
    status: str
    due_date: date | None


def compute_loan_metrics(borrowed: Iterable[LoanLike], lent: Iterable[LoanLike], today: date) -> LoanMetrics:
    """Aggregate borrowed and lent loans into one metrics snapshot"""
    borrowed = list(borrowed)
    lent = list(lent)

    return LoanMetrics(
        total_borrowed_cents=sum(loan.amount_cents for loan in borrowed),
        total_lent_cents=sum(loan.amount_cents for loan in lent),
        active_borrowed_count=sum(1 for loan in borrowed if loan.status in OPEN_STATUSES),
        active_lent_count=sum(1 for loan in lent if loan.status in OPEN_STATUSES),
        completed_borrowed_count=sum(1 for loan in borrowed if loan.status == LoanStatus.COMPLETED.value),
        completed_lent_count=sum(1 for loan in lent if loan.status == LoanStatus.COMPLETED.value),
        total_to_repay_cents=sum(loan.remaining_cents for loan in borrowed if loan.status in OPEN_STATUSES),
        overdue_count=sum(
            1 for loan in borrowed if is_overdue(loan.status, loan.due_date, loan.remaining_cents, today)
        ),
    )
