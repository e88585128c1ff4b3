"""Status transition tables for loan requests and loans"""

from typing import Dict, FrozenSet

from peerloan.domain.exceptions import ConflictError
from peerloan.domain.models import LoanStatus, RequestStatus

REQUEST_TRANSITIONS: Dict[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.PENDING: frozenset(
        {
            RequestStatus.APPROVED,
            RequestStatus.LOAN_RECEIVED_PENDING,
            RequestStatus.ACCEPTED,
            RequestStatus.CANCELLED,
            RequestStatus.REJECTED,
        }
    ),
    RequestStatus.APPROVED: frozenset(
        {RequestStatus.FUNDED, RequestStatus.LOAN_RECEIVED_PENDING, RequestStatus.REJECTED}
    ),
    RequestStatus.FUNDED: frozenset({RequestStatus.LOAN_RECEIVED_PENDING, RequestStatus.REJECTED}),
    RequestStatus.LOAN_RECEIVED_PENDING: frozenset({RequestStatus.REJECTED}),
    RequestStatus.ACCEPTED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
}

LOAN_TRANSITIONS: Dict[LoanStatus, FrozenSet[LoanStatus]] = {
    LoanStatus.LOAN_RECEIVED_PENDING: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.COMPLETED, LoanStatus.DEFAULTED}),
    LoanStatus.COMPLETED: frozenset(),
    LoanStatus.DEFAULTED: frozenset(),
}


def ensure_request_transition(current: str, target: str) -> RequestStatus:
    """Return the target status, or raise ConflictError for an edge not in the table"""
    source, destination = RequestStatus(current), RequestStatus(target)
    if destination not in REQUEST_TRANSITIONS[source]:
        raise ConflictError(f"Loan request cannot move from {source.value} to {destination.value}")
    return destination


def ensure_loan_transition(current: str, target: str) -> LoanStatus:
    source, destination = LoanStatus(current), LoanStatus(target)
    if destination not in LOAN_TRANSITIONS[source]:
        raise ConflictError(f"Loan cannot move from {source.value} to {destination.value}")
    return destination


def is_terminal_request(status: str) -> bool:
    return not REQUEST_TRANSITIONS[RequestStatus(status)]


def can_activate(borrower_confirmed: bool, lender_confirmed: bool, lender_id: str, selected_lender_id: str | None) -> bool:
    """
    Both parties confirmed and the lender is the one the borrower selected.

    Shared by both matching paths so the activation rule lives in one place.
    """
    return bool(borrower_confirmed and lender_confirmed and selected_lender_id == lender_id)
