"""/v1/loans - funded loans, disbursement confirmation and repayments"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from peerloan.api.dependencies import (
    get_caller,
    get_disbursement_coordinator,
    get_loan_queries,
    get_repayment_ledger,
    schedule_outbox_dispatch,
)
from peerloan.api.v1.schemas import ActiveLoanResponse, LoanMetricsResponse, LoanResponse, RepaymentCreate
from peerloan.domain.models import Caller, LoanSide
from peerloan.services.disbursement import DisbursementCoordinator
from peerloan.services.queries import LoanQueries
from peerloan.services.repayment_ledger import RepaymentLedger

router = APIRouter(prefix="/loans")

dispatch = [Depends(schedule_outbox_dispatch)]


@router.get("", response_model=List[LoanResponse])
def my_loans(
    kind: str = LoanSide.BORROWED.value,
    status: Optional[str] = None,
    caller: Caller = Depends(get_caller),
    queries: LoanQueries = Depends(get_loan_queries),
):
    """Loans the caller borrowed or lent, optionally filtered by status"""
    return queries.my_loans(caller, kind=kind, status=status)


@router.get("/active", response_model=ActiveLoanResponse)
def active_loan(caller: Caller = Depends(get_caller), queries: LoanQueries = Depends(get_loan_queries)):
    return ActiveLoanResponse(loan=queries.active_loan(caller))


@router.get("/history", response_model=List[LoanResponse])
def loan_history(
    kind: str = LoanSide.BORROWED.value,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    caller: Caller = Depends(get_caller),
    queries: LoanQueries = Depends(get_loan_queries),
):
    return queries.loan_history(caller, kind=kind, page=page, limit=limit)


@router.get("/metrics", response_model=LoanMetricsResponse)
def loan_metrics(caller: Caller = Depends(get_caller), queries: LoanQueries = Depends(get_loan_queries)):
    """
    Portfolio aggregates for the caller.

    Computed from the loan records on every call.
    """
    return queries.loan_metrics(caller)


@router.get("/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: uuid.UUID, caller: Caller = Depends(get_caller), queries: LoanQueries = Depends(get_loan_queries)):
    return queries.get_loan(caller, loan_id)


@router.post("/{loan_id}/confirm", response_model=LoanResponse, dependencies=dispatch)
def confirm_disbursement(
    loan_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    coordinator: DisbursementCoordinator = Depends(get_disbursement_coordinator),
):
    """Lender confirms the funds were sent"""
    return coordinator.confirm_disbursement(caller, loan_id)


@router.post("/{loan_id}/repayments", response_model=LoanResponse, dependencies=dispatch)
def record_repayment(
    loan_id: uuid.UUID,
    body: RepaymentCreate,
    caller: Caller = Depends(get_caller),
    ledger: RepaymentLedger = Depends(get_repayment_ledger),
):
    return ledger.record_repayment(caller, loan_id, body.amount_cents, body.note)


@router.post("/{loan_id}/complete", response_model=LoanResponse, dependencies=dispatch)
def mark_completed(
    loan_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    ledger: RepaymentLedger = Depends(get_repayment_ledger),
):
    return ledger.mark_completed(caller, loan_id)


@router.post("/{loan_id}/default", response_model=LoanResponse, dependencies=dispatch)
def mark_defaulted(
    loan_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    ledger: RepaymentLedger = Depends(get_repayment_ledger),
):
    return ledger.mark_defaulted(caller, loan_id)
