"""/v1/loan-requests - request creation, direct matching and listings"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from peerloan.api.dependencies import (
    get_caller,
    get_disbursement_coordinator,
    get_loan_queries,
    get_request_lifecycle,
    schedule_outbox_dispatch,
)
from peerloan.api.v1.schemas import (
    CollateralDocumentIn,
    InterestIn,
    LenderChoice,
    LoanRequestCreate,
    LoanRequestResponse,
    OfferResponse,
    StatusUpdate,
)
from peerloan.domain.models import Caller
from peerloan.services.disbursement import DisbursementCoordinator
from peerloan.services.queries import LoanQueries
from peerloan.services.request_lifecycle import RequestLifecycle

router = APIRouter(prefix="/loan-requests")

# Mutations drain the event outbox once the response is out
dispatch = [Depends(schedule_outbox_dispatch)]


@router.post("", response_model=LoanRequestResponse, status_code=201, dependencies=dispatch)
def create_loan_request(
    body: LoanRequestCreate,
    caller: Caller = Depends(get_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    """
    Open a new loan request.

    Returns:
        The PENDING request. 409 if the borrower already has a pending
        request or an unresolved loan.
    """
    return lifecycle.create_request(caller, body.to_terms())


@router.get("", response_model=List[LoanRequestResponse])
def list_loan_requests(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    caller: Caller = Depends(get_caller),
    queries: LoanQueries = Depends(get_loan_queries),
):
    """Other borrowers' requests, newest first"""
    return queries.list_requests(caller, status=status, page=page, limit=limit)


@router.get("/mine", response_model=List[LoanRequestResponse])
def my_loan_requests(caller: Caller = Depends(get_caller), queries: LoanQueries = Depends(get_loan_queries)):
    return queries.my_requests(caller)


@router.get("/available", response_model=List[LoanRequestResponse])
def available_loan_requests(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    caller: Caller = Depends(get_caller),
    queries: LoanQueries = Depends(get_loan_queries),
):
    return queries.available_requests(caller, page=page, limit=limit)


@router.get("/{request_id}", response_model=LoanRequestResponse)
def get_loan_request(
    request_id: uuid.UUID, caller: Caller = Depends(get_caller), queries: LoanQueries = Depends(get_loan_queries)
):
    return queries.get_request(caller, request_id)


@router.delete("/{request_id}", status_code=204, dependencies=dispatch)
def cancel_loan_request(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    lifecycle.cancel_request(caller, request_id)
    return Response(status_code=204)


@router.post("/{request_id}/interest", response_model=LoanRequestResponse, dependencies=dispatch)
def express_interest(
    request_id: uuid.UUID,
    body: InterestIn,
    caller: Caller = Depends(get_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    return lifecycle.express_interest(caller, request_id, body.interest_rate, body.message)


@router.post("/{request_id}/select-lender", response_model=LoanRequestResponse, dependencies=dispatch)
def select_lender(
    request_id: uuid.UUID,
    body: LenderChoice,
    caller: Caller = Depends(get_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    return lifecycle.select_lender(caller, request_id, body.lender_id)


@router.post("/{request_id}/accept-terms", response_model=LoanRequestResponse, dependencies=dispatch)
def accept_terms(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    return lifecycle.accept_terms(caller, request_id)


@router.patch("/{request_id}/status", response_model=LoanRequestResponse, dependencies=dispatch)
def update_loan_request_status(
    request_id: uuid.UUID,
    body: StatusUpdate,
    caller: Caller = Depends(get_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    return lifecycle.update_status(caller, request_id, body.status)


@router.post("/{request_id}/documents", response_model=LoanRequestResponse, dependencies=dispatch)
def add_collateral_document(
    request_id: uuid.UUID,
    body: CollateralDocumentIn,
    caller: Caller = Depends(get_caller),
    lifecycle: RequestLifecycle = Depends(get_request_lifecycle),
):
    return lifecycle.add_collateral_document(caller, request_id, body.to_domain())


@router.post("/{request_id}/loan-received", response_model=LoanRequestResponse, dependencies=dispatch)
def mark_loan_received(
    request_id: uuid.UUID,
    body: LenderChoice,
    caller: Caller = Depends(get_caller),
    coordinator: DisbursementCoordinator = Depends(get_disbursement_coordinator),
):
    """Borrower reports the funds from an interested lender as received"""
    return coordinator.mark_received(caller, request_id, body.lender_id)


@router.put("/{request_id}/loan-received", response_model=LoanRequestResponse, dependencies=dispatch)
def edit_loan_received(
    request_id: uuid.UUID,
    body: LenderChoice,
    caller: Caller = Depends(get_caller),
    coordinator: DisbursementCoordinator = Depends(get_disbursement_coordinator),
):
    return coordinator.edit_loan_received(caller, request_id, body.lender_id)


@router.get("/{request_id}/offers", response_model=List[OfferResponse])
def offers_for_loan_request(
    request_id: uuid.UUID, caller: Caller = Depends(get_caller), queries: LoanQueries = Depends(get_loan_queries)
):
    return queries.offers_for_request(caller, request_id)
