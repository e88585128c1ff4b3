"""/v1/offers - competing offers and their acceptance"""

import uuid
from typing import List

from fastapi import APIRouter, Depends

from peerloan.api.dependencies import get_caller, get_loan_queries, get_offer_matching, schedule_outbox_dispatch
from peerloan.api.v1.schemas import LoanResponse, OfferCreate, OfferResponse
from peerloan.domain.models import Caller
from peerloan.services.offer_matching import OfferMatchingEngine
from peerloan.services.queries import LoanQueries

router = APIRouter(prefix="/offers")

dispatch = [Depends(schedule_outbox_dispatch)]


@router.post("", response_model=OfferResponse, status_code=201, dependencies=dispatch)
def make_offer(
    body: OfferCreate,
    caller: Caller = Depends(get_caller),
    matching: OfferMatchingEngine = Depends(get_offer_matching),
):
    """Create or refresh the caller's offer on a pending request"""
    return matching.make_offer(caller, body.loan_request_id, body.interest_rate, body.message)


@router.get("/mine", response_model=List[OfferResponse])
def my_offers(caller: Caller = Depends(get_caller), queries: LoanQueries = Depends(get_loan_queries)):
    return queries.my_offers(caller)


@router.post("/{offer_id}/accept", response_model=LoanResponse, dependencies=dispatch)
def accept_offer(
    offer_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    matching: OfferMatchingEngine = Depends(get_offer_matching),
):
    """
    Accept one offer on the caller's request.

    Returns:
        The ACTIVE loan created from the offer. 409 if the request was
        already accepted or the offer is no longer pending.
    """
    return matching.accept_offer(caller, offer_id)


@router.post("/{offer_id}/reject", response_model=OfferResponse, dependencies=dispatch)
def reject_offer(
    offer_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    matching: OfferMatchingEngine = Depends(get_offer_matching),
):
    return matching.reject_offer(caller, offer_id)


@router.post("/{offer_id}/withdraw", response_model=OfferResponse, dependencies=dispatch)
def withdraw_offer(
    offer_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    matching: OfferMatchingEngine = Depends(get_offer_matching),
):
    return matching.withdraw_offer(caller, offer_id)
