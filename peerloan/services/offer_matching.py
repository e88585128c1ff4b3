"""Competing-offer matching: lenders bid, the borrower accepts exactly one"""

import uuid
from datetime import datetime
from typing import Callable, Optional

from peerloan.domain.events import request_updated_channel
from peerloan.domain.exceptions import AuthorizationError, ConflictError, ValidationError
from peerloan.domain.interest import check_interest_rate
from peerloan.domain.models import Caller, LoanActivation, MatchSource, OfferStatus, RequestStatus
from peerloan.infrastructure.database.models import LoanOfferRecord, LoanRecord
from peerloan.infrastructure.database.repositories import LoanOfferRepository, LoanRequestRepository
from peerloan.services.disbursement import DisbursementCoordinator
from peerloan.services.payloads import request_payload
from peerloan.services.request_lifecycle import move_request
from peerloan.services.unit_of_work import UnitOfWork, require_caller, require_found
from peerloan.utils.date_utils import utcnow

MAX_MESSAGE_LENGTH = 500


class OfferMatchingEngine:
    def __init__(
        self,
        uow: UnitOfWork,
        coordinator: Optional[DisbursementCoordinator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.uow = uow
        self.clock = clock
        self.coordinator = coordinator or DisbursementCoordinator(uow, clock=clock)
        self.requests = LoanRequestRepository(uow.db)
        self.offers = LoanOfferRepository(uow.db)

    def make_offer(
        self, caller: Caller, request_id: uuid.UUID, interest_rate: float, message: Optional[str] = None
    ) -> LoanOfferRecord:
        """
        Create the caller's offer on a request, or refresh the one they already hold.

        A refreshed offer takes the new rate and message and goes back to
        PENDING; an accepted offer is final.
        """
        caller = require_caller(caller)
        if not caller.can_lend:
            raise AuthorizationError("Only lenders can make loan offers")
        check_interest_rate(interest_rate)
        if message is not None and len(message) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Offer message cannot exceed {MAX_MESSAGE_LENGTH} characters")

        with self.uow.transaction():
            request = require_found(self.requests.get(request_id), "Loan request not found")
            if request.borrower_id == caller.user_id:
                raise AuthorizationError("You cannot offer a loan on your own request")
            if request.status != RequestStatus.PENDING.value:
                raise ConflictError("This loan request is no longer accepting offers")

            now = self.clock()
            offer = self.offers.find_for_lender(request.id, caller.user_id, lock=True)
            if offer is not None:
                if offer.status == OfferStatus.ACCEPTED.value:
                    raise ConflictError("This offer has already been accepted")
                previous = offer.status
                offer.interest_rate = interest_rate
                offer.amount_cents = request.amount_cents
                offer.message = message
                offer.status = OfferStatus.PENDING.value
                offer.updated_at = now
                if previous != offer.status:
                    self.uow.record_transition("loan_offer", offer.id, previous, offer.status, caller.user_id)
            else:
                offer = self.offers.add(
                    LoanOfferRecord(
                        loan_request_id=request.id,
                        lender_id=caller.user_id,
                        interest_rate=interest_rate,
                        amount_cents=request.amount_cents,
                        message=message,
                        status=OfferStatus.PENDING.value,
                        created_at=now,
                        updated_at=now,
                    )
                )
                self.uow.record_transition("loan_offer", offer.id, None, offer.status, caller.user_id)

        return offer

    def accept_offer(self, caller: Caller, offer_id: uuid.UUID) -> LoanRecord:
        """
        Borrower accepts one offer and the loan is opened from it.

        Accepting the offer, rejecting every sibling PENDING offer, marking
        the request ACCEPTED and creating the loan commit as one transaction.
        The request row is locked and version-checked, so of two concurrent
        acceptances on one request only the first commits.

        Raises:
            AuthorizationError: Caller is not the request's borrower
            ConflictError: Request already accepted or offer no longer pending
        """
        caller = require_caller(caller)

        with self.uow.transaction():
            offer = require_found(self.offers.get(offer_id, lock=True), "Offer not found")
            request = require_found(self.requests.get(offer.loan_request_id, lock=True), "Loan request not found")
            if request.borrower_id != caller.user_id:
                raise AuthorizationError("Only the borrower can accept offers")
            if request.status == RequestStatus.ACCEPTED.value:
                raise ConflictError("This loan request has already been accepted")
            if offer.status != OfferStatus.PENDING.value:
                raise ConflictError(f"Offer is {offer.status} and can no longer be accepted")

            now = self.clock()
            self._set_offer_status(offer, OfferStatus.ACCEPTED, caller.user_id, now)
            for sibling in self.offers.find_pending_for_request(request.id, lock=True):
                if sibling.id != offer.id:
                    self._set_offer_status(sibling, OfferStatus.REJECTED, caller.user_id, now)

            move_request(self.uow, request, RequestStatus.ACCEPTED, caller.user_id, now)
            request.accepted_offer_id = offer.id
            request.accepted_at = now

            # Acceptance is the borrower's confirmation; the offer itself is the lender's
            loan = self.coordinator.open_loan(
                LoanActivation(
                    loan_request_id=request.id,
                    borrower_id=request.borrower_id,
                    lender_id=offer.lender_id,
                    selected_lender_id=offer.lender_id,
                    amount_cents=request.amount_cents,
                    interest_rate=offer.interest_rate,
                    duration_months=request.duration_months,
                    source=MatchSource.OFFER,
                    borrower_confirmed=True,
                    lender_confirmed=True,
                ),
                actor_id=caller.user_id,
            )
            request.linked_loan_id = loan.id
            self.uow.emit(request_updated_channel(request.id), request_payload(request))

        return loan

    def reject_offer(self, caller: Caller, offer_id: uuid.UUID) -> LoanOfferRecord:
        caller = require_caller(caller)

        with self.uow.transaction():
            offer = require_found(self.offers.get(offer_id, lock=True), "Offer not found")
            request = require_found(self.requests.get(offer.loan_request_id), "Loan request not found")
            if request.borrower_id != caller.user_id:
                raise AuthorizationError("Only the borrower can reject offers")
            if offer.status != OfferStatus.PENDING.value:
                raise ConflictError(f"Offer is {offer.status} and can no longer be rejected")

            self._set_offer_status(offer, OfferStatus.REJECTED, caller.user_id, self.clock())

        return offer

    def withdraw_offer(self, caller: Caller, offer_id: uuid.UUID) -> LoanOfferRecord:
        """Lender pulls back their own pending offer"""
        caller = require_caller(caller)

        with self.uow.transaction():
            offer = require_found(self.offers.get(offer_id, lock=True), "Offer not found")
            if offer.lender_id != caller.user_id:
                raise AuthorizationError("Only the offering lender can withdraw this offer")
            if offer.status != OfferStatus.PENDING.value:
                raise ConflictError(f"Offer is {offer.status} and can no longer be withdrawn")

            self._set_offer_status(offer, OfferStatus.WITHDRAWN, caller.user_id, self.clock())

        return offer

    def _set_offer_status(self, offer: LoanOfferRecord, status: OfferStatus, actor_id: str, now: datetime) -> None:
        previous = offer.status
        offer.status = status.value
        offer.updated_at = now
        self.uow.record_transition("loan_offer", offer.id, previous, status.value, actor_id)
