"""Loan creation and the two-party disbursement confirmation protocol"""

import uuid
from datetime import datetime
from typing import Callable

from peerloan.domain.events import request_updated_channel
from peerloan.domain.exceptions import AuthorizationError, ConflictError, ValidationError
from peerloan.domain.interest import check_interest_rate, remaining_cents, simple_interest_total_cents
from peerloan.domain.models import Caller, LoanActivation, LoanStatus, MatchSource, RequestStatus
from peerloan.domain.transitions import can_activate, ensure_loan_transition
from peerloan.infrastructure.database.models import LoanRecord, LoanRequestRecord
from peerloan.infrastructure.database.repositories import LoanRepository, LoanRequestRepository
from peerloan.infrastructure.observability.metrics import record_loan_opened
from peerloan.services.payloads import request_payload
from peerloan.services.request_lifecycle import move_request
from peerloan.services.unit_of_work import UnitOfWork, require_caller, require_found
from peerloan.utils.date_utils import add_months, utcnow


def move_loan(uow: UnitOfWork, loan: LoanRecord, target: LoanStatus, actor_id: str, now: datetime) -> None:
    destination = ensure_loan_transition(loan.status, target)
    previous = loan.status
    loan.status = destination.value
    loan.updated_at = now
    uow.record_transition("loan", loan.id, previous, destination.value, actor_id)


class DisbursementCoordinator:
    """
    Single entry point that turns a matched request into a Loan.

    Both matching paths hand over a LoanActivation; whether the loan starts
    ACTIVE or waits for the lender's confirmation is decided here by
    `can_activate`, and nowhere else.
    """

    def __init__(self, uow: UnitOfWork, clock: Callable[[], datetime] = utcnow):
        self.uow = uow
        self.clock = clock
        self.requests = LoanRequestRepository(uow.db)
        self.loans = LoanRepository(uow.db)

    def open_loan(self, activation: LoanActivation, actor_id: str) -> LoanRecord:
        """
        Validate an activation intent and persist the loan.

        Must run inside the caller's transaction so the loan commits together
        with the request/offer changes that produced it.
        """
        if activation.borrower_id == activation.lender_id:
            raise ValidationError("Borrower and lender must be different users")
        if activation.amount_cents <= 0:
            raise ValidationError("Loan amount must be greater than zero")
        if activation.duration_months < 1:
            raise ValidationError("Loan duration must be at least one month")
        check_interest_rate(activation.interest_rate)

        with self.uow.transaction():
            now = self.clock()
            disbursed_on = now.date()
            total_due = simple_interest_total_cents(
                activation.amount_cents, activation.interest_rate, activation.duration_months
            )
            active = can_activate(
                activation.borrower_confirmed,
                activation.lender_confirmed,
                activation.lender_id,
                activation.selected_lender_id,
            )
            status = LoanStatus.ACTIVE if active else LoanStatus.LOAN_RECEIVED_PENDING

            loan = LoanRecord(
                loan_request_id=activation.loan_request_id,
                borrower_id=activation.borrower_id,
                lender_id=activation.lender_id,
                source=MatchSource(activation.source).value,
                amount_cents=activation.amount_cents,
                interest_rate=activation.interest_rate,
                duration_months=activation.duration_months,
                total_due_cents=total_due,
                disbursement_date=disbursed_on,
                due_date=add_months(disbursed_on, activation.duration_months),
                status=status.value,
                borrower_confirmed=activation.borrower_confirmed,
                lender_confirmed=activation.lender_confirmed,
                selected_lender_by_borrower=activation.selected_lender_id,
                confirmed_at=now if active else None,
                total_repaid_cents=0,
                forgiven_cents=0,
                remaining_cents=remaining_cents(total_due, 0),
                created_at=now,
                updated_at=now,
            )
            self.loans.add(loan)
            self.uow.record_transition("loan", loan.id, None, loan.status, actor_id)
            source, opened_as = loan.source, loan.status
            self.uow.on_commit(lambda: record_loan_opened(source, opened_as))

        return loan

    def mark_received(self, caller: Caller, request_id: uuid.UUID, lender_id: str) -> LoanRequestRecord:
        """
        Borrower reports the funds as received from an interested lender.

        Opens a loan confirmed by the borrower only; it stays
        LOAN_RECEIVED_PENDING until that lender confirms the disbursement.
        """
        caller = require_caller(caller)

        with self.uow.transaction():
            record = require_found(self.requests.get(request_id, lock=True), "Loan request not found")
            if record.borrower_id != caller.user_id:
                raise AuthorizationError("Only the borrower can mark the loan as received")
            entry = record.find_interest(lender_id)
            if entry is None:
                raise ValidationError("This lender has not expressed interest in your loan request")
            if record.linked_loan_id is not None:
                raise ConflictError("A loan already exists for this request")

            now = self.clock()
            move_request(self.uow, record, RequestStatus.LOAN_RECEIVED_PENDING, caller.user_id, now)
            loan = self.open_loan(
                LoanActivation(
                    loan_request_id=record.id,
                    borrower_id=record.borrower_id,
                    lender_id=lender_id,
                    selected_lender_id=lender_id,
                    amount_cents=record.amount_cents,
                    interest_rate=entry.interest_rate,
                    duration_months=record.duration_months,
                    source=MatchSource.DIRECT,
                    borrower_confirmed=True,
                    lender_confirmed=False,
                ),
                actor_id=caller.user_id,
            )
            record.linked_loan_id = loan.id
            self.uow.emit(request_updated_channel(record.id), request_payload(record))

        return record

    def confirm_disbursement(self, caller: Caller, loan_id: uuid.UUID) -> LoanRecord:
        """Lender side of the handshake; activates the loan when both sides agree"""
        caller = require_caller(caller)

        with self.uow.transaction():
            loan = require_found(self.loans.get(loan_id, lock=True), "Loan not found")
            if loan.lender_id != caller.user_id:
                raise AuthorizationError("Only the lender can confirm disbursement")
            if loan.status != LoanStatus.LOAN_RECEIVED_PENDING.value:
                raise ConflictError("Loan is not in pending confirmation state")
            self._require_awaiting_disbursement(self.requests.get(loan.loan_request_id))

            now = self.clock()
            loan.lender_confirmed = True
            loan.confirmed_at = now
            loan.updated_at = now

            # Identity check against the borrower's selection, not just the stored lender
            if can_activate(loan.borrower_confirmed, loan.lender_confirmed, caller.user_id, loan.selected_lender_by_borrower):
                move_loan(self.uow, loan, LoanStatus.ACTIVE, caller.user_id, now)

        return loan

    def edit_loan_received(self, caller: Caller, request_id: uuid.UUID, new_lender_id: str) -> LoanRequestRecord:
        """Borrower re-targets a still-unconfirmed loan at another interested lender"""
        caller = require_caller(caller)

        with self.uow.transaction():
            record = require_found(self.requests.get(request_id, lock=True), "Loan request not found")
            if record.borrower_id != caller.user_id:
                raise AuthorizationError("Only the borrower can edit loan details")

            loan = self.loans.get(record.linked_loan_id, lock=True) if record.linked_loan_id else None
            if loan is None or loan.status != LoanStatus.LOAN_RECEIVED_PENDING.value:
                raise ConflictError("Loan is not in editable state")
            self._require_awaiting_disbursement(record)

            entry = record.find_interest(new_lender_id)
            if entry is None:
                raise ValidationError("This lender has not expressed interest in your loan request")

            now = self.clock()
            total_due = simple_interest_total_cents(loan.amount_cents, entry.interest_rate, loan.duration_months)
            loan.lender_id = new_lender_id
            loan.selected_lender_by_borrower = new_lender_id
            loan.interest_rate = entry.interest_rate
            loan.total_due_cents = total_due
            loan.remaining_cents = remaining_cents(total_due, loan.total_repaid_cents, loan.forgiven_cents)
            loan.lender_confirmed = False
            loan.confirmed_at = None
            loan.updated_at = now
            record.updated_at = now
            self.uow.emit(request_updated_channel(record.id), request_payload(record))

        return record

    @staticmethod
    def _require_awaiting_disbursement(record: LoanRequestRecord | None) -> None:
        """A pending loan is only live while its request still waits on the handshake"""
        if record is None or record.status != RequestStatus.LOAN_RECEIVED_PENDING.value:
            raise ConflictError("Loan request is no longer awaiting disbursement")
