"""Creation, matching state and status transitions of loan requests"""

import uuid
from datetime import datetime
from typing import Callable, Optional

from peerloan.domain.events import NEW_LOAN_REQUEST, interest_received_channel, request_updated_channel
from peerloan.domain.exceptions import AuthorizationError, ConflictError, ValidationError
from peerloan.domain.interest import check_interest_rate
from peerloan.domain.models import (
    Caller,
    CollateralDocumentInput,
    DocumentType,
    RequestStatus,
    RequestTerms,
    SecurityType,
)
from peerloan.domain.terms import validate_request_terms
from peerloan.domain.transitions import ensure_request_transition, is_terminal_request
from peerloan.infrastructure.database.models import (
    CollateralDocumentRecord,
    InterestedLenderRecord,
    LoanRequestRecord,
)
from peerloan.infrastructure.database.repositories import LoanRepository, LoanRequestRepository
from peerloan.services.payloads import interest_payload, request_payload
from peerloan.services.unit_of_work import UnitOfWork, require_caller, require_found
from peerloan.utils.date_utils import add_months, utcnow

# Targets reached only through their dedicated operation, never by a manual status update
OWNED_TARGETS = {
    RequestStatus.APPROVED: "select_lender",
    RequestStatus.FUNDED: "accept_terms",
    RequestStatus.LOAN_RECEIVED_PENDING: "mark_received",
    RequestStatus.ACCEPTED: "accept_offer",
}


def move_request(
    uow: UnitOfWork, record: LoanRequestRecord, target: RequestStatus, actor_id: str, now: datetime
) -> None:
    """Apply a table-checked status transition and stamp the record"""
    destination = ensure_request_transition(record.status, target)
    previous = record.status
    record.status = destination.value
    record.updated_at = now
    uow.record_transition("loan_request", record.id, previous, destination.value, actor_id)


class RequestLifecycle:
    """Owns a loan request from creation until it is matched, cancelled or rejected"""

    def __init__(self, uow: UnitOfWork, clock: Callable[[], datetime] = utcnow):
        self.uow = uow
        self.clock = clock
        self.requests = LoanRequestRepository(uow.db)
        self.loans = LoanRepository(uow.db)

    def create_request(self, caller: Caller, terms: RequestTerms) -> LoanRequestRecord:
        """
        Open a new PENDING request for the caller.

        A borrower holds one live funding need at a time: a PENDING request
        or an unresolved loan blocks a new request.

        Raises:
            ValidationError: Malformed terms or collateral mismatch
            ConflictError: Borrower already has a pending request or open loan
        """
        caller = require_caller(caller)
        validate_request_terms(terms)

        with self.uow.transaction():
            if self.loans.find_open_for_borrower(caller.user_id):
                raise ConflictError(
                    "You already have an active loan. Complete or close it before requesting a new one"
                )
            if self.requests.find_pending_for_borrower(caller.user_id):
                raise ConflictError(
                    "You already have a pending loan request. Cancel it or wait for it to be processed"
                )

            now = self.clock()
            record = LoanRequestRecord(
                borrower_id=caller.user_id,
                amount_cents=terms.amount_cents,
                purpose=terms.purpose.strip(),
                description=terms.description,
                credit_score=terms.credit_score,
                duration_months=terms.duration_months,
                security_type=SecurityType(terms.security_type).value,
                status=RequestStatus.PENDING.value,
                agreement_terms_accepted=False,
                created_at=now,
                updated_at=now,
            )
            if terms.collateral is not None:
                record.collateral_type = terms.collateral.type.value
                record.collateral_value_cents = terms.collateral.estimated_value_cents
                for document in terms.collateral.documents:
                    record.collateral_documents.append(self._document(document, now))

            self.requests.add(record)
            self.uow.record_transition("loan_request", record.id, None, record.status, caller.user_id)
            self.uow.emit(NEW_LOAN_REQUEST, request_payload(record))

        return record

    def express_interest(
        self, caller: Caller, request_id: uuid.UUID, interest_rate: float, message: Optional[str] = None
    ) -> LoanRequestRecord:
        """Add or refresh the caller's entry in the interested-lenders list"""
        caller = require_caller(caller)
        if not caller.can_lend:
            raise AuthorizationError("Only lenders can express interest")
        check_interest_rate(interest_rate)

        with self.uow.transaction():
            record = require_found(self.requests.get(request_id, lock=True), "Loan request not found")
            if record.borrower_id == caller.user_id:
                raise AuthorizationError("You cannot express interest in your own loan request")
            if record.status != RequestStatus.PENDING.value:
                raise ConflictError("This loan request is no longer open for interest")

            now = self.clock()
            entry = record.find_interest(caller.user_id)
            if entry is not None:
                entry.interest_rate = interest_rate
                entry.message = message
                entry.timestamp = now
            else:
                entry = InterestedLenderRecord(
                    lender_id=caller.user_id,
                    interest_rate=interest_rate,
                    message=message,
                    timestamp=now,
                )
                record.interested_lenders.append(entry)

            # Touching the parent row bumps its version
            record.updated_at = now
            self.uow.db.flush()
            self.uow.emit(interest_received_channel(record.borrower_id), interest_payload(record, entry))

        return record

    def select_lender(self, caller: Caller, request_id: uuid.UUID, lender_id: str) -> LoanRequestRecord:
        """Borrower picks an interested lender; the agreement is drafted at that lender's rate"""
        caller = require_caller(caller)

        with self.uow.transaction():
            record = require_found(self.requests.get(request_id, lock=True), "Loan request not found")
            if record.borrower_id != caller.user_id:
                raise AuthorizationError("Not authorized to select a lender for this request")

            entry = record.find_interest(lender_id)
            if entry is None:
                raise ValidationError("This lender has not expressed interest in your loan request")

            now = self.clock()
            move_request(self.uow, record, RequestStatus.APPROVED, caller.user_id, now)
            start = now.date()
            record.selected_lender_id = lender_id
            record.agreement_interest_rate = entry.interest_rate
            record.agreement_start_date = start
            record.agreement_end_date = add_months(start, record.duration_months)
            record.agreement_terms_accepted = False
            self.uow.emit(request_updated_channel(record.id), request_payload(record))

        return record

    def accept_terms(self, caller: Caller, request_id: uuid.UUID) -> LoanRequestRecord:
        caller = require_caller(caller)

        with self.uow.transaction():
            record = require_found(self.requests.get(request_id, lock=True), "Loan request not found")
            if record.selected_lender_id is None or record.selected_lender_id != caller.user_id:
                raise AuthorizationError("Only the selected lender can accept terms")

            move_request(self.uow, record, RequestStatus.FUNDED, caller.user_id, self.clock())
            record.agreement_terms_accepted = True
            self.uow.emit(request_updated_channel(record.id), request_payload(record))

        return record

    def update_status(self, caller: Caller, request_id: uuid.UUID, new_status: str) -> LoanRequestRecord:
        """
        Operational status correction by the borrower, the selected lender or an admin.

        Only edges present in the transition table are accepted, and statuses
        that carry extra state (agreement, linked loan, accepted offer) must
        go through their own operation. A request with a linked loan is
        frozen so it can never be rejected under a live loan.
        """
        caller = require_caller(caller)
        try:
            target = RequestStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown loan request status: {new_status}")

        with self.uow.transaction():
            record = require_found(self.requests.get(request_id, lock=True), "Loan request not found")
            is_borrower = record.borrower_id == caller.user_id
            is_lender = record.selected_lender_id is not None and record.selected_lender_id == caller.user_id
            if not (is_borrower or is_lender or caller.is_admin):
                raise AuthorizationError("Not authorized to update this loan request")
            if target in OWNED_TARGETS:
                raise ConflictError(f"Status {target.value} is set by {OWNED_TARGETS[target]}")
            # Once a loan exists the request follows the loan
            if record.linked_loan_id is not None:
                raise ConflictError("This loan request already has a loan and can no longer change status")

            move_request(self.uow, record, target, caller.user_id, self.clock())
            self.uow.emit(request_updated_channel(record.id), request_payload(record))

        return record

    def cancel_request(self, caller: Caller, request_id: uuid.UUID) -> None:
        """Owner removes a request that has not been matched yet"""
        caller = require_caller(caller)

        with self.uow.transaction():
            record = require_found(self.requests.get(request_id, lock=True), "Loan request not found")
            if record.borrower_id != caller.user_id:
                raise AuthorizationError("Only the borrower can delete their loan request")
            if record.status != RequestStatus.PENDING.value:
                raise ConflictError("Can only delete pending loan requests. This request has already been processed")

            previous = record.status
            payload = request_payload(record)
            payload["status"] = RequestStatus.CANCELLED.value
            self.requests.delete(record)
            self.uow.record_transition("loan_request", record.id, previous, RequestStatus.CANCELLED.value, caller.user_id)
            self.uow.emit(request_updated_channel(record.id), payload)

    def add_collateral_document(
        self, caller: Caller, request_id: uuid.UUID, document: CollateralDocumentInput
    ) -> LoanRequestRecord:
        """Attach an uploaded document to a secured request's collateral"""
        caller = require_caller(caller)

        with self.uow.transaction():
            record = require_found(self.requests.get(request_id, lock=True), "Loan request not found")
            if record.borrower_id != caller.user_id:
                raise AuthorizationError("Not authorized to update this loan request")
            if record.security_type != SecurityType.SECURED.value:
                raise ValidationError("Collateral documents can only be added to secured requests")
            if is_terminal_request(record.status):
                raise ConflictError("This loan request can no longer be changed")

            now = self.clock()
            record.collateral_documents.append(self._document(document, now))
            record.updated_at = now
            self.uow.db.flush()
            self.uow.emit(request_updated_channel(record.id), request_payload(record))

        return record

    @staticmethod
    def _document(document: CollateralDocumentInput, now: datetime) -> CollateralDocumentRecord:
        try:
            document_type = DocumentType(document.type)
        except ValueError:
            raise ValidationError(f"Unsupported document type: {document.type}")
        if not document.url or not document.name:
            raise ValidationError("Collateral documents need a url and a name")
        return CollateralDocumentRecord(
            type=document_type.value,
            url=document.url,
            name=document.name,
            uploaded_at=now,
        )
