"""Repayments, completion and default of funded loans"""

import uuid
from datetime import datetime
from typing import Callable, Optional

from peerloan.domain.exceptions import AuthorizationError, ConflictError, ValidationError
from peerloan.domain.interest import is_overdue, remaining_cents
from peerloan.domain.models import Caller, LoanStatus
from peerloan.infrastructure.database.models import LoanRecord, RepaymentRecord
from peerloan.infrastructure.database.repositories import LoanRepository
from peerloan.infrastructure.observability.metrics import repayment_amount_counter
from peerloan.services.disbursement import move_loan
from peerloan.services.unit_of_work import UnitOfWork, require_caller, require_found
from peerloan.utils.date_utils import utcnow


class RepaymentLedger:
    """
    Append-only repayment history per loan.

    remaining = max(0, total_due - total_repaid - forgiven) is recomputed
    after every change and a loan reaching zero completes itself.
    """

    def __init__(self, uow: UnitOfWork, clock: Callable[[], datetime] = utcnow):
        self.uow = uow
        self.clock = clock
        self.loans = LoanRepository(uow.db)

    def record_repayment(
        self, caller: Caller, loan_id: uuid.UUID, amount_cents: int, note: Optional[str] = None
    ) -> LoanRecord:
        """
        Lender records money received back from the borrower.

        Raises:
            ValidationError: Non-positive amount
            AuthorizationError: Caller is not the loan's lender
            ConflictError: Loan is not ACTIVE
        """
        caller = require_caller(caller)
        if amount_cents is None or amount_cents <= 0:
            raise ValidationError("Repayment amount must be greater than zero")

        with self.uow.transaction():
            loan = require_found(self.loans.get(loan_id, lock=True), "Loan not found")
            if loan.lender_id != caller.user_id:
                raise AuthorizationError("Only the lender can record repayments")
            if loan.status != LoanStatus.ACTIVE.value:
                raise ConflictError("Repayments can only be recorded on active loans")

            now = self.clock()
            loan.repayments.append(RepaymentRecord(amount_cents=amount_cents, paid_at=now, note=note))
            loan.total_repaid_cents += amount_cents
            loan.remaining_cents = remaining_cents(loan.total_due_cents, loan.total_repaid_cents, loan.forgiven_cents)
            loan.updated_at = now
            if loan.remaining_cents == 0:
                move_loan(self.uow, loan, LoanStatus.COMPLETED, caller.user_id, now)
            self.uow.on_commit(lambda: repayment_amount_counter.inc(amount_cents))

        return loan

    def mark_completed(self, caller: Caller, loan_id: uuid.UUID) -> LoanRecord:
        """Either party closes the loan early; any outstanding balance is written off"""
        caller = require_caller(caller)

        with self.uow.transaction():
            loan = require_found(self.loans.get(loan_id, lock=True), "Loan not found")
            if caller.user_id not in (loan.borrower_id, loan.lender_id):
                raise AuthorizationError("Only the borrower or the lender can complete this loan")

            now = self.clock()
            move_loan(self.uow, loan, LoanStatus.COMPLETED, caller.user_id, now)
            outstanding = remaining_cents(loan.total_due_cents, loan.total_repaid_cents, loan.forgiven_cents)
            loan.forgiven_cents += outstanding
            loan.remaining_cents = 0

        return loan

    def mark_defaulted(self, caller: Caller, loan_id: uuid.UUID) -> LoanRecord:
        caller = require_caller(caller)

        with self.uow.transaction():
            loan = require_found(self.loans.get(loan_id, lock=True), "Loan not found")
            if loan.lender_id != caller.user_id:
                raise AuthorizationError("Only the lender can mark a loan as defaulted")

            now = self.clock()
            if not is_overdue(loan.status, loan.due_date, loan.remaining_cents, now.date()):
                raise ConflictError("Only active loans past their due date can be marked as defaulted")
            move_loan(self.uow, loan, LoanStatus.DEFAULTED, caller.user_id, now)

        return loan
