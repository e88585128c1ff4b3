"""Read side: listings, loan lookups and on-read portfolio metrics"""

import uuid
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from peerloan.config import settings
from peerloan.domain.exceptions import AuthorizationError, ValidationError
from peerloan.domain.models import Caller, LoanMetrics, LoanSide, LoanStatus, RequestStatus
from peerloan.domain.portfolio import compute_loan_metrics
from peerloan.infrastructure.database.models import LoanOfferRecord, LoanRecord, LoanRequestRecord
from peerloan.infrastructure.database.repositories import (
    LoanOfferRepository,
    LoanRepository,
    LoanRequestRepository,
)
from peerloan.services.unit_of_work import require_caller, require_found
from peerloan.utils.date_utils import utcnow


def clamp_page(page: Optional[int], limit: Optional[int]) -> tuple[int, int]:
    """Normalize paging arguments to configured bounds"""
    page = max(page or 1, 1)
    limit = limit or settings.default_page_size
    return page, min(max(limit, 1), settings.max_page_size)


def _loan_side(kind) -> LoanSide:
    try:
        return LoanSide(kind)
    except ValueError:
        raise ValidationError(f"Unknown loan kind: {kind}. Use 'borrowed' or 'lent'")


def _loan_status(status: Optional[str]) -> Optional[str]:
    if status is None:
        return None
    try:
        return LoanStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown loan status: {status}")


class LoanQueries:
    """Query service; never writes"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self.requests = LoanRequestRepository(db)
        self.offers = LoanOfferRepository(db)
        self.loans = LoanRepository(db)

    def get_request(self, caller: Caller, request_id: uuid.UUID) -> LoanRequestRecord:
        require_caller(caller)
        return require_found(self.requests.get(request_id), "Loan request not found")

    def list_requests(
        self, caller: Caller, status: Optional[str] = None, page: int = 1, limit: Optional[int] = None
    ) -> List[LoanRequestRecord]:
        """Other borrowers' requests, newest first"""
        caller = require_caller(caller)
        if status is not None:
            try:
                status = RequestStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown loan request status: {status}")
        page, limit = clamp_page(page, limit)
        return self.requests.find_by_status(status, exclude_borrower_id=caller.user_id, page=page, limit=limit)

    def my_requests(self, caller: Caller) -> List[LoanRequestRecord]:
        caller = require_caller(caller)
        return self.requests.find_by_borrower(caller.user_id)

    def available_requests(
        self, caller: Caller, page: int = 1, limit: Optional[int] = None
    ) -> List[LoanRequestRecord]:
        """Open requests a lender can still act on"""
        caller = require_caller(caller)
        if not caller.can_lend:
            raise AuthorizationError("Only lenders can browse available loan requests")
        page, limit = clamp_page(page, limit)
        return self.requests.find_by_status(
            RequestStatus.PENDING.value, exclude_borrower_id=caller.user_id, page=page, limit=limit
        )

    def offers_for_request(self, caller: Caller, request_id: uuid.UUID) -> List[LoanOfferRecord]:
        """Borrower sees every offer; a lender sees only their own"""
        caller = require_caller(caller)
        request = require_found(self.requests.get(request_id), "Loan request not found")
        offers = self.offers.find_by_request(request.id)
        if request.borrower_id == caller.user_id or caller.is_admin:
            return offers
        return [offer for offer in offers if offer.lender_id == caller.user_id]

    def my_offers(self, caller: Caller) -> List[LoanOfferRecord]:
        """Caller's offers whose request still exists"""
        caller = require_caller(caller)
        offers = self.offers.find_by_lender(caller.user_id)
        live = self.requests.existing_ids(offer.loan_request_id for offer in offers)
        return [offer for offer in offers if offer.loan_request_id in live]

    def get_loan(self, caller: Caller, loan_id: uuid.UUID) -> LoanRecord:
        caller = require_caller(caller)
        loan = require_found(self.loans.get(loan_id), "Loan not found")
        if caller.user_id not in (loan.borrower_id, loan.lender_id) and not caller.is_admin:
            raise AuthorizationError("Not authorized to view this loan")
        return loan

    def my_loans(self, caller: Caller, kind: str = LoanSide.BORROWED.value, status: Optional[str] = None) -> List[LoanRecord]:
        caller = require_caller(caller)
        side = _loan_side(kind)
        status = _loan_status(status)
        if side == LoanSide.BORROWED:
            return self.loans.find_by_borrower(caller.user_id, status)
        return self.loans.find_by_lender(caller.user_id, status)

    def active_loan(self, caller: Caller) -> Optional[LoanRecord]:
        """The caller's unresolved loan as a borrower, if any"""
        caller = require_caller(caller)
        return self.loans.find_open_for_borrower(caller.user_id)

    def loan_history(
        self, caller: Caller, kind: str = LoanSide.BORROWED.value, page: int = 1, limit: Optional[int] = None
    ) -> List[LoanRecord]:
        caller = require_caller(caller)
        side = _loan_side(kind)
        page, limit = clamp_page(page, limit)
        return self.loans.page_for_party(caller.user_id, side == LoanSide.BORROWED, page=page, limit=limit)

    def loan_metrics(self, caller: Caller) -> LoanMetrics:
        caller = require_caller(caller)
        return compute_loan_metrics(
            self.loans.find_by_borrower(caller.user_id),
            self.loans.find_by_lender(caller.user_id),
            self.clock().date(),
        )
