"""Data access layer for loan requests, offers, loans and outbound events"""

import uuid
from typing import Iterable, List, Optional, Set
from sqlalchemy.orm import Session

from peerloan.infrastructure.database.models import (
    LoanOfferRecord,
    LoanRecord,
    LoanRequestRecord,
    OutboundEvent,
)


def _offset(page: int, limit: int) -> int:
    return max(page - 1, 0) * limit


class LoanRequestRepository:
    """Repository for loan requests"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, record: LoanRequestRecord) -> LoanRequestRecord:
        self.db.add(record)
        self.db.flush()  # Get ID without committing
        return record

    def get(self, request_id: uuid.UUID, lock: bool = False) -> Optional[LoanRequestRecord]:
        """Fetch a request; lock=True takes a row lock for read-modify-write"""
        query = self.db.query(LoanRequestRecord).filter(LoanRequestRecord.id == request_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def delete(self, record: LoanRequestRecord) -> None:
        self.db.delete(record)

    def find_pending_for_borrower(self, borrower_id: str) -> Optional[LoanRequestRecord]:
        return (
            self.db.query(LoanRequestRecord)
            .filter(LoanRequestRecord.borrower_id == borrower_id, LoanRequestRecord.status == "PENDING")
            .first()
        )

    def find_by_borrower(self, borrower_id: str) -> List[LoanRequestRecord]:
        return (
            self.db.query(LoanRequestRecord)
            .filter(LoanRequestRecord.borrower_id == borrower_id)
            .order_by(LoanRequestRecord.created_at.desc())
            .all()
        )

    def find_by_status(
        self,
        status: Optional[str] = None,
        exclude_borrower_id: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> List[LoanRequestRecord]:
        """Newest-first listing, optionally filtered by status and excluding one borrower"""
        query = self.db.query(LoanRequestRecord)
        if status:
            query = query.filter(LoanRequestRecord.status == status)
        if exclude_borrower_id:
            query = query.filter(LoanRequestRecord.borrower_id != exclude_borrower_id)
        return (
            query.order_by(LoanRequestRecord.created_at.desc())
            .offset(_offset(page, limit))
            .limit(limit)
            .all()
        )

    def existing_ids(self, request_ids: Iterable[uuid.UUID]) -> Set[uuid.UUID]:
        """Subset of ids that still resolve to a request"""
        request_ids = list(set(request_ids))
        if not request_ids:
            return set()
        rows = self.db.query(LoanRequestRecord.id).filter(LoanRequestRecord.id.in_(request_ids)).all()
        return {row[0] for row in rows}


class LoanOfferRepository:
    """Repository for competing loan offers"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, record: LoanOfferRecord) -> LoanOfferRecord:
        self.db.add(record)
        self.db.flush()
        return record

    def get(self, offer_id: uuid.UUID, lock: bool = False) -> Optional[LoanOfferRecord]:
        query = self.db.query(LoanOfferRecord).filter(LoanOfferRecord.id == offer_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def find_for_lender(self, request_id: uuid.UUID, lender_id: str, lock: bool = False) -> Optional[LoanOfferRecord]:
        query = self.db.query(LoanOfferRecord).filter(
            LoanOfferRecord.loan_request_id == request_id,
            LoanOfferRecord.lender_id == lender_id,
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def find_pending_for_request(self, request_id: uuid.UUID, lock: bool = False) -> List[LoanOfferRecord]:
        query = self.db.query(LoanOfferRecord).filter(
            LoanOfferRecord.loan_request_id == request_id,
            LoanOfferRecord.status == "PENDING",
        )
        if lock:
            query = query.with_for_update()
        return query.all()

    def find_by_request(self, request_id: uuid.UUID) -> List[LoanOfferRecord]:
        return (
            self.db.query(LoanOfferRecord)
            .filter(LoanOfferRecord.loan_request_id == request_id)
            .order_by(LoanOfferRecord.created_at.desc())
            .all()
        )

    def find_by_lender(self, lender_id: str) -> List[LoanOfferRecord]:
        return (
            self.db.query(LoanOfferRecord)
            .filter(LoanOfferRecord.lender_id == lender_id)
            .order_by(LoanOfferRecord.created_at.desc())
            .all()
        )


class LoanRepository:
    """Repository for funded loans"""

    OPEN_STATUSES = ("LOAN_RECEIVED_PENDING", "ACTIVE")

    def __init__(self, db: Session):
        self.db = db

    def add(self, record: LoanRecord) -> LoanRecord:
        self.db.add(record)
        self.db.flush()
        return record

    def get(self, loan_id: uuid.UUID, lock: bool = False) -> Optional[LoanRecord]:
        query = self.db.query(LoanRecord).filter(LoanRecord.id == loan_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def find_open_for_borrower(self, borrower_id: str) -> Optional[LoanRecord]:
        return (
            self.db.query(LoanRecord)
            .filter(LoanRecord.borrower_id == borrower_id, LoanRecord.status.in_(self.OPEN_STATUSES))
            .first()
        )

    def find_by_borrower(self, borrower_id: str, status: Optional[str] = None) -> List[LoanRecord]:
        query = self.db.query(LoanRecord).filter(LoanRecord.borrower_id == borrower_id)
        if status:
            query = query.filter(LoanRecord.status == status)
        return query.order_by(LoanRecord.created_at.desc()).all()

    def find_by_lender(self, lender_id: str, status: Optional[str] = None) -> List[LoanRecord]:
        query = self.db.query(LoanRecord).filter(LoanRecord.lender_id == lender_id)
        if status:
            query = query.filter(LoanRecord.status == status)
        return query.order_by(LoanRecord.created_at.desc()).all()

    def page_for_party(self, user_id: str, as_borrower: bool, page: int = 1, limit: int = 10) -> List[LoanRecord]:
        column = LoanRecord.borrower_id if as_borrower else LoanRecord.lender_id
        return (
            self.db.query(LoanRecord)
            .filter(column == user_id)
            .order_by(LoanRecord.created_at.desc())
            .offset(_offset(page, limit))
            .limit(limit)
            .all()
        )


class OutboundEventRepository:
    """Repository for the event outbox"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, channel: str, payload: dict) -> OutboundEvent:
        event = OutboundEvent(channel=channel, payload=payload)
        self.db.add(event)
        self.db.flush()
        return event

    def find_pending(self, limit: int = 100) -> List[OutboundEvent]:
        """Undelivered events in publish order"""
        return (
            self.db.query(OutboundEvent)
            .filter(OutboundEvent.status == "pending")
            .order_by(OutboundEvent.id)
            .limit(limit)
            .all()
        )
