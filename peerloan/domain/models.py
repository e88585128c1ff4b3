"""Domain models - enums and plain dataclasses shared by the lifecycle services"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Role(str, Enum):
    BORROWER = "borrower"
    LENDER = "lender"
    BOTH = "both"
    ADMIN = "admin"


class SecurityType(str, Enum):
    SECURED = "SECURED"
    UNSECURED = "UNSECURED"


class CollateralType(str, Enum):
    REAL_ESTATE = "REAL_ESTATE"
    GOLD = "GOLD"
    AUTOMOBILE = "AUTOMOBILE"
    STOCKS = "STOCKS"
    OTHER = "OTHER"


class DocumentType(str, Enum):
    PHOTO = "PHOTO"
    PDF = "PDF"


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    FUNDED = "FUNDED"
    LOAN_RECEIVED_PENDING = "LOAN_RECEIVED_PENDING"
    ACCEPTED = "ACCEPTED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class OfferStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class LoanStatus(str, Enum):
    LOAN_RECEIVED_PENDING = "LOAN_RECEIVED_PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    DEFAULTED = "DEFAULTED"


class LoanSide(str, Enum):
    """Which side of a loan the caller is on"""

    BORROWED = "borrowed"
    LENT = "lent"


class MatchSource(str, Enum):
    DIRECT = "DIRECT"  # interest + selection + two-phase confirmation
    OFFER = "OFFER"  # competing offer accepted by the borrower


@dataclass(frozen=True)
class Caller:
    """Authenticated identity issued by the external identity store"""

    user_id: str
    role: Role

    @property
    def can_lend(self) -> bool:
        return self.role in (Role.LENDER, Role.BOTH)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass
class CollateralDocumentInput:
    """Reference to an already-uploaded collateral document"""

    type: DocumentType
    url: str
    name: str


@dataclass
class CollateralTerms:
    type: CollateralType
    estimated_value_cents: int
    documents: List[CollateralDocumentInput] = field(default_factory=list)


@dataclass
class RequestTerms:
    """Borrower-supplied terms for a new loan request"""

    amount_cents: int
    duration_months: int
    security_type: SecurityType
    purpose: str
    collateral: Optional[CollateralTerms] = None
    description: Optional[str] = None
    credit_score: Optional[int] = None


@dataclass
class LoanActivation:
    """
    Intent to open a loan, produced by either matching path.

    The disbursement coordinator is the only consumer; it validates the
    intent and decides the initial loan status from the confirmation flags.
    """

    loan_request_id: uuid.UUID
    borrower_id: str
    lender_id: str
    selected_lender_id: str
    amount_cents: int
    interest_rate: float
    duration_months: int
    source: MatchSource
    borrower_confirmed: bool
    lender_confirmed: bool


@dataclass
class LoanMetrics:
    """Read-side aggregates over one user's loans"""

    total_borrowed_cents: int = 0
    total_lent_cents: int = 0
    active_borrowed_count: int = 0
    active_lent_count: int = 0
    completed_borrowed_count: int = 0
    completed_lent_count: int = 0
    total_to_repay_cents: int = 0
    overdue_count: int = 0
