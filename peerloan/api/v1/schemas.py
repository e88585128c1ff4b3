"""Pydantic schemas for API request/response validation"""

import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from peerloan.domain.models import (
    CollateralDocumentInput,
    CollateralTerms,
    CollateralType,
    DocumentType,
    RequestTerms,
    SecurityType,
)


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# Requests


class CollateralDocumentIn(BaseModel):
    """Reference to a document already stored by the file service"""

    type: DocumentType
    url: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)

    def to_domain(self) -> CollateralDocumentInput:
        return CollateralDocumentInput(type=self.type, url=self.url, name=self.name)


class CollateralIn(BaseModel):
    type: CollateralType
    estimated_value_cents: int = Field(..., ge=0, description="Estimated collateral value in cents")
    documents: List[CollateralDocumentIn] = Field(default_factory=list)


class LoanRequestCreate(BaseModel):
    """Request body for POST /v1/loan-requests"""

    amount_cents: int = Field(..., gt=0, description="Requested amount in cents")
    duration_months: int = Field(..., ge=1)
    security_type: SecurityType
    purpose: str = Field(..., min_length=1)
    collateral: Optional[CollateralIn] = None
    description: Optional[str] = None
    credit_score: Optional[int] = Field(default=None, ge=300, le=850)

    def to_terms(self) -> RequestTerms:
        collateral = None
        if self.collateral is not None:
            collateral = CollateralTerms(
                type=self.collateral.type,
                estimated_value_cents=self.collateral.estimated_value_cents,
                documents=[document.to_domain() for document in self.collateral.documents],
            )
        return RequestTerms(
            amount_cents=self.amount_cents,
            duration_months=self.duration_months,
            security_type=self.security_type,
            purpose=self.purpose,
            collateral=collateral,
            description=self.description,
            credit_score=self.credit_score,
        )


class InterestIn(BaseModel):
    interest_rate: float = Field(..., description="Annual rate in percent, 0-100")
    message: Optional[str] = None


class LenderChoice(BaseModel):
    """Body naming an interested lender (select-lender, loan-received)"""

    lender_id: str = Field(..., min_length=1)


class StatusUpdate(BaseModel):
    status: str


class OfferCreate(BaseModel):
    """Request body for POST /v1/offers"""

    loan_request_id: uuid.UUID
    interest_rate: float
    message: Optional[str] = Field(default=None, max_length=500)


class RepaymentCreate(BaseModel):
    amount_cents: int = Field(..., gt=0)
    note: Optional[str] = None


# Responses


class InterestedLenderSchema(ORMModel):
    lender_id: str
    interest_rate: float
    message: Optional[str] = None
    timestamp: datetime


class CollateralDocumentSchema(ORMModel):
    type: str
    url: str
    name: str
    uploaded_at: datetime


class LoanRequestResponse(ORMModel):
    """A loan request with its matching state"""

    id: uuid.UUID
    borrower_id: str
    amount_cents: int
    purpose: str
    description: Optional[str] = None
    credit_score: Optional[int] = None
    duration_months: int
    security_type: str
    collateral_type: Optional[str] = None
    collateral_value_cents: Optional[int] = None
    collateral_documents: List[CollateralDocumentSchema] = []
    status: str
    interested_lenders: List[InterestedLenderSchema] = []
    selected_lender_id: Optional[str] = None
    agreement_interest_rate: Optional[float] = None
    agreement_start_date: Optional[date] = None
    agreement_end_date: Optional[date] = None
    agreement_terms_accepted: bool = False
    linked_loan_id: Optional[uuid.UUID] = None
    accepted_offer_id: Optional[uuid.UUID] = None
    accepted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OfferResponse(ORMModel):
    id: uuid.UUID
    loan_request_id: uuid.UUID
    lender_id: str
    interest_rate: float
    amount_cents: int
    message: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime


class RepaymentSchema(ORMModel):
    amount_cents: int
    paid_at: datetime
    note: Optional[str] = None


class LoanResponse(ORMModel):
    """A funded loan with its repayment history"""

    id: uuid.UUID
    loan_request_id: uuid.UUID
    borrower_id: str
    lender_id: str
    source: str
    amount_cents: int
    interest_rate: float
    duration_months: int
    total_due_cents: int
    disbursement_date: date
    due_date: date
    status: str
    borrower_confirmed: bool
    lender_confirmed: bool
    selected_lender_by_borrower: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    total_repaid_cents: int
    forgiven_cents: int
    remaining_cents: int
    repayments: List[RepaymentSchema] = []
    created_at: datetime
    updated_at: datetime


class ActiveLoanResponse(BaseModel):
    loan: Optional[LoanResponse] = None


class LoanMetricsResponse(ORMModel):
    """Response for GET /v1/loans/metrics"""

    total_borrowed_cents: int
    total_lent_cents: int
    active_borrowed_count: int
    active_lent_count: int
    completed_borrowed_count: int
    completed_lent_count: int
    total_to_repay_cents: int
    overdue_count: int
