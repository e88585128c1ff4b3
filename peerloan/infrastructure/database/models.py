"""SQLAlchemy ORM models for loan requests, offers, loans and the event outbox"""

import uuid
from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from peerloan.utils.date_utils import utcnow

Base = declarative_base()


class LoanRequestRecord(Base):
    """A borrower's open ask for funding, with its matching state"""

    __tablename__ = "loan_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Text, nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    purpose = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    credit_score = Column(Integer, nullable=True)
    duration_months = Column(Integer, nullable=False)
    security_type = Column(Text, nullable=False)

    # Collateral columns are populated only for SECURED requests
    collateral_type = Column(Text, nullable=True)
    collateral_value_cents = Column(BigInteger, nullable=True)

    status = Column(Text, nullable=False, default="PENDING")
    selected_lender_id = Column(Text, nullable=True, index=True)

    agreement_interest_rate = Column(Float, nullable=True)
    agreement_start_date = Column(Date, nullable=True)
    agreement_end_date = Column(Date, nullable=True)
    agreement_terms_accepted = Column(Boolean, nullable=False, default=False)

    linked_loan_id = Column(UUID(as_uuid=True), nullable=True)
    accepted_offer_id = Column(UUID(as_uuid=True), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    interested_lenders = relationship(
        "InterestedLenderRecord",
        back_populates="loan_request",
        cascade="all, delete-orphan",
        order_by="InterestedLenderRecord.id",
    )
    collateral_documents = relationship(
        "CollateralDocumentRecord",
        back_populates="loan_request",
        cascade="all, delete-orphan",
        order_by="CollateralDocumentRecord.id",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint(
            "(security_type = 'SECURED' AND collateral_type IS NOT NULL AND collateral_value_cents IS NOT NULL)"
            " OR (security_type = 'UNSECURED' AND collateral_type IS NULL AND collateral_value_cents IS NULL)",
            name="ck_loan_requests_collateral_matches_security",
        ),
        CheckConstraint("amount_cents > 0", name="ck_loan_requests_amount_positive"),
        CheckConstraint("duration_months >= 1", name="ck_loan_requests_duration"),
        # One open request per borrower
        Index(
            "uq_loan_requests_pending_borrower",
            "borrower_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index("ix_loan_requests_status_created", "status", "created_at"),
    )

    @property
    def has_collateral(self) -> bool:
        return self.collateral_type is not None

    def find_interest(self, lender_id: str):
        """Interest entry for a lender, or None"""
        for entry in self.interested_lenders:
            if entry.lender_id == lender_id:
                return entry
        return None


class InterestedLenderRecord(Base):
    """One lender's expressed interest in a request; one row per lender"""

    __tablename__ = "interested_lenders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_request_id = Column(
        UUID(as_uuid=True), ForeignKey("loan_requests.id", ondelete="CASCADE"), nullable=False
    )
    lender_id = Column(Text, nullable=False, index=True)
    interest_rate = Column(Float, nullable=False)
    message = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    loan_request = relationship("LoanRequestRecord", back_populates="interested_lenders")

    __table_args__ = (UniqueConstraint("loan_request_id", "lender_id", name="uq_interested_lender"),)


class CollateralDocumentRecord(Base):
    """Reference to a collateral document held by the file-storage service"""

    __tablename__ = "collateral_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_request_id = Column(
        UUID(as_uuid=True), ForeignKey("loan_requests.id", ondelete="CASCADE"), nullable=False
    )
    type = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    loan_request = relationship("LoanRequestRecord", back_populates="collateral_documents")


class LoanOfferRecord(Base):
    """
    A lender's competing bid against a request.

    No foreign key to loan_requests: a cancelled request is hard-deleted
    while its offers are kept.
    """

    __tablename__ = "loan_offers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_request_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    lender_id = Column(Text, nullable=False, index=True)
    interest_rate = Column(Float, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    message = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="PENDING")

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        UniqueConstraint("loan_request_id", "lender_id", name="uq_loan_offer_request_lender"),
        CheckConstraint("interest_rate >= 0 AND interest_rate <= 100", name="ck_loan_offers_rate"),
    )


class LoanRecord(Base):
    """The authoritative funded-loan record"""

    __tablename__ = "loans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_request_id = Column(UUID(as_uuid=True), ForeignKey("loan_requests.id"), nullable=False, unique=True)
    borrower_id = Column(Text, nullable=False)
    lender_id = Column(Text, nullable=False)
    source = Column(Text, nullable=False)

    # Terms
    amount_cents = Column(BigInteger, nullable=False)
    interest_rate = Column(Float, nullable=False)
    duration_months = Column(Integer, nullable=False)
    total_due_cents = Column(BigInteger, nullable=False)
    disbursement_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    # Confirmation
    status = Column(Text, nullable=False, default="LOAN_RECEIVED_PENDING")
    borrower_confirmed = Column(Boolean, nullable=False, default=False)
    lender_confirmed = Column(Boolean, nullable=False, default=False)
    selected_lender_by_borrower = Column(Text, nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    # Repayment tracking
    total_repaid_cents = Column(BigInteger, nullable=False, default=0)
    forgiven_cents = Column(BigInteger, nullable=False, default=0)
    remaining_cents = Column(BigInteger, nullable=False)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    repayments = relationship(
        "RepaymentRecord",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="RepaymentRecord.id",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("total_repaid_cents >= 0", name="ck_loans_total_repaid"),
        CheckConstraint("remaining_cents >= 0", name="ck_loans_remaining"),
        Index("ix_loans_borrower_status", "borrower_id", "status"),
        Index("ix_loans_lender_status", "lender_id", "status"),
        Index("ix_loans_status_due", "status", "due_date"),
    )


class RepaymentRecord(Base):
    """Append-only repayment entry"""

    __tablename__ = "repayments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(UUID(as_uuid=True), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    note = Column(Text, nullable=True)

    loan = relationship("LoanRecord", back_populates="repayments")


class OutboundEvent(Base):
    """Event delivery queue with retry tracking; id order is publish order"""

    __tablename__ = "outbound_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    channel = Column(Text, nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())
