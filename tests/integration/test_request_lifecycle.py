"""Integration tests for loan request creation, interest, selection and status updates"""

import uuid
import pytest
from datetime import date

from peerloan.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from peerloan.domain.models import Caller, CollateralDocumentInput, DocumentType, Role
from peerloan.infrastructure.database.models import LoanRequestRecord

pytestmark = pytest.mark.integration


def test_create_unsecured_request(lifecycle, borrower, unsecured_terms, event_bus):
    """Borrower opens an unsecured request for 10000 over 6 months"""
    record = lifecycle.create_request(borrower, unsecured_terms())

    assert record.status == "PENDING"
    assert record.amount_cents == 10000
    assert record.duration_months == 6
    assert record.security_type == "UNSECURED"
    assert record.has_collateral is False
    assert record.collateral_value_cents is None
    assert record.interested_lenders == []

    published = event_bus.events("NEW_LOAN_REQUEST")
    assert len(published) == 1
    assert published[0]["loan_request_id"] == str(record.id)


def test_create_secured_request_keeps_collateral(lifecycle, borrower, secured_terms):
    terms = secured_terms()
    terms.collateral.documents.append(
        CollateralDocumentInput(type=DocumentType.PDF, url="https://files.example/deed.pdf", name="deed.pdf")
    )

    record = lifecycle.create_request(borrower, terms)

    assert record.has_collateral is True
    assert record.collateral_type == "GOLD"
    assert record.collateral_value_cents == 800000
    assert [doc.name for doc in record.collateral_documents] == ["deed.pdf"]


def test_second_pending_request_conflicts(lifecycle, borrower, unsecured_terms, db):
    """A borrower holds at most one pending request"""
    lifecycle.create_request(borrower, unsecured_terms())

    with pytest.raises(ConflictError):
        lifecycle.create_request(borrower, unsecured_terms(amount_cents=2000))

    assert db.query(LoanRequestRecord).count() == 1


def test_create_request_blocked_by_open_loan(lifecycle, coordinator, borrower, lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())
    lifecycle.express_interest(lender, record.id, 10)
    coordinator.mark_received(borrower, record.id, lender.user_id)

    with pytest.raises(ConflictError, match="active loan"):
        lifecycle.create_request(borrower, unsecured_terms())


def test_create_request_requires_caller(lifecycle, unsecured_terms):
    with pytest.raises(AuthenticationError):
        lifecycle.create_request(None, unsecured_terms())


def test_create_request_validates_terms(lifecycle, borrower, unsecured_terms):
    with pytest.raises(ValidationError):
        lifecycle.create_request(borrower, unsecured_terms(duration_months=0))


def test_express_interest_upserts_per_lender(lifecycle, borrower, lender, unsecured_terms, clock, event_bus):
    """Expressing interest twice keeps one entry with the latest rate and timestamp"""
    record = lifecycle.create_request(borrower, unsecured_terms())

    lifecycle.express_interest(lender, record.id, 12, "Happy to help")
    first_stamp = record.interested_lenders[0].timestamp
    clock.advance(days=1)
    record = lifecycle.express_interest(lender, record.id, 10)

    assert len(record.interested_lenders) == 1
    entry = record.interested_lenders[0]
    assert entry.interest_rate == 10
    assert entry.message is None
    assert entry.timestamp > first_stamp

    published = event_bus.events(f"LOAN_INTEREST_RECEIVED.{borrower.user_id}")
    assert [event["interest_rate"] for event in published] == [12, 10]


def test_express_interest_from_two_lenders(lifecycle, borrower, lender, other_lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())
    lifecycle.express_interest(lender, record.id, 12)
    record = lifecycle.express_interest(other_lender, record.id, 9.5)

    assert {entry.lender_id for entry in record.interested_lenders} == {"lender-1", "lender-2"}


def test_express_interest_rules(lifecycle, borrower, lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())

    with pytest.raises(AuthorizationError):
        lifecycle.express_interest(borrower, record.id, 12)  # borrower role cannot lend
    with pytest.raises(AuthorizationError):
        lifecycle.express_interest(Caller("borrower-1", Role.BOTH), record.id, 12)  # own request
    with pytest.raises(ValidationError):
        lifecycle.express_interest(lender, record.id, 101)
    with pytest.raises(NotFoundError):
        lifecycle.express_interest(lender, uuid.uuid4(), 12)


def test_select_lender_drafts_agreement(lifecycle, borrower, lender, unsecured_terms, event_bus):
    """Selecting an interested lender approves the request at that lender's rate"""
    record = lifecycle.create_request(borrower, unsecured_terms())
    lifecycle.express_interest(lender, record.id, 12)

    record = lifecycle.select_lender(borrower, record.id, lender.user_id)

    assert record.status == "APPROVED"
    assert record.selected_lender_id == "lender-1"
    assert record.agreement_interest_rate == 12
    assert record.agreement_start_date == date(2024, 1, 15)
    assert record.agreement_end_date == date(2024, 7, 15)
    assert record.agreement_terms_accepted is False

    updates = event_bus.events(f"LOAN_REQUEST_UPDATED.{record.id}")
    assert updates[-1]["status"] == "APPROVED"


def test_select_lender_requires_interest(lifecycle, borrower, lender, other_lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())
    lifecycle.express_interest(lender, record.id, 12)

    with pytest.raises(ValidationError):
        lifecycle.select_lender(borrower, record.id, other_lender.user_id)
    with pytest.raises(AuthorizationError):
        lifecycle.select_lender(lender, record.id, lender.user_id)


def test_accept_terms_by_selected_lender(lifecycle, borrower, lender, other_lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())
    lifecycle.express_interest(lender, record.id, 12)
    lifecycle.select_lender(borrower, record.id, lender.user_id)

    with pytest.raises(AuthorizationError):
        lifecycle.accept_terms(other_lender, record.id)

    record = lifecycle.accept_terms(lender, record.id)
    assert record.status == "FUNDED"
    assert record.agreement_terms_accepted is True


def test_accept_terms_before_selection_is_rejected(lifecycle, borrower, lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())

    with pytest.raises(AuthorizationError):
        lifecycle.accept_terms(lender, record.id)


def test_update_status_follows_transition_table(lifecycle, borrower, lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())
    lifecycle.express_interest(lender, record.id, 12)
    lifecycle.select_lender(borrower, record.id, lender.user_id)

    with pytest.raises(ConflictError):
        lifecycle.update_status(borrower, record.id, "PENDING")

    record = lifecycle.update_status(lender, record.id, "REJECTED")
    assert record.status == "REJECTED"

    with pytest.raises(ConflictError):
        lifecycle.update_status(borrower, record.id, "CANCELLED")


def test_update_status_rejects_targets_with_dedicated_operations(lifecycle, borrower, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())

    for target in ("APPROVED", "FUNDED", "LOAN_RECEIVED_PENDING", "ACCEPTED"):
        with pytest.raises(ConflictError):
            lifecycle.update_status(borrower, record.id, target)
    with pytest.raises(ValidationError):
        lifecycle.update_status(borrower, record.id, "ARCHIVED")


def test_update_status_authorization(lifecycle, borrower, lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())

    with pytest.raises(AuthorizationError):
        lifecycle.update_status(lender, record.id, "REJECTED")

    admin = Caller("ops-1", Role.ADMIN)
    assert lifecycle.update_status(admin, record.id, "REJECTED").status == "REJECTED"


def test_cancel_request_deletes_pending_request(lifecycle, borrower, lender, unsecured_terms, db, event_bus):
    record = lifecycle.create_request(borrower, unsecured_terms())
    request_id = record.id
    lifecycle.express_interest(lender, request_id, 12)

    lifecycle.cancel_request(borrower, request_id)

    assert db.query(LoanRequestRecord).filter(LoanRequestRecord.id == request_id).first() is None
    assert event_bus.events(f"LOAN_REQUEST_UPDATED.{request_id}")[-1]["status"] == "CANCELLED"
    # The borrower may open a fresh request afterwards
    assert lifecycle.create_request(borrower, unsecured_terms()).status == "PENDING"


def test_cancel_request_rules(lifecycle, borrower, lender, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())

    with pytest.raises(AuthorizationError):
        lifecycle.cancel_request(lender, record.id)

    lifecycle.express_interest(lender, record.id, 12)
    lifecycle.select_lender(borrower, record.id, lender.user_id)
    with pytest.raises(ConflictError):
        lifecycle.cancel_request(borrower, record.id)


def test_add_collateral_document(lifecycle, borrower, secured_terms, unsecured_terms, event_bus):
    record = lifecycle.create_request(borrower, secured_terms())
    document = CollateralDocumentInput(type=DocumentType.PHOTO, url="https://files.example/bar.jpg", name="bar.jpg")

    record = lifecycle.add_collateral_document(borrower, record.id, document)

    assert [doc.url for doc in record.collateral_documents] == ["https://files.example/bar.jpg"]
    assert event_bus.events(f"LOAN_REQUEST_UPDATED.{record.id}")[-1]["security_type"] == "SECURED"


def test_add_collateral_document_rejected_on_unsecured(lifecycle, borrower, unsecured_terms):
    record = lifecycle.create_request(borrower, unsecured_terms())
    document = CollateralDocumentInput(type=DocumentType.PDF, url="https://files.example/a.pdf", name="a.pdf")

    with pytest.raises(ValidationError):
        lifecycle.add_collateral_document(borrower, record.id, document)


def test_failed_operation_publishes_nothing(lifecycle, borrower, lender, unsecured_terms, event_bus):
    record = lifecycle.create_request(borrower, unsecured_terms())

    with pytest.raises(ValidationError):
        lifecycle.select_lender(borrower, record.id, lender.user_id)

    assert event_bus.events(f"LOAN_REQUEST_UPDATED.{record.id}") == []
