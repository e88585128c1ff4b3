"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import BackgroundTasks, Depends, Header, Request
from sqlalchemy.orm import Session

from peerloan.config import settings
from peerloan.domain.exceptions import AuthenticationError, ValidationError
from peerloan.domain.models import Caller, Role
from peerloan.infrastructure.clients.event_webhook import EventWebhookClient
from peerloan.infrastructure.database.session import SessionLocal, get_db
from peerloan.infrastructure.events.bus import EventBus, OutboxEventBus
from peerloan.infrastructure.events.dispatcher import OutboxDispatcher
from peerloan.services.disbursement import DisbursementCoordinator
from peerloan.services.offer_matching import OfferMatchingEngine
from peerloan.services.queries import LoanQueries
from peerloan.services.repayment_ledger import RepaymentLedger
from peerloan.services.request_lifecycle import RequestLifecycle
from peerloan.services.unit_of_work import UnitOfWork


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_caller(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: str = Header(default=Role.BORROWER.value),
) -> Caller:
    """
    Caller identity asserted by the upstream identity gateway.

    The gateway authenticates the user and forwards X-User-Id and
    X-User-Role; requests without a user id are rejected.
    """
    if not x_user_id:
        raise AuthenticationError("Authentication required")
    try:
        role = Role(x_user_role.lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {x_user_role}")
    return Caller(user_id=x_user_id, role=role)


def get_event_bus() -> EventBus:
    """Provide the outbox-backed event bus"""
    return OutboxEventBus(SessionLocal)


def get_unit_of_work(db: Session = Depends(get_db), event_bus: EventBus = Depends(get_event_bus)) -> UnitOfWork:
    return UnitOfWork(db, event_bus)


def get_request_lifecycle(uow: UnitOfWork = Depends(get_unit_of_work)) -> RequestLifecycle:
    return RequestLifecycle(uow)


def get_disbursement_coordinator(uow: UnitOfWork = Depends(get_unit_of_work)) -> DisbursementCoordinator:
    return DisbursementCoordinator(uow)


def get_offer_matching(
    uow: UnitOfWork = Depends(get_unit_of_work),
    coordinator: DisbursementCoordinator = Depends(get_disbursement_coordinator),
) -> OfferMatchingEngine:
    return OfferMatchingEngine(uow, coordinator)


def get_repayment_ledger(uow: UnitOfWork = Depends(get_unit_of_work)) -> RepaymentLedger:
    return RepaymentLedger(uow)


def get_loan_queries(db: Session = Depends(get_db)) -> LoanQueries:
    return LoanQueries(db)


def get_dispatcher() -> Optional[OutboxDispatcher]:
    """Provide the outbox dispatcher, or None when no webhook is configured"""
    if not settings.event_webhook_url:
        return None
    return OutboxDispatcher(SessionLocal, EventWebhookClient())


def schedule_outbox_dispatch(
    background_tasks: BackgroundTasks,
    dispatcher: Optional[OutboxDispatcher] = Depends(get_dispatcher),
) -> None:
    """Drain the outbox after the response is sent"""
    if dispatcher is not None:
        background_tasks.add_task(dispatcher.dispatch_pending)
