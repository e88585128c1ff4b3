"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Callable, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from peerloan.api.dependencies import get_event_bus
from peerloan.api.main import create_app
from peerloan.domain.models import Caller, CollateralTerms, CollateralType, RequestTerms, Role, SecurityType
from peerloan.infrastructure.database.models import Base
from peerloan.infrastructure.database.session import get_db
from peerloan.infrastructure.events.bus import InMemoryEventBus
from peerloan.services.disbursement import DisbursementCoordinator
from peerloan.services.offer_matching import OfferMatchingEngine
from peerloan.services.queries import LoanQueries
from peerloan.services.repayment_ledger import RepaymentLedger
from peerloan.services.request_lifecycle import RequestLifecycle
from peerloan.services.unit_of_work import UnitOfWork


# Test database: one shared in-memory connection
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    """Controllable clock handed to the services"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int) -> None:
        self.now = self.now + timedelta(days=days)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def uow(db: Session, event_bus: InMemoryEventBus) -> UnitOfWork:
    return UnitOfWork(db, event_bus)


@pytest.fixture
def lifecycle(uow: UnitOfWork, clock: FakeClock) -> RequestLifecycle:
    return RequestLifecycle(uow, clock=clock)


@pytest.fixture
def coordinator(uow: UnitOfWork, clock: FakeClock) -> DisbursementCoordinator:
    return DisbursementCoordinator(uow, clock=clock)


@pytest.fixture
def matching(uow: UnitOfWork, coordinator: DisbursementCoordinator, clock: FakeClock) -> OfferMatchingEngine:
    return OfferMatchingEngine(uow, coordinator, clock=clock)


@pytest.fixture
def ledger(uow: UnitOfWork, clock: FakeClock) -> RepaymentLedger:
    return RepaymentLedger(uow, clock=clock)


@pytest.fixture
def queries(db: Session, clock: FakeClock) -> LoanQueries:
    return LoanQueries(db, clock=clock)


@pytest.fixture
def borrower() -> Caller:
    return Caller(user_id="borrower-1", role=Role.BORROWER)


@pytest.fixture
def lender() -> Caller:
    return Caller(user_id="lender-1", role=Role.LENDER)


@pytest.fixture
def other_lender() -> Caller:
    return Caller(user_id="lender-2", role=Role.BOTH)


@pytest.fixture
def unsecured_terms() -> Callable[..., RequestTerms]:
    """Factory for valid unsecured request terms"""

    def build(**overrides) -> RequestTerms:
        values = dict(
            amount_cents=10000,
            duration_months=6,
            security_type=SecurityType.UNSECURED,
            purpose="Laptop for freelance work",
        )
        values.update(overrides)
        return RequestTerms(**values)

    return build


@pytest.fixture
def secured_terms() -> Callable[..., RequestTerms]:
    def build(**overrides) -> RequestTerms:
        values = dict(
            amount_cents=500000,
            duration_months=12,
            security_type=SecurityType.SECURED,
            purpose="Shop renovation",
            collateral=CollateralTerms(type=CollateralType.GOLD, estimated_value_cents=800000),
        )
        values.update(overrides)
        return RequestTerms(**values)

    return build


@pytest.fixture
def client(db: Session, event_bus: InMemoryEventBus) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_bus] = lambda: event_bus
    return TestClient(app)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Factory for extra sessions on the test database (outbox, dispatcher)"""
    return TestingSessionLocal
