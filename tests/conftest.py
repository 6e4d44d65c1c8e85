"""Pytest fixtures for testing"""

import pytest
from typing import Generator, List
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from mortgage_gateway.api.main import create_app
from mortgage_gateway.api.dependencies import get_clock, get_custody, get_publisher, get_registry
from mortgage_gateway.domain.engine import LoanEngine
from mortgage_gateway.domain.events import WILDCARD, EventPublisher
from mortgage_gateway.domain.models import AssetDescriptor, AssetKind, LoanEvent
from mortgage_gateway.domain.registry import ParameterRegistry
from mortgage_gateway.infrastructure.clients.memory_custody import InMemoryCustody
from mortgage_gateway.infrastructure.database.memory_store import InMemoryLoanStore
from mortgage_gateway.infrastructure.database.models import Base
from mortgage_gateway.infrastructure.database.session import get_db
from mortgage_gateway.utils.time_utils import days


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN = "admin"
MARKETPLACE = "marketplace"
BUYER = "buyer"

START = 1_700_000_000  # fixed clock origin (Unix seconds)
ONE_YEAR = days(365)


class FakeClock:
    """Controllable time source"""

    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry() -> ParameterRegistry:
    return ParameterRegistry(admin=ADMIN, originators=[MARKETPLACE])


@pytest.fixture
def custody() -> InMemoryCustody:
    return InMemoryCustody()


@pytest.fixture
def store() -> InMemoryLoanStore:
    return InMemoryLoanStore()


@pytest.fixture
def events() -> List[LoanEvent]:
    """Every lifecycle event published, in order"""
    return []


@pytest.fixture
def publisher(events: List[LoanEvent]) -> EventPublisher:
    publisher = EventPublisher()
    publisher.subscribe(WILDCARD, events.append)
    return publisher


@pytest.fixture
def loan_engine(
    registry: ParameterRegistry,
    custody: InMemoryCustody,
    store: InMemoryLoanStore,
    publisher: EventPublisher,
    clock: FakeClock,
) -> LoanEngine:
    return LoanEngine(registry=registry, custody=custody, store=store, publisher=publisher, clock=clock)


@pytest.fixture
def nft() -> AssetDescriptor:
    return AssetDescriptor(kind=AssetKind.UNIQUE, contract="0xArt", token_id=7)


@pytest.fixture
def tokens() -> AssetDescriptor:
    return AssetDescriptor(kind=AssetKind.FUNGIBLE, contract="0xGold", quantity=500)


@pytest.fixture
def standard_loan(loan_engine: LoanEngine, custody: InMemoryCustody, nft: AssetDescriptor) -> int:
    """principal 1000, 20% down, one year: down payment 200, loan amount 800, total due 820"""
    custody.deposit_asset(nft, MARKETPLACE)
    return loan_engine.create_loan(MARKETPLACE, nft, 1000, 20, ONE_YEAR)


@pytest.fixture
def active_loan(loan_engine: LoanEngine, standard_loan: int) -> int:
    loan_engine.start_loan(standard_loan, BUYER, 200)
    return standard_loan


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
def client(db: Session, registry: ParameterRegistry, custody: InMemoryCustody, publisher: EventPublisher, clock: FakeClock) -> TestClient:
    """Create FastAPI test client with test database, in-memory custody and a fake clock"""
    app = create_app(create_tables=False)

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_custody] = lambda: custody
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)
