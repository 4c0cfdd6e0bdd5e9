"""Pytest fixtures for testing"""

import pytest
from datetime import date, timedelta
from typing import Callable, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from microcredit_engine.api.dependencies import get_services
from microcredit_engine.api.main import create_app
from microcredit_engine.domain.models import AccountType, Currency, Money, ProductArgs, ProductType
from microcredit_engine.infrastructure.database.models import Base, CreditApplication, Customer
from microcredit_engine.infrastructure.database.repositories import CustomerRepository
from microcredit_engine.infrastructure.database.session import get_db
from microcredit_engine.services.container import ServiceContainer


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})


# pysqlite defers BEGIN on its own, which breaks SAVEPOINT; SQLAlchemy emits it instead
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed business date (a Monday)
TODAY = date(2026, 3, 2)


@pytest.fixture
def today() -> date:
    return TODAY


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
def services(db: Session) -> ServiceContainer:
    """Services pinned to TODAY"""
    return ServiceContainer(db, clock=lambda: TODAY)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: ServiceContainer(db, clock=lambda: TODAY)
    return TestClient(app)


@pytest.fixture
def make_customer(services: ServiceContainer) -> Callable[..., Customer]:
    """Create a customer with all six sub-accounts opened"""

    def _make(
        customer_id: str,
        category: str = "STANDARD",
        kyc_level: int = 1,
        joined_on: date = TODAY - timedelta(days=365),
    ) -> Customer:
        customer = CustomerRepository(services.db).create(customer_id, joined_on, category=category, kyc_level=kyc_level)
        services.ledger.open_customer_accounts(customer_id, joined_on)
        return customer

    return _make


@pytest.fixture
def deposit(services: ServiceContainer) -> Callable[..., None]:
    """Deposit `total_cents` into an account, spread over `days` consecutive days ending on `end`"""

    def _deposit(
        customer_id: str,
        account_type: AccountType,
        total_cents: int,
        days: int = 1,
        currency: Currency = Currency.USD,
        end: date = TODAY,
    ) -> None:
        share, first = divmod(total_cents, days)
        for offset in range(days):
            amount = share + (first if offset == 0 else 0)
            business_date = end - timedelta(days=offset)
            services.ledger.deposit(customer_id, account_type, Money(amount, currency), business_date)

    return _deposit


@pytest.fixture
def disbursed_credit(services: ServiceContainer, deposit) -> Callable[..., CreditApplication]:
    """
    Drive a credit from request to disbursement.

    Documents are approved when the product needs them and the caution is
    deposited before confirmation.
    """

    def _disburse(
        customer_id: str,
        product: ProductType,
        amount: Money,
        args: Optional[ProductArgs] = None,
    ) -> CreditApplication:
        outcome = services.credits.request_credit(
            customer_id,
            product,
            amount,
            args or ProductArgs(),
            documents={"id_card": "scan.pdf"},
        )
        assert outcome.accepted, outcome.reasons
        credit = outcome.credit

        if credit.status == "DOCUMENTS_SUBMITTED":
            services.credits.validate_documents(credit.id, "reviewer-1", approved=True)
        if credit.caution_cents > 0:
            deposit(customer_id, AccountType.CAUTION, credit.caution_cents, currency=amount.currency)
        services.credits.confirm_caution(credit.id)
        return services.credits.disburse_credit(credit.id)

    return _disburse


@pytest.fixture
def overdraft_customer(make_customer, deposit) -> str:
    """Customer meeting every short-overdraft condition for 100 USD: 50 USD saved over 26 consecutive days"""
    make_customer("cust-overdraft")
    deposit("cust-overdraft", AccountType.MANDATORY_SAVINGS, 5_000, days=26)
    return "cust-overdraft"
