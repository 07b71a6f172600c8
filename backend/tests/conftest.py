import os

# Keep the application engine off disk while tests import the app
os.environ.setdefault("LEDGER_DATABASE_URL", "sqlite:///:memory:")

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from backend.app.models.models import Base, Budget, Envelope, EnvelopeType, IncomeSource, Payee, Category, TransactionType
from backend.app.database import get_db_session
from backend.app.main import app
from backend.app.schemas.transactions import TransactionCreate
from backend.app.services.transaction_service import create_transaction

# Use an in-memory test database shared across connections
TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_USER_ID = "user-1"
OTHER_USER_ID = "user-2"

@pytest.fixture(scope="function")
def db_session():
    """Returns a fresh SQLAlchemy session on an empty schema for each test"""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def client(db_session):
    """Test client fixture that uses the db_session fixture"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db_session] = override_get_db
    with TestClient(app) as test_client:
        test_client.headers.update({"X-User-Id": TEST_USER_ID})
        yield test_client
    app.dependency_overrides.clear()

@pytest.fixture
def user_id():
    return TEST_USER_ID

@pytest.fixture
def test_budget(db_session):
    """Creates an empty budget owned by the test user"""
    budget = Budget(user_id=TEST_USER_ID, name="Household", currency_code="USD", available_amount=0)
    db_session.add(budget)
    db_session.commit()
    db_session.refresh(budget)
    return budget

@pytest.fixture
def other_budget(db_session):
    """A budget owned by somebody else"""
    budget = Budget(user_id=OTHER_USER_ID, name="Someone else's", currency_code="USD", available_amount=0)
    db_session.add(budget)
    db_session.commit()
    db_session.refresh(budget)
    return budget

def _add(db_session, row):
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row

@pytest.fixture
def groceries(db_session, test_budget):
    return _add(db_session, Envelope(budget_id=test_budget.id, name="Groceries", current_balance=0))

@pytest.fixture
def rent(db_session, test_budget):
    return _add(db_session, Envelope(budget_id=test_budget.id, name="Rent", current_balance=0))

@pytest.fixture
def credit_card(db_session, test_budget):
    return _add(db_session, Envelope(
        budget_id=test_budget.id, name="Credit Card", envelope_type=EnvelopeType.DEBT, current_balance=0
    ))

@pytest.fixture
def test_payee(db_session, test_budget):
    return _add(db_session, Payee(budget_id=test_budget.id, name="Corner Market"))

@pytest.fixture
def test_income_source(db_session, test_budget):
    return _add(db_session, IncomeSource(budget_id=test_budget.id, name="Salary", expected_amount=Decimal("3000.00")))

@pytest.fixture
def test_category(db_session, test_budget):
    return _add(db_session, Category(budget_id=test_budget.id, name="Food"))

@pytest.fixture
def ledger(db_session, test_budget, user_id):
    """Shortcut for creating transactions through the ledger engine"""
    def _create(transaction_type, amount, transaction_date=None, **refs):
        data = TransactionCreate(
            transaction_type=TransactionType(transaction_type),
            amount=Decimal(str(amount)),
            transaction_date=transaction_date or date(2025, 7, 1),
            **refs
        )
        return create_transaction(db_session, test_budget.id, data, user_id)
    return _create

@pytest.fixture
def funded_budget(db_session, ledger, test_budget, groceries, rent, test_income_source):
    """Income of 3000, with 1000 allocated to groceries and 1200 to rent"""
    ledger("income", "3000.00", income_source_id=test_income_source.id)
    ledger("allocation", "1000.00", to_envelope_id=groceries.id)
    ledger("allocation", "1200.00", to_envelope_id=rent.id)
    for row in (test_budget, groceries, rent):
        db_session.refresh(row)
    return test_budget
