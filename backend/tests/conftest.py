"""
Centralized Test Configuration.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from datetime import date
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fuel_ledger.core.database import Base, get_db, init_db
from fuel_ledger.main import app
from fuel_ledger.models import CashInHand, ExpenseCategory
from fuel_ledger.schemas import (
    AccountCreate, CashReceiptCreate, CustomerCreate, DepoCreate, TripCreate
)
from fuel_ledger.services.banking_service import BankAccountService
from fuel_ledger.services.crm_service import CustomerService
from fuel_ledger.services.depo_service import DepoService
from fuel_ledger.services.trip_service import TripService
from fuel_ledger.services.transaction_service import TransactionRecorder

# Setup In-Memory Test Database
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test function and drop after."""
    init_db(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides = {}


class Factory:
    """Committed fixture data built through the services"""

    def __init__(self, db):
        self.db = db

    def account(self, opening_balance="1000.00", title="Main Account"):
        account = BankAccountService(self.db).create(
            AccountCreate(account_title=title, opening_balance=Decimal(opening_balance))
        )
        self.db.commit()
        return account

    def cash(self, amount, purpose="Cash received"):
        result = TransactionRecorder(self.db).receive_cash(
            CashReceiptCreate(amount=Decimal(amount), purpose=purpose)
        )
        self.db.commit()
        return self.db.get(CashInHand, result.entity_id)

    def depo(self, name="City Depo", balance="0.00"):
        depo = DepoService(self.db).create(DepoCreate(name=name, balance=Decimal(balance)))
        self.db.commit()
        return depo

    def customer(self, name="Acme Transport", previous_dues="0.00"):
        customer = CustomerService(self.db).create(
            CustomerCreate(name=name, previous_dues=Decimal(previous_dues))
        )
        self.db.commit()
        return customer

    def trip(self, trip_no, start_date=date(2024, 1, 1), depos=(), customer_id=None,
             total_amount="0.00", fuel=None, charge_pool=False):
        trip = TripService(self.db).create(TripCreate(
            trip_no=trip_no,
            start_date=start_date,
            customer_id=customer_id,
            total_amount=Decimal(total_amount),
            depos=[{"depo_id": depo_id, "payable_amount": Decimal(str(payable))} for depo_id, payable in depos],
            products=[{"fuel_type": "Diesel", "quantity_ltr": Decimal(str(fuel))}] if fuel else [],
            charge_pool=charge_pool,
        ))
        self.db.commit()
        return trip

    def category(self, name="Office"):
        category = ExpenseCategory(name=name)
        self.db.add(category)
        self.db.commit()
        return category


@pytest.fixture
def factory(db_session):
    return Factory(db_session)
