"""
SQLAlchemy Models for the Fuel Ledger
"""
from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship
import enum

from fuel_ledger.core.database import Base


# ==================== ENUMS ====================

class LedgerKind(enum.Enum):
    BANK = "BANK"
    CASH = "CASH"
    POOL = "POOL"


class TripStatus(enum.Enum):
    OPEN = "Open"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class FundingSource(enum.Enum):
    BANK = "bank"
    CASH_IN_HAND = "cash_in_hand"
    DEPO = "depo"


class SettlementType(enum.Enum):
    DIRECT_CLIENT_TO_CONTRACTOR = "DIRECT_CLIENT_TO_CONTRACTOR"
    CLIENT_TRIP_COLLECTION = "CLIENT_TRIP_COLLECTION"


# ==================== BANKING ====================

class Bank(Base):
    """Bank"""
    __tablename__ = 'banks'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    accounts = relationship("Account", back_populates="bank")


class Account(Base):
    """Bank account. `balance` mirrors the running balance of its latest transaction."""
    __tablename__ = 'accounts'

    id = Column(Integer, primary_key=True)
    bank_id = Column(Integer, ForeignKey('banks.id', ondelete='SET NULL'), nullable=True)
    account_title = Column(String(255), nullable=False)
    account_number = Column(String(50), nullable=True)
    opening_balance = Column(Numeric(15, 2), default=Decimal("0.00"))
    balance = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    bank = relationship("Bank", back_populates="accounts")


class Transaction(Base):
    """Canonical money movement. Rows with an account_id form the bank ledger."""
    __tablename__ = 'transactions'

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    cash_in_hand_id = Column(Integer, ForeignKey('cash_in_hand.id', ondelete='SET NULL'), nullable=True)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='SET NULL'), nullable=True)
    purpose = Column(String(255), nullable=False)
    debit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    credit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    balance = Column(Numeric(15, 2), nullable=True)  # running bank balance, null for cash
    date = Column(DateTime, default=datetime.utcnow, nullable=False)
    payment_mode = Column(String(50), nullable=True)
    reference_no = Column(String(100), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    account = relationship("Account")
    cash_entry = relationship("CashInHand", foreign_keys=[cash_in_hand_id])

    __table_args__ = (
        Index('ix_transactions_account_date', 'account_id', 'date'),
    )


class CashInHand(Base):
    """Entry of the shared petty-cash ledger"""
    __tablename__ = 'cash_in_hand'

    id = Column(Integer, primary_key=True)
    debit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    credit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    balance = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    purpose = Column(String(255), nullable=True)
    occurred_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index('ix_cash_in_hand_occurred_at', 'occurred_at'),
    )


class CashTransfer(Base):
    """Cash in hand deposited into a bank account"""
    __tablename__ = 'cash_transfers'

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    transfer_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    reference_no = Column(String(100), nullable=True)
    cash_transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    bank_transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


# ==================== DEPOTS ====================

class Depo(Base):
    """Depot / dealer supplying fuel on credit. `balance` mirrors its latest pool row."""
    __tablename__ = 'depos'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    phone_no = Column(String(20), nullable=True)
    address = Column(Text, nullable=True)
    balance = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    pool_entries = relationship("Pool", back_populates="depo")


class Pool(Base):
    """Depot pool ledger row. depo_limit is the running balance after this row."""
    __tablename__ = 'pool'

    id = Column(Integer, primary_key=True)
    depo_id = Column(Integer, ForeignKey('depos.id', ondelete='CASCADE'), nullable=False)
    # At most one of trip/payment/recovery explains a row; none marks the seed
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='SET NULL'), nullable=True)
    payment_id = Column(Integer, ForeignKey('payments.id', ondelete='SET NULL'), nullable=True)
    recovery_id = Column(Integer, ForeignKey('recoveries.id', ondelete='SET NULL'), nullable=True)
    transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    debit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    credit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    depo_limit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    reason = Column(String(255), nullable=True)
    occurred_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    depo = relationship("Depo", back_populates="pool_entries")

    __table_args__ = (
        Index('ix_pool_depo_occurred_at', 'depo_id', 'occurred_at'),
    )


# ==================== CUSTOMERS & TRIPS ====================

class Customer(Base):
    """Client buying fuel"""
    __tablename__ = 'customers'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    phone_no = Column(String(20), nullable=True)
    previous_dues = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    trips = relationship("Trip", back_populates="customer")


class Trip(Base):
    """A delivery run. total_amount/amount_collected form the client receivable."""
    __tablename__ = 'trips'

    id = Column(Integer, primary_key=True)
    trip_no = Column(String(50), nullable=False)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete='SET NULL'), nullable=True)
    vehicle_id = Column(Integer, nullable=True)
    start_date = Column(Date, nullable=False)
    status = Column(String(20), default=TripStatus.OPEN.value, nullable=False)
    total_amount = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    amount_collected = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    paid = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    completed_at = Column(DateTime, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer", back_populates="trips")
    depos = relationship("TripDepo", back_populates="trip")
    products = relationship("TripProduct", back_populates="trip")
    sales = relationship("PolSale", back_populates="trip")


class TripDepo(Base):
    """What a trip owes one depot"""
    __tablename__ = 'trip_depos'

    id = Column(Integer, primary_key=True)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='CASCADE'), nullable=False)
    depo_id = Column(Integer, ForeignKey('depos.id', ondelete='CASCADE'), nullable=False)
    payable_amount = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    paid_amount = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    trip = relationship("Trip", back_populates="depos")
    depo = relationship("Depo")

    __table_args__ = (
        Index('ix_trip_depos_depo_id', 'depo_id'),
    )


class TripProduct(Base):
    """Fuel loaded on a trip"""
    __tablename__ = 'trip_products'

    id = Column(Integer, primary_key=True)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='CASCADE'), nullable=False)
    fuel_type = Column(String(50), nullable=True)
    quantity_ltr = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    trip = relationship("Trip", back_populates="products")


class PolSale(Base):
    """Fuel sold out of a trip"""
    __tablename__ = 'pol_sale'

    id = Column(Integer, primary_key=True)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='CASCADE'), nullable=False)
    fuel = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    sale_date = Column(Date, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    trip = relationship("Trip", back_populates="sales")


# ==================== MONEY MOVEMENTS ====================

class ExpenseCategory(Base):
    """Expense category"""
    __tablename__ = 'expense_categories'

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    active = Column(Boolean, default=True, nullable=False)


class Expense(Base):
    """Office expense paid from cash in hand or a bank account"""
    __tablename__ = 'expenses'

    id = Column(Integer, primary_key=True)
    category_id = Column(Integer, ForeignKey('expense_categories.id', ondelete='SET NULL'), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    expense_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    account_head = Column(String(20), nullable=False)  # cash_in_hand, bank
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    payment_mode = Column(String(50), nullable=True)
    reference_no = Column(String(100), nullable=True)
    transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    category = relationship("ExpenseCategory")


class Payment(Base):
    """Share of a depot payment applied to one trip-depot receivable"""
    __tablename__ = 'payments'

    id = Column(Integer, primary_key=True)
    depo_id = Column(Integer, ForeignKey('depos.id', ondelete='CASCADE'), nullable=False)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='SET NULL'), nullable=True)
    trip_depo_id = Column(Integer, ForeignKey('trip_depos.id', ondelete='SET NULL'), nullable=True)
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    payment_mode = Column(String(50), nullable=True)
    reference_no = Column(String(100), nullable=True)
    payment_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    trip_depo = relationship("TripDepo")


class Recovery(Base):
    """Money recovered from a customer"""
    __tablename__ = 'recoveries'

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey('customers.id', ondelete='CASCADE'), nullable=False)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='SET NULL'), nullable=True)  # oldest open trip
    amount = Column(Numeric(15, 2), nullable=False)
    dues_applied = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    funding_source = Column(String(20), nullable=False)  # bank, cash_in_hand, depo
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    depo_id = Column(Integer, ForeignKey('depos.id', ondelete='SET NULL'), nullable=True)
    transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    payment_mode = Column(String(50), nullable=True)
    reference_no = Column(String(100), nullable=True)
    recovery_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    remarks = Column(Text, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    customer = relationship("Customer")
    settlements = relationship("Settlement", back_populates="recovery")


class Settlement(Base):
    """Amount of a recovery applied to one receivable"""
    __tablename__ = 'settlements'

    id = Column(Integer, primary_key=True)
    recovery_id = Column(Integer, ForeignKey('recoveries.id', ondelete='CASCADE'), nullable=False)
    settlement_type = Column(String(50), nullable=False)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='SET NULL'), nullable=True)
    trip_depo_id = Column(Integer, ForeignKey('trip_depos.id', ondelete='SET NULL'), nullable=True)
    depo_id = Column(Integer, ForeignKey('depos.id', ondelete='SET NULL'), nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    recovery = relationship("Recovery", back_populates="settlements")


class VehicleRent(Base):
    """Rent paid for a hired vehicle on a trip"""
    __tablename__ = 'vehicle_rent'

    id = Column(Integer, primary_key=True)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='CASCADE'), nullable=False)
    vehicle_id = Column(Integer, nullable=False)
    distance_km = Column(Numeric(15, 2), nullable=False)
    rent_per_km = Column(Numeric(15, 2), nullable=False)
    total_rent = Column(Numeric(15, 2), nullable=False)
    payment_source = Column(String(20), nullable=False)  # cash, bank
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class VehicleExpense(Base):
    """Maintenance or running cost of a vehicle"""
    __tablename__ = 'vehicle_expenses'

    id = Column(Integer, primary_key=True)
    vehicle_id = Column(Integer, nullable=False)
    trip_id = Column(Integer, ForeignKey('trips.id', ondelete='SET NULL'), nullable=True)
    expense_date = Column(Date, nullable=False)
    expense_type = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(15, 2), nullable=False)
    account_head = Column(String(20), nullable=False)  # cash_in_hand, account
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    payment_mode = Column(String(50), nullable=True)
    reference_no = Column(String(100), nullable=True)
    transaction_id = Column(Integer, ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


# ==================== AUDIT ====================

class AuditLog(Base):
    """Audit trail for every recorded and reversed money movement"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(100), nullable=False)
    resource_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    new_values = Column(Text, nullable=True)  # JSON
    status = Column(String(20), default="success")

    __table_args__ = (
        Index('ix_audit_logs_resource', 'resource_type', 'resource_id'),
    )
